# =============================================================================
# KML Parser
# =============================================================================
# Reads Placemarks with the generic ElementTree reader. Files exported by
# field tools often declare UTF-8 but are Latin-1 encoded; those are re-read
# as Latin-1 text when the strict parse fails.
# =============================================================================

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterator, Optional

from shapely.errors import GEOSException
from shapely.geometry import (
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)
from shapely.geometry.base import BaseGeometry

from libs.errors import ParseError, UnsupportedFormat
from libs.models import GEOGRAPHIC_SRID, ParsedRecord, SwapPolicy, coerce_attribute
from libs.spatial_utils.coordinates import resolve_lat_lon
from .base import ImportErrorLog, RecordParser, pick_source_id

__all__ = ["KmlParser", "extract_description_fields", "load_kml_root"]

logger = logging.getLogger(__name__)

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")
_TABLE_PAIR = re.compile(
    r"<td[^>]*>\s*(?P<label>[^<]*?)\s*</td>\s*<td[^>]*>\s*(?P<value>[^<]*?)\s*</td>",
    re.IGNORECASE | re.DOTALL,
)
_GEOMETRY_TAGS = {"Point", "LineString", "Polygon", "MultiGeometry"}


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _local(child.tag) == name:
            return (child.text or "").strip()
    return None


def load_kml_root(path: Path) -> ET.Element:
    """
    Parse a KML document, falling back to a Latin-1 re-read.

    Raises:
        UnsupportedFormat: If neither reading produces a well-formed document
    """
    try:
        return ET.parse(path).getroot()
    except ET.ParseError as strict_error:
        logger.info("Strict parse of %s failed (%s); retrying as Latin-1", path.name, strict_error)
        text = Path(path).read_bytes().decode("latin-1")
        try:
            return ET.fromstring(_XML_DECLARATION.sub("", text, count=1))
        except ET.ParseError as exc:
            raise UnsupportedFormat(f"Cannot parse KML {path.name}: {exc}") from exc


def extract_description_fields(description: Optional[str]) -> dict[str, Optional[str]]:
    """
    Extract label/value pairs from an HTML-table description.

    Each ``<td>LABEL</td><td>VALUE</td>`` pair becomes one entry; the values
    "null" and "" become None.

    Examples:
        >>> extract_description_fields("<tr><td>MUNICIPIO</td><td>Vitória</td></tr>")
        {'MUNICIPIO': 'Vitória'}
    """
    if not description:
        return {}
    fields: dict[str, Optional[str]] = {}
    for match in _TABLE_PAIR.finditer(description):
        label = match.group("label").strip()
        if not label or label in fields:
            continue
        value = match.group("value").strip()
        fields[label] = None if not value or value.lower() == "null" else value
    return fields


class KmlParser(RecordParser):
    """One record per Placemark with a Point, LineString, Polygon or MultiGeometry."""

    def __init__(self, swap_policy: SwapPolicy = SwapPolicy.MAGNITUDE):
        self.swap_policy = swap_policy

    def open(self, path: Path, errors: ImportErrorLog) -> Iterator[ParsedRecord]:
        path = Path(path)
        root = load_kml_root(path)
        placemarks = [el for el in root.iter() if _local(el.tag) == "Placemark"]
        logger.info("Reading %s: %d placemarks", path.name, len(placemarks))

        for index, placemark in enumerate(placemarks, start=1):
            try:
                record = self._to_record(placemark, index)
            except ParseError as exc:
                errors.add(index, exc.error_code, str(exc), exc.field)
                continue
            except (GEOSException, ValueError) as exc:
                errors.add(index, ParseError.error_code, f"invalid geometry: {exc}", "coordinates")
                continue
            yield record

    def _to_record(self, placemark: ET.Element, index: int) -> ParsedRecord:
        attributes: dict = {}
        name = _child_text(placemark, "name")
        if name:
            attributes["name"] = name

        description = _child_text(placemark, "description")
        table = extract_description_fields(description)
        if table:
            attributes.update(table)
        elif description:
            attributes["description"] = description

        for extended in _children(placemark, "ExtendedData"):
            attributes.update(self._extended_data(extended))

        geometry_element = next(
            (child for child in placemark if _local(child.tag) in _GEOMETRY_TAGS), None
        )
        if geometry_element is None:
            raise ParseError("placemark has no coordinates", field="coordinates")
        geometry = self._geometry(geometry_element)

        attributes = {key: coerce_attribute(value) for key, value in attributes.items()}
        source_id = (
            pick_source_id(attributes)
            or placemark.get("id")
            or name
            or f"PLACEMARK-{index}"
        )
        return ParsedRecord(
            geometry=geometry,
            srid=GEOGRAPHIC_SRID,
            attributes=attributes,
            source_id=str(source_id),
            row_index=index,
        )

    @staticmethod
    def _extended_data(extended: ET.Element) -> dict[str, Optional[str]]:
        values: dict[str, Optional[str]] = {}
        for element in extended.iter():
            tag = _local(element.tag)
            if tag == "Data" and element.get("name"):
                values[element.get("name")] = _child_text(element, "value")
            elif tag == "SimpleData" and element.get("name"):
                values[element.get("name")] = (element.text or "").strip()
        return values

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _coordinates(self, element: ET.Element) -> list[tuple[float, float]]:
        text = None
        for child in element.iter():
            if _local(child.tag) == "coordinates":
                text = child.text
                break
        if not text or not text.strip():
            raise ParseError("placemark has no coordinates", field="coordinates")

        pairs = []
        for token in text.split():
            parts = token.split(",")
            if len(parts) < 2:
                raise ParseError(f"malformed coordinate tuple {token!r}", field="coordinates")
            try:
                lon, lat = float(parts[0]), float(parts[1])
            except ValueError:
                raise ParseError(f"malformed coordinate tuple {token!r}", field="coordinates") from None
            lat, lon, _ = resolve_lat_lon(lat, lon, self.swap_policy)
            pairs.append((lon, lat))
        return pairs

    def _ring(self, boundary: ET.Element) -> list[tuple[float, float]]:
        ring = self._coordinates(boundary)
        if len(ring) < 3:
            raise ParseError("polygon ring has fewer than 3 positions", field="coordinates")
        return ring

    def _geometry(self, element: ET.Element) -> BaseGeometry:
        tag = _local(element.tag)
        if tag == "Point":
            return Point(self._coordinates(element)[0])
        if tag == "LineString":
            coords = self._coordinates(element)
            if len(coords) < 2:
                raise ParseError("line has fewer than 2 positions", field="coordinates")
            return LineString(coords)
        if tag == "Polygon":
            outer = _children(element, "outerBoundaryIs")
            if not outer:
                raise ParseError("polygon has no outer boundary", field="coordinates")
            holes = [self._ring(inner) for inner in _children(element, "innerBoundaryIs")]
            return Polygon(self._ring(outer[0]), holes)
        if tag == "MultiGeometry":
            return self._multi(element)
        raise ParseError(f"unsupported KML geometry {tag}", field="geometry")

    def _multi(self, element: ET.Element) -> BaseGeometry:
        members = [self._geometry(child) for child in element if _local(child.tag) in _GEOMETRY_TAGS]
        if not members:
            raise ParseError("MultiGeometry has no members", field="coordinates")
        kinds = {member.geom_type for member in members}
        if kinds == {"Point"}:
            return MultiPoint(members)
        if kinds == {"LineString"}:
            return MultiLineString(members)
        if kinds == {"Polygon"}:
            return MultiPolygon(members)
        raise ParseError(f"mixed MultiGeometry members {sorted(kinds)}", field="geometry")

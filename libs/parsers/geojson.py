# =============================================================================
# GeoJSON Parser
# =============================================================================
# Reads FeatureCollections, single Features or bare geometries. Geometry
# decoding is delegated to shapely; the legacy "crs" member, when present,
# sets the SRID (RFC 7946 files are EPSG:4326).
# =============================================================================

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, Optional

from shapely.errors import GEOSException
from shapely.geometry import shape

from libs.errors import ParseError, UnsupportedFormat
from libs.models import GEOGRAPHIC_SRID, ParsedRecord, coerce_attribute
from libs.spatial_utils.coordinates import srid_from_crs
from .base import ImportErrorLog, RecordParser, pick_source_id

__all__ = ["GeoJsonParser", "load_geojson"]

logger = logging.getLogger(__name__)

_GEOMETRY_TYPES = {
    "Point", "LineString", "Polygon", "MultiPoint", "MultiLineString", "MultiPolygon",
}


def load_geojson(path: Path) -> dict[str, Any]:
    """
    Load a GeoJSON document (UTF-8 with optional BOM, Latin-1 fallback).

    Raises:
        UnsupportedFormat: If the file is not a JSON object
    """
    raw = Path(path).read_bytes()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("GeoJSON %s is not UTF-8, decoding as Latin-1", Path(path).name)
        text = raw.decode("latin-1")
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise UnsupportedFormat(f"Invalid JSON in {Path(path).name}: {exc}") from exc
    if not isinstance(document, dict) or "type" not in document:
        raise UnsupportedFormat(f"{Path(path).name} is not a GeoJSON object")
    return document


def _declared_srid(document: dict[str, Any]) -> int:
    crs = document.get("crs")
    if not isinstance(crs, dict):
        return GEOGRAPHIC_SRID
    name = (crs.get("properties") or {}).get("name")
    srid = srid_from_crs(name)
    if srid is None:
        logger.warning("Ignoring undecodable GeoJSON crs member %r", name)
        return GEOGRAPHIC_SRID
    return srid


class GeoJsonParser(RecordParser):
    """One record per Feature."""

    def open(self, path: Path, errors: ImportErrorLog) -> Iterator[ParsedRecord]:
        path = Path(path)
        document = load_geojson(path)
        srid = _declared_srid(document)

        kind = document.get("type")
        if kind == "FeatureCollection":
            features = document.get("features")
            if not isinstance(features, list):
                raise UnsupportedFormat(f"{path.name}: FeatureCollection without a features array")
        elif kind == "Feature":
            features = [document]
        elif kind in _GEOMETRY_TYPES:
            features = [{"type": "Feature", "geometry": document, "properties": {}}]
        else:
            raise UnsupportedFormat(f"{path.name}: unsupported GeoJSON type {kind!r}")

        logger.info("Reading %s: %d features, SRID %s", path.name, len(features), srid)
        for index, feature in enumerate(features, start=1):
            try:
                record = self._to_record(feature, srid, index)
            except ParseError as exc:
                errors.add(index, exc.error_code, str(exc), exc.field)
                continue
            except (GEOSException, ValueError, TypeError, KeyError, AttributeError, IndexError) as exc:
                errors.add(index, ParseError.error_code, f"invalid geometry: {exc}", "geometry")
                continue
            yield record

    @staticmethod
    def _to_record(feature: Any, srid: int, index: int) -> ParsedRecord:
        if not isinstance(feature, dict) or feature.get("type") != "Feature":
            raise ParseError("entry is not a Feature")
        geometry = feature.get("geometry")
        if not geometry:
            raise ParseError("feature has no geometry", field="geometry")

        properties = feature.get("properties") or {}
        attributes = {str(key): coerce_attribute(value) for key, value in properties.items()}
        feature_id: Optional[Any] = feature.get("id")
        source_id = pick_source_id(attributes) or (
            str(feature_id) if feature_id is not None else f"FEATURE-{index}"
        )
        return ParsedRecord(
            geometry=shape(geometry),
            srid=srid,
            attributes=attributes,
            source_id=source_id,
            row_index=index,
        )

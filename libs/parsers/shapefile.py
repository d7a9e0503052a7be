# =============================================================================
# Shapefile Parser
# =============================================================================
# Reads a geometry set (.shp/.shx/.dbf with optional .prj/.cpg) through fiona.
# =============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import fiona
from fiona.errors import DriverError, FionaError
from shapely.errors import GEOSException
from shapely.geometry import shape

from libs.errors import ParseError, UnsupportedFormat
from libs.models import ParsedRecord, coerce_attribute
from libs.spatial_utils.coordinates import resolve_source_crs
from .base import ImportErrorLog, RecordParser, pick_source_id

__all__ = ["ShapefileParser"]

logger = logging.getLogger(__name__)


class ShapefileParser(RecordParser):
    """Geometry-set parser: default geometry plus every attribute field verbatim."""

    def open(self, path: Path, errors: ImportErrorLog) -> Iterator[ParsedRecord]:
        try:
            collection = fiona.open(str(path))
        except (DriverError, FionaError) as exc:
            raise UnsupportedFormat(f"Cannot open shapefile {Path(path).name}: {exc}") from exc

        with collection:
            srid, source_crs = resolve_source_crs(collection.crs_wkt)
            if srid is None and source_crs is None:
                logger.warning("Shapefile %s has no usable .prj; SRID left to the layer", Path(path).name)
            logger.info(
                "Reading %s: %d features, schema geometry %s, SRID %s",
                Path(path).name,
                len(collection),
                collection.schema.get("geometry"),
                srid if source_crs is None else "custom",
            )

            for index, feature in enumerate(collection, start=1):
                try:
                    record = self._to_record(feature, srid, source_crs, index)
                except ParseError as exc:
                    errors.add(index, exc.error_code, str(exc), exc.field)
                    continue
                except (GEOSException, ValueError, TypeError, AttributeError) as exc:
                    errors.add(index, ParseError.error_code, f"invalid geometry: {exc}", "geometry")
                    continue
                yield record

    @staticmethod
    def _to_record(feature, srid, source_crs, index: int) -> ParsedRecord:
        if feature.geometry is None:
            raise ParseError("feature has no geometry", field="geometry")
        geometry = shape(feature.geometry)
        attributes = {
            name: coerce_attribute(value)
            for name, value in dict(feature.properties or {}).items()
        }
        source_id = pick_source_id(attributes) or str(feature.id)
        return ParsedRecord(
            geometry=geometry,
            srid=srid,
            attributes=attributes,
            source_id=source_id,
            row_index=index,
            source_crs=source_crs,
        )

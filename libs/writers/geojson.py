# =============================================================================
# GeoJSON Writer
# =============================================================================
# Streams a FeatureCollection one Feature at a time. Coordinates are written
# in the stored SRID; a legacy "crs" member names it when it is not 4326.
# =============================================================================

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from libs.models import GEOGRAPHIC_SRID, ExportFeature
from libs.spatial_utils.geometry import to_geojson_dict
from .base import ExportWriter, Reprojector, WriteResult

__all__ = ["GeoJsonWriter", "DECIMAL_PRECISION"]

logger = logging.getLogger(__name__)

DECIMAL_PRECISION = 8


def _round_coordinates(value: Any, precision: int) -> Any:
    if isinstance(value, (list, tuple)):
        return [_round_coordinates(item, precision) for item in value]
    if isinstance(value, float):
        return round(value, precision)
    return value


class GeoJsonWriter(ExportWriter):
    extension = "geojson"

    def __init__(self, precision: int = DECIMAL_PRECISION):
        self.precision = precision

    def _feature(self, feature: ExportFeature) -> dict[str, Any]:
        geometry = to_geojson_dict(feature.geometry)
        geometry["coordinates"] = _round_coordinates(geometry["coordinates"], self.precision)
        return {
            "type": "Feature",
            "geometry": geometry,
            "properties": {"id": feature.id, "externalId": feature.external_id},
        }

    def write(self, features: Iterable[ExportFeature], path: Path) -> WriteResult:
        path = Path(path)
        written = 0
        srid = None
        reproject = None
        try:
            with open(path, "w", encoding="utf-8") as sink:
                for feature in features:
                    if srid is None:
                        srid = feature.srid
                        reproject = Reprojector(srid)
                        sink.write('{"type": "FeatureCollection", ')
                        if srid != GEOGRAPHIC_SRID:
                            crs = {"type": "name", "properties": {"name": f"urn:ogc:def:crs:EPSG::{srid}"}}
                            sink.write(f'"crs": {json.dumps(crs)}, ')
                        sink.write('"features": [\n')
                    feature = reproject(feature)
                    if written:
                        sink.write(",\n")
                    sink.write(json.dumps(self._feature(feature), ensure_ascii=False))
                    written += 1

                if srid is None:
                    sink.write('{"type": "FeatureCollection", "features": [')
                sink.write("\n]}\n")
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.info("Wrote %d features to %s", written, path.name)
        return WriteResult(path=path, written=written)

# =============================================================================
# KML Writer
# =============================================================================
# Emits Point, LineString and Polygon placemarks in EPSG:4326 via simplekml.
# =============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import simplekml

from libs.models import GEOGRAPHIC_SRID, ExportFeature, GeometryKind
from .base import ExportWriter, Reprojector, WriteResult

__all__ = ["KmlWriter"]

logger = logging.getLogger(__name__)


class KmlWriter(ExportWriter):
    extension = "kml"

    def __init__(self, document_name: Optional[str] = None):
        self.document_name = document_name

    def write(self, features: Iterable[ExportFeature], path: Path) -> WriteResult:
        path = Path(path)
        kml = simplekml.Kml(name=self.document_name or path.stem)
        reproject = Reprojector(GEOGRAPHIC_SRID)
        written = skipped = 0

        for feature in features:
            kind = feature.kind
            if kind not in (GeometryKind.POINT, GeometryKind.LINESTRING, GeometryKind.POLYGON):
                logger.warning("Skipping feature %s: %s is not exported to KML", feature.id, kind.value)
                skipped += 1
                continue

            geometry = reproject(feature).geometry
            name = feature.external_id or feature.id
            if kind == GeometryKind.POINT:
                placemark = kml.newpoint(name=name, coords=[(geometry.x, geometry.y)])
            elif kind == GeometryKind.LINESTRING:
                placemark = kml.newlinestring(name=name, coords=list(geometry.coords))
            else:
                placemark = kml.newpolygon(
                    name=name,
                    outerboundaryis=list(geometry.exterior.coords),
                    innerboundaryis=[list(ring.coords) for ring in geometry.interiors],
                )
            placemark.extendeddata.newdata(name="id", value=feature.id)
            if feature.external_id:
                placemark.extendeddata.newdata(name="externalId", value=feature.external_id)
            written += 1

        try:
            kml.save(str(path))
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.info("Wrote %d placemarks to %s (%d skipped)", written, path.name, skipped)
        return WriteResult(path=path, written=written, skipped=skipped)

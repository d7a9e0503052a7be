# =============================================================================
# Shapefile Writer
# =============================================================================
# Writes a zipped geometry set (.shp/.shx/.dbf/.prj/.cpg) through fiona.
# The set is built in a staging directory and only moved into place once
# every feature has been written, so a failed export leaves nothing behind.
# =============================================================================

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import zipfile
from collections import Counter
from itertools import chain, islice
from pathlib import Path
from typing import Iterable, Optional

import fiona
from pyproj import CRS
from shapely.geometry import MultiPoint

from libs.models import ExportFeature, GeometryKind
from libs.spatial_utils.geometry import to_geojson_dict
from .base import ExportWriter, Reprojector, WriteResult

__all__ = ["ShapefileWriter", "SAMPLE_SIZE", "SHAPEFILE_SCHEMA_PROPERTIES"]

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 100
SHAPEFILE_SCHEMA_PROPERTIES = {"id": "str:254", "externalId": "str:254"}


def dominant_kind(sample: list[ExportFeature]) -> GeometryKind:
    """
    Schema geometry type for a sample of features.

    The most common family (point, line, polygon) wins. Line and polygon
    layers accept their Multi variants in a shapefile; point layers become
    MultiPoint only when the sample contains MultiPoints.
    """
    families = Counter(feature.kind.single for feature in sample)
    family = families.most_common(1)[0][0]
    if family == GeometryKind.POINT and any(
        feature.kind == GeometryKind.MULTIPOINT for feature in sample
    ):
        return GeometryKind.MULTIPOINT
    return family


class ShapefileWriter(ExportWriter):
    extension = "zip"

    def __init__(self, sample_size: int = SAMPLE_SIZE):
        self.sample_size = sample_size

    def write(self, features: Iterable[ExportFeature], path: Path) -> WriteResult:
        path = Path(path)
        iterator = iter(features)
        sample = list(islice(iterator, self.sample_size))
        if not sample:
            raise ValueError("Cannot write a shapefile without features")

        schema_kind = dominant_kind(sample)
        srid = sample[0].srid
        reproject = Reprojector(srid)
        stem = path.stem
        staging = Path(tempfile.mkdtemp(prefix=f"{stem}_", dir=path.parent))
        partial = path.with_name(path.name + ".part")
        logger.info("Writing %s as %s shapefile (EPSG:%s)", path.name, schema_kind.value, srid)

        written = skipped = 0
        try:
            with fiona.open(
                str(staging / f"{stem}.shp"),
                "w",
                driver="ESRI Shapefile",
                schema={"geometry": schema_kind.value, "properties": SHAPEFILE_SCHEMA_PROPERTIES},
                crs_wkt=CRS.from_epsg(srid).to_wkt(),
                encoding="utf-8",
            ) as sink:
                for feature in chain(sample, iterator):
                    geometry = self._conform(reproject(feature), schema_kind)
                    if geometry is None:
                        skipped += 1
                        continue
                    sink.write(
                        {
                            "geometry": to_geojson_dict(geometry),
                            "properties": {"id": feature.id, "externalId": feature.external_id},
                        }
                    )
                    written += 1

            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
                for member in sorted(staging.iterdir()):
                    bundle.write(member, arcname=member.name)
            os.replace(partial, path)
        except Exception:
            partial.unlink(missing_ok=True)
            path.unlink(missing_ok=True)
            raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        if skipped:
            logger.warning("Skipped %d features not matching %s", skipped, schema_kind.value)
        return WriteResult(path=path, written=written, skipped=skipped)

    @staticmethod
    def _conform(feature: ExportFeature, schema_kind: GeometryKind) -> Optional[object]:
        kind = feature.kind
        if kind.single != schema_kind.single:
            logger.warning(
                "Skipping feature %s: %s does not fit a %s shapefile",
                feature.id, kind.value, schema_kind.value,
            )
            return None
        if schema_kind == GeometryKind.MULTIPOINT and kind == GeometryKind.POINT:
            return MultiPoint([feature.geometry])
        if schema_kind == GeometryKind.POINT and kind == GeometryKind.MULTIPOINT:
            if len(feature.geometry.geoms) != 1:
                logger.warning("Skipping feature %s: MultiPoint in a Point shapefile", feature.id)
                return None
            return feature.geometry.geoms[0]
        return feature.geometry

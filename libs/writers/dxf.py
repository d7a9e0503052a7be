# =============================================================================
# DXF Writer
# =============================================================================
# Emits POINT, LINE and LWPOLYLINE entities with ezdxf. Multi geometries are
# exploded into one entity per member; polygon rings become closed
# LWPOLYLINEs. Coordinates stay in the stored (projected) SRID.
# =============================================================================

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

import ezdxf

from libs.models import ExportFeature, GeometryKind
from .base import ExportWriter, WriteResult

__all__ = ["DxfWriter", "DXF_VERSION"]

logger = logging.getLogger(__name__)

DXF_VERSION = "R2010"
_INVALID_LAYER_CHARS = re.compile(r'[<>/\\":;?*|=`]')


def _layer_name(name: Optional[str]) -> str:
    cleaned = _INVALID_LAYER_CHARS.sub("_", (name or "").strip())
    return cleaned or "FEATURES"


def _xy(coords) -> list[tuple[float, float]]:
    return [(c[0], c[1]) for c in coords]


class DxfWriter(ExportWriter):
    extension = "dxf"

    def __init__(self, layer_name: Optional[str] = None):
        self.layer_name = _layer_name(layer_name)

    def write(self, features: Iterable[ExportFeature], path: Path) -> WriteResult:
        path = Path(path)
        doc = ezdxf.new(DXF_VERSION)
        doc.layers.add(name=self.layer_name, color=7)
        msp = doc.modelspace()
        attribs = {"layer": self.layer_name}

        written = 0
        for feature in features:
            members = feature.geometry.geoms if feature.kind.is_multi else [feature.geometry]
            for member in members:
                self._add(msp, feature.kind.single, member, attribs)
            written += 1

        try:
            doc.saveas(str(path))
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.info("Wrote %d features to %s", written, path.name)
        return WriteResult(path=path, written=written)

    @staticmethod
    def _add(msp, kind: GeometryKind, geometry, attribs: dict) -> None:
        if kind == GeometryKind.POINT:
            msp.add_point((geometry.x, geometry.y), dxfattribs=attribs)
        elif kind == GeometryKind.LINESTRING:
            coords = _xy(geometry.coords)
            if len(coords) == 2:
                msp.add_line(coords[0], coords[1], dxfattribs=attribs)
            else:
                msp.add_lwpolyline(coords, close=False, dxfattribs=attribs)
        elif kind == GeometryKind.POLYGON:
            for ring in (geometry.exterior, *geometry.interiors):
                # Closed flag replaces the repeated first vertex
                msp.add_lwpolyline(_xy(ring.coords)[:-1], close=True, dxfattribs=attribs)

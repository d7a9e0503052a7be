# =============================================================================
# Export Writers Library
# =============================================================================
# One writer per export format.
# =============================================================================

"""
Export writers for the export pipeline.

This library provides:
- ExportWriter: Base class for all writers
- ShapefileWriter, GeoJsonWriter, KmlWriter, DxfWriter
- WriterRegistry: ExportFormat -> writer lookup
"""

from .base import ExportWriter, Reprojector, WriteResult
from .dxf import DxfWriter
from .geojson import GeoJsonWriter
from .kml import KmlWriter
from .shapefile import ShapefileWriter
from .registry import WriterRegistry

__all__ = [
    "ExportWriter",
    "Reprojector",
    "WriteResult",
    "DxfWriter",
    "GeoJsonWriter",
    "KmlWriter",
    "ShapefileWriter",
    "WriterRegistry",
]

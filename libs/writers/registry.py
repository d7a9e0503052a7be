# =============================================================================
# Writer Registry
# =============================================================================
# ExportFormat -> writer lookup.
# =============================================================================

from typing import Optional

from libs.models import ExportFormat
from .base import ExportWriter
from .dxf import DxfWriter
from .geojson import GeoJsonWriter
from .kml import KmlWriter
from .shapefile import ShapefileWriter

__all__ = ["WriterRegistry"]


class WriterRegistry:
    """Registry of export writers by requested format."""

    @staticmethod
    def get_writer(fmt: "str | ExportFormat", layer_name: Optional[str] = None) -> ExportWriter:
        """
        Get a fresh writer for a requested format.

        Args:
            fmt: Format name (SHP/SHAPEFILE, GEOJSON/JSON, KML, DXF) or ExportFormat
            layer_name: Layer code, used as KML document and DXF layer name

        Raises:
            UnsupportedFormat: If the format is outside the supported set
        """
        export_format = ExportFormat.parse(fmt)
        factories = {
            ExportFormat.SHP: ShapefileWriter,
            ExportFormat.GEOJSON: GeoJsonWriter,
            ExportFormat.KML: lambda: KmlWriter(document_name=layer_name),
            ExportFormat.DXF: lambda: DxfWriter(layer_name=layer_name),
        }
        return factories[export_format]()

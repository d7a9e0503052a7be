# =============================================================================
# Format Parsers Library
# =============================================================================
# One lazy record parser per supported source format.
# =============================================================================

"""
Format parsers for the import pipeline.

This library provides:
- RecordParser: Base class for all parsers
- ImportErrorLog: Per-job row error log
- ShapefileParser, SpreadsheetParser, KmlParser, GeoJsonParser
- ParserRegistry: FormatKind -> parser lookup
"""

from .base import ImportErrorLog, RecordParser, RowError, pick_source_id
from .geojson import GeoJsonParser
from .kml import KmlParser
from .shapefile import ShapefileParser
from .spreadsheet import SpreadsheetParser
from .registry import ParserRegistry

__all__ = [
    "ImportErrorLog",
    "RecordParser",
    "RowError",
    "pick_source_id",
    "GeoJsonParser",
    "KmlParser",
    "ShapefileParser",
    "SpreadsheetParser",
    "ParserRegistry",
]

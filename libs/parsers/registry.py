# =============================================================================
# Parser Registry
# =============================================================================
# FormatKind -> parser lookup, resolved once per job.
# =============================================================================

from libs.errors import UnsupportedFormat
from libs.models import FormatKind, SwapPolicy
from .base import RecordParser
from .geojson import GeoJsonParser
from .kml import KmlParser
from .shapefile import ShapefileParser
from .spreadsheet import SpreadsheetParser

__all__ = ["ParserRegistry"]


class ParserRegistry:
    """
    Registry of format parsers by source FormatKind.

    Parsers are instantiated fresh for each job (no shared state).
    """

    @staticmethod
    def get_parser(kind: FormatKind, swap_policy: SwapPolicy = SwapPolicy.MAGNITUDE) -> RecordParser:
        """
        Get the parser for a classified source file.

        Args:
            kind: Classification of the (primary) source file
            swap_policy: Latitude/longitude policy for tabular and KML sources

        Raises:
            UnsupportedFormat: For archives (resolve members first) or unknown kinds
        """
        factories = {
            FormatKind.SHAPEFILE: ShapefileParser,
            FormatKind.SPREADSHEET: lambda: SpreadsheetParser(swap_policy=swap_policy),
            FormatKind.KML: lambda: KmlParser(swap_policy=swap_policy),
            FormatKind.GEOJSON: GeoJsonParser,
        }
        factory = factories.get(kind)
        if factory is None:
            raise UnsupportedFormat(f"No parser for {getattr(kind, 'value', kind)}")
        return factory()

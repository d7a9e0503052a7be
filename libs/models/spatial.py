# =============================================================================
# Spatial Types Module
# =============================================================================
# Provides the closed sets the pipelines dispatch on:
# - GeometryKind: the six supported simple-feature geometry kinds
# - SwapPolicy: latitude/longitude transposition policy
# - FormatKind: source file classification
# - ExportFormat: export target formats
# - SRID constants for the geographic and default storage systems
# =============================================================================

from enum import Enum

from libs.errors import UnsupportedFormat

__all__ = [
    "GEOGRAPHIC_SRID",
    "DEFAULT_STORAGE_SRID",
    "GeometryKind",
    "SwapPolicy",
    "FormatKind",
    "ExportFormat",
]

GEOGRAPHIC_SRID = 4326
DEFAULT_STORAGE_SRID = 31984  # SIRGAS 2000 / UTM zone 24S


# =============================================================================
# Enums
# =============================================================================

class GeometryKind(str, Enum):
    """Geometry kinds accepted by the parsers, router and writers."""
    POINT = "Point"
    LINESTRING = "LineString"
    POLYGON = "Polygon"
    MULTIPOINT = "MultiPoint"
    MULTILINESTRING = "MultiLineString"
    MULTIPOLYGON = "MultiPolygon"

    @property
    def is_multi(self) -> bool:
        return self.value.startswith("Multi")

    @property
    def single(self) -> "GeometryKind":
        """Member kind of a Multi kind (identity for single kinds)."""
        return GeometryKind(self.value[5:]) if self.is_multi else self

    @property
    def multi(self) -> "GeometryKind":
        return self if self.is_multi else GeometryKind("Multi" + self.value)

    @classmethod
    def from_name(cls, value: str) -> "GeometryKind":
        """Resolve case-insensitively ("POINT", "multipolygon", "LineString")."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise ValueError(f"Unknown geometry kind: {value!r}")


class SwapPolicy(str, Enum):
    """
    When a latitude/longitude pair read from tabular or KML sources is
    treated as transposed.

    MAGNITUDE swaps whenever |lat| > |lon|. It is correct only for regions
    where longitudes are larger in magnitude than latitudes (the Brazilian
    operating region), and silently miscorrects data elsewhere.
    OUT_OF_RANGE swaps only when the latitude is impossible (> 90) and the
    longitude would be a valid latitude. NEVER keeps values as given.
    """
    MAGNITUDE = "magnitude"
    OUT_OF_RANGE = "out_of_range"
    NEVER = "never"


class FormatKind(str, Enum):
    """Source file classification produced by the format detector."""
    ARCHIVE = "archive"
    SHAPEFILE = "shapefile"
    SPREADSHEET = "spreadsheet"
    KML = "kml"
    GEOJSON = "geojson"


class ExportFormat(str, Enum):
    """Export target formats."""
    SHP = "SHP"
    GEOJSON = "GEOJSON"
    KML = "KML"
    DXF = "DXF"

    @property
    def extension(self) -> str:
        return {
            ExportFormat.SHP: "zip",
            ExportFormat.GEOJSON: "geojson",
            ExportFormat.KML: "kml",
            ExportFormat.DXF: "dxf",
        }[self]

    @classmethod
    def parse(cls, value: "str | ExportFormat") -> "ExportFormat":
        """
        Resolve a requested format name, accepting the common aliases.

        Raises:
            UnsupportedFormat: If the name is outside SHP/GEOJSON/KML/DXF
        """
        if isinstance(value, ExportFormat):
            return value
        aliases = {
            "SHP": cls.SHP,
            "SHAPEFILE": cls.SHP,
            "GEOJSON": cls.GEOJSON,
            "JSON": cls.GEOJSON,
            "KML": cls.KML,
            "DXF": cls.DXF,
        }
        key = (value or "").strip().upper()
        if key not in aliases:
            raise UnsupportedFormat(f"Unsupported export format: {value!r}")
        return aliases[key]

# =============================================================================
# Spatial Utils Library
# =============================================================================
# Coordinate resolution, source format detection, header normalization and
# geometry validity helpers shared by the import and export pipelines.
# =============================================================================

"""
Spatial utilities for the GIS pipelines.

This library provides:
- Coordinate resolver: UTM zone detection, pyproj transforms, swap policy
- Format detector: file classification and archive member selection
- Tabular headers: header keys and column alias resolution
- Geometry: kind compatibility, validity report, opt-in repair
"""

from .coordinates import (
    CoordinateNormalizer,
    Transform,
    ZoneCode,
    ZoneInfo,
    apply_transform,
    build_transform,
    detect_zone,
    resolve_lat_lon,
    srid_from_crs,
    resolve_source_crs,
    transform_geometry,
    zone_info,
)
from .formats import ArchiveMembers, classify, resolve_archive_members
from .geometry import (
    RepairOutcome,
    ValidityReport,
    kinds_compatible,
    repair_geometry,
    to_geojson_dict,
    validate_geometry,
)
from .tabular_headers import build_column_index, normalize_header_key, resolve_column, resolve_columns

__version__ = "0.1.0"

__all__ = [
    "CoordinateNormalizer",
    "Transform",
    "ZoneCode",
    "ZoneInfo",
    "apply_transform",
    "build_transform",
    "detect_zone",
    "resolve_lat_lon",
    "srid_from_crs",
    "resolve_source_crs",
    "transform_geometry",
    "zone_info",
    "ArchiveMembers",
    "classify",
    "resolve_archive_members",
    "RepairOutcome",
    "ValidityReport",
    "kinds_compatible",
    "repair_geometry",
    "validate_geometry",
    "to_geojson_dict",
    "build_column_index",
    "normalize_header_key",
    "resolve_column",
    "resolve_columns",
]

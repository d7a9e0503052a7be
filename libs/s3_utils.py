# =============================================================================
# S3 Path Utilities
# =============================================================================
# Job source and result locations are either local paths or s3:// URLs in
# MinIO. These helpers tell them apart and split/build the URLs.
# =============================================================================

"""
S3 path utilities for job locations.

This module provides functions for:
- Recognizing s3:// locations
- Parsing S3 paths into bucket and key components
- Building S3 paths for export results
"""

from typing import Tuple

__all__ = [
    "is_s3_path",
    "parse_s3_path",
    "build_s3_path",
]


def is_s3_path(location: str) -> bool:
    """
    True for ``s3://`` locations.

    Examples:
        >>> is_s3_path("s3://gis-uploads/jobs/42/postes.zip")
        True
        >>> is_s3_path("/data/uploads/postes.zip")
        False
    """
    return location.startswith("s3://")


def parse_s3_path(s3_path: str) -> Tuple[str, str]:
    """
    Parse S3 path into bucket and key components.

    Args:
        s3_path: Full S3 path (e.g., "s3://gis-uploads/jobs/42/postes.zip")

    Returns:
        Tuple of (bucket, key) e.g., ("gis-uploads", "jobs/42/postes.zip")

    Raises:
        ValueError: If path is not valid s3:// format or missing key
    """
    if not is_s3_path(s3_path):
        raise ValueError(
            f"Invalid S3 path format: '{s3_path}'. Must start with 's3://'"
        )

    bucket, _, key = s3_path[5:].partition("/")
    if not bucket or not key:
        raise ValueError(
            f"Invalid S3 path format: '{s3_path}'. Expected 's3://bucket/key'"
        )

    return bucket, key


def build_s3_path(bucket: str, key: str) -> str:
    """
    Join a bucket and key into an S3 path.

    Examples:
        >>> build_s3_path("gis-exports", "exports/export_BAIRROS_42.kml")
        's3://gis-exports/exports/export_BAIRROS_42.kml'
    """
    if not bucket or not key:
        raise ValueError("bucket and key are required")
    return f"s3://{bucket}/{key.lstrip('/')}"

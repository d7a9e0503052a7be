# =============================================================================
# Geometry Utilities
# =============================================================================
# Geometry kind compatibility, validity reporting and the opt-in zero-width
# buffer repair step.
# =============================================================================

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import shapely
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity

from libs.errors import GeometryRepairError
from libs.models import GeometryKind

__all__ = [
    "RepairOutcome",
    "ValidityReport",
    "kinds_compatible",
    "validate_geometry",
    "to_geojson_dict",
    "repair_geometry",
]

logger = logging.getLogger(__name__)


class RepairOutcome(str, Enum):
    VALID = "valid"
    REPAIRED = "repaired"
    UNREPAIRABLE = "unrepairable"


@dataclass(frozen=True)
class ValidityReport:
    """Validity of one geometry and whether buffer(0) would fix it."""

    is_valid: bool
    reason: Optional[str] = None
    can_be_fixed: bool = False


def kinds_compatible(expected: Optional[GeometryKind], actual: GeometryKind) -> bool:
    """
    True when a record of kind ``actual`` belongs on a layer of ``expected``.

    A layer without an expected kind accepts everything, and a Multi layer
    also accepts its single-member kind.
    """
    if expected is None or expected == actual:
        return True
    return expected.is_multi and expected.single == actual


def _buffer_zero(geometry: BaseGeometry) -> Optional[BaseGeometry]:
    try:
        fixed = geometry.buffer(0)
    except GEOSException as exc:
        logger.debug("buffer(0) raised: %s", exc)
        return None
    if fixed.is_empty or not fixed.is_valid:
        return None
    return fixed


def validate_geometry(geometry: BaseGeometry) -> ValidityReport:
    """Report validity, and for invalid areal geometries whether buffer(0) fixes them."""
    if geometry.is_valid:
        return ValidityReport(is_valid=True)
    fixable = geometry.geom_type in ("Polygon", "MultiPolygon") and _buffer_zero(geometry) is not None
    return ValidityReport(is_valid=False, reason=explain_validity(geometry), can_be_fixed=fixable)


def repair_geometry(geometry: BaseGeometry, source_id: str = "") -> tuple[BaseGeometry, RepairOutcome]:
    """
    Single best-effort repair attempt for an invalid geometry.

    Only areal geometries are repaired; the repaired result must stay within
    the same geometry family (a Polygon may become a MultiPolygon).

    Raises:
        GeometryRepairError: If the geometry is invalid and could not be repaired
    """
    report = validate_geometry(geometry)
    if report.is_valid:
        return geometry, RepairOutcome.VALID

    if not report.can_be_fixed:
        logger.warning("Geometry %s could not be repaired: %s", source_id, report.reason)
        raise GeometryRepairError(
            f"could not repair {geometry.geom_type} ({report.reason})", field="geometry"
        )

    fixed = _buffer_zero(geometry)
    logger.info("Geometry %s repaired with buffer(0): %s", source_id, report.reason)
    # buffer(0) keeps one side of a self-intersection, so lobes can be lost
    if not math.isclose(fixed.area, geometry.area, rel_tol=1e-6):
        logger.warning(
            "Repair of geometry %s changed its area from %.6f to %.6f",
            source_id, geometry.area, fixed.area,
        )
    return fixed, RepairOutcome.REPAIRED


def to_geojson_dict(geometry: BaseGeometry) -> dict:
    """GeoJSON geometry mapping with plain lists, ready for BSON/JSON storage."""
    return json.loads(shapely.to_geojson(geometry))

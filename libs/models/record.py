# =============================================================================
# Record Models
# =============================================================================
# Transient per-record structures flowing through the import and export
# pipelines. These live only while one record is processed and are never
# persisted as-is, so they are plain dataclasses rather than Pydantic models.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
import json
import math
from typing import Any, Optional, Union

from shapely.geometry.base import BaseGeometry

from libs.errors import ParseError
from .spatial import GeometryKind

__all__ = [
    "AttributeValue",
    "Attributes",
    "coerce_attribute",
    "ParsedRecord",
    "Sink",
    "RoutedRecord",
    "ExportFeature",
]

AttributeValue = Union[str, int, float, bool, None]
Attributes = dict[str, AttributeValue]


def coerce_attribute(value: Any) -> AttributeValue:
    """
    Reduce a source value to one of the accepted attribute kinds.

    Dates and times become ISO strings, decimals become floats, NaN becomes
    None and containers are serialized to JSON text.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    # numpy scalars and similar expose item()
    item = getattr(value, "item", None)
    if callable(item):
        return coerce_attribute(item())
    return str(value)


@dataclass
class ParsedRecord:
    """
    One source record: a typed geometry, its SRID and an ordered attribute bag.

    Attributes:
        geometry: Shapely geometry of one of the GeometryKind kinds
        srid: SRID of the geometry coordinates (None if the source declares none)
        attributes: Ordered attribute mapping with scalar values
        source_id: Best-effort natural key, used as externalId downstream
        row_index: Position in the source file for error attribution
        source_crs: WKT of a declared coordinate system that has no EPSG code
    """

    geometry: BaseGeometry
    srid: Optional[int]
    attributes: Attributes = field(default_factory=dict)
    source_id: str = ""
    row_index: int = 0
    source_crs: Optional[str] = None
    kind: GeometryKind = field(init=False)

    def __post_init__(self) -> None:
        if self.geometry is None or self.geometry.is_empty:
            raise ParseError("record has no geometry", field="geometry")
        try:
            self.kind = GeometryKind(self.geometry.geom_type)
        except ValueError:
            raise ParseError(
                f"unsupported geometry kind {self.geometry.geom_type}", field="geometry"
            ) from None


class Sink(str, Enum):
    """Destination of a routed record."""

    REFERENCE = "reference"
    DISTRICT = "district"
    DOWNSTREAM = "downstream"


@dataclass(frozen=True)
class RoutedRecord:
    """Output of the business router: a sink and the payload to hand it."""

    sink: Sink
    payload: dict[str, Any]


@dataclass(frozen=True)
class ExportFeature:
    """A stored feature as consumed by the export writers."""

    id: str
    external_id: Optional[str]
    geometry: BaseGeometry
    srid: int

    @property
    def kind(self) -> GeometryKind:
        return GeometryKind(self.geometry.geom_type)

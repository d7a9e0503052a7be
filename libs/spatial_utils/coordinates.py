# =============================================================================
# Coordinate Resolver
# =============================================================================
# UTM zone detection for the operating region (SIRGAS 2000 zones 23S-25S),
# pyproj transform construction, geometry reprojection and the configurable
# latitude/longitude swap policy used by the tabular and KML parsers.
# =============================================================================

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import IntEnum
from functools import lru_cache
from typing import Any, Optional

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform as shapely_transform

from libs.errors import InvalidInput, ParseError, UnsupportedProjection
from libs.models import DEFAULT_STORAGE_SRID, ParsedRecord, SwapPolicy

__all__ = [
    "ZoneCode",
    "ZoneInfo",
    "Transform",
    "detect_zone",
    "zone_info",
    "build_transform",
    "apply_transform",
    "transform_geometry",
    "srid_from_crs",
    "resolve_source_crs",
    "resolve_lat_lon",
    "CoordinateNormalizer",
]

logger = logging.getLogger(__name__)


# =============================================================================
# Zones
# =============================================================================

class ZoneCode(IntEnum):
    """Projected systems of the operating region (EPSG codes)."""

    SIRGAS2000_UTM_23S = 31983
    SIRGAS2000_UTM_24S = 31984
    SIRGAS2000_UTM_25S = 31985


@dataclass(frozen=True)
class ZoneInfo:
    epsg: int
    name: str
    longitude_range: tuple[float, float]
    covered_regions: tuple[str, ...]

    def contains(self, longitude: float) -> bool:
        low, high = self.longitude_range
        return low <= longitude <= high


# Band edges, west to east. A longitude on an edge belongs to the western band.
REGION_WEST_EDGE = -48.0
ZONE_23S_EAST_EDGE = -42.0
ZONE_24S_EAST_EDGE = -36.0
REGION_EAST_EDGE = -30.0

_ZONES: dict[ZoneCode, ZoneInfo] = {
    ZoneCode.SIRGAS2000_UTM_23S: ZoneInfo(
        epsg=31983,
        name="SIRGAS 2000 / UTM zone 23S",
        longitude_range=(REGION_WEST_EDGE, ZONE_23S_EAST_EDGE),
        covered_regions=("Distrito Federal", "Goiás (east)", "Minas Gerais (west)", "São Paulo (east)", "Tocantins (east)"),
    ),
    ZoneCode.SIRGAS2000_UTM_24S: ZoneInfo(
        epsg=31984,
        name="SIRGAS 2000 / UTM zone 24S",
        longitude_range=(ZONE_23S_EAST_EDGE, ZONE_24S_EAST_EDGE),
        covered_regions=("Espírito Santo", "Rio de Janeiro", "Bahia", "Minas Gerais (east)", "Sergipe", "Ceará"),
    ),
    ZoneCode.SIRGAS2000_UTM_25S: ZoneInfo(
        epsg=31985,
        name="SIRGAS 2000 / UTM zone 25S",
        longitude_range=(ZONE_24S_EAST_EDGE, REGION_EAST_EDGE),
        covered_regions=("Alagoas", "Pernambuco", "Paraíba", "Rio Grande do Norte", "Fernando de Noronha"),
    ),
}


def detect_zone(longitude: Optional[float]) -> ZoneCode:
    """
    Map a longitude inside the operating region to its projected zone.

    Raises:
        InvalidInput: If longitude is missing, not finite or outside
            [-48, -30]
    """
    if longitude is None:
        raise InvalidInput("longitude is required to detect a zone")
    try:
        value = float(longitude)
    except (TypeError, ValueError):
        raise InvalidInput(f"longitude is not numeric: {longitude!r}") from None
    if not math.isfinite(value):
        raise InvalidInput(f"longitude is not finite: {longitude!r}")
    if value < REGION_WEST_EDGE or value > REGION_EAST_EDGE:
        raise InvalidInput(
            f"longitude {value} is outside the operating region "
            f"[{REGION_WEST_EDGE}, {REGION_EAST_EDGE}]"
        )

    if value <= ZONE_23S_EAST_EDGE:
        return ZoneCode.SIRGAS2000_UTM_23S
    if value <= ZONE_24S_EAST_EDGE:
        return ZoneCode.SIRGAS2000_UTM_24S
    return ZoneCode.SIRGAS2000_UTM_25S


def zone_info(code: int | ZoneCode) -> ZoneInfo:
    """Static zone metadata. Raises InvalidInput for unknown codes."""
    try:
        return _ZONES[ZoneCode(int(code))]
    except (TypeError, ValueError):
        raise InvalidInput(f"unknown zone code: {code!r}") from None


# =============================================================================
# Transforms
# =============================================================================

@dataclass(frozen=True)
class Transform:
    """A reusable source -> target coordinate transform (always x/y order)."""

    source_srid: Optional[int]
    target_srid: Optional[int]
    transformer: Transformer


@lru_cache(maxsize=64)
def _crs_from_epsg(code: int) -> CRS:
    return CRS.from_epsg(code)


def _to_crs(value: Any) -> CRS:
    try:
        if isinstance(value, CRS):
            return value
        if isinstance(value, int):
            return _crs_from_epsg(value)
        return CRS.from_user_input(value)
    except (CRSError, TypeError, ValueError) as exc:
        raise UnsupportedProjection(f"Cannot decode coordinate system {value!r}: {exc}") from exc


def build_transform(source_crs: Any, target_crs: Any) -> Transform:
    """
    Build a transform between two coordinate systems.

    Accepts EPSG integers, "EPSG:n" strings, WKT or pyproj CRS objects.

    Raises:
        UnsupportedProjection: If either system is undecodable or pyproj
            has no operation between them
    """
    source = _to_crs(source_crs)
    target = _to_crs(target_crs)
    try:
        transformer = Transformer.from_crs(source, target, always_xy=True)
    except ProjError as exc:
        raise UnsupportedProjection(
            f"No transform from {source.to_string()} to {target.to_string()}: {exc}"
        ) from exc
    return Transform(
        source_srid=source.to_epsg(),
        target_srid=target.to_epsg(),
        transformer=transformer,
    )


def apply_transform(point: tuple[float, float], transform: Transform) -> tuple[float, float]:
    """Transform one (x, y) pair."""
    x, y = transform.transformer.transform(point[0], point[1])
    return x, y


def transform_geometry(geometry: BaseGeometry, transform: Transform) -> BaseGeometry:
    """
    Reproject every vertex of a geometry.

    Raises:
        ParseError: If the result has non-finite coordinates (the geometry
            lies outside the transform's domain)
    """
    projected = shapely_transform(transform.transformer.transform, geometry)
    if not all(math.isfinite(value) for value in projected.bounds):
        source = (
            f"EPSG:{transform.source_srid}" if transform.source_srid is not None
            else transform.transformer.source_crs.name
        )
        raise ParseError(
            f"geometry falls outside the domain of {source} -> EPSG:{transform.target_srid}",
            field="geometry",
        )
    return projected


def resolve_source_crs(crs_input: Any) -> tuple[Optional[int], Optional[str]]:
    """
    Decode a CRS definition (.prj WKT, fiona CRS, URN) into ``(srid, wkt)``.

    ``srid`` is the EPSG code when pyproj finds a confident match. Otherwise
    ``wkt`` carries the decoded definition so it can still drive a transform.
    Both are None when the input is empty or unreadable.
    """
    if not crs_input:
        return None, None
    try:
        crs = CRS.from_user_input(crs_input)
    except (CRSError, TypeError, ValueError) as exc:
        logger.warning("Unreadable coordinate system definition ignored: %s", exc)
        return None, None
    code = crs.to_epsg()
    if code is not None:
        return code, None
    logger.info("Coordinate system %r has no EPSG code; keeping its definition", crs.name)
    return None, crs.to_wkt()


def srid_from_crs(crs_input: Any) -> Optional[int]:
    """Best-effort EPSG code for a CRS definition, None without a confident match."""
    return resolve_source_crs(crs_input)[0]


# =============================================================================
# Latitude / longitude swap policy
# =============================================================================

def resolve_lat_lon(lat: float, lon: float, policy: SwapPolicy) -> tuple[float, float, bool]:
    """
    Apply the configured transposition policy to a latitude/longitude pair.

    Returns:
        Tuple of (latitude, longitude, swapped)

    Examples:
        >>> resolve_lat_lon(-40.31, -20.36, SwapPolicy.MAGNITUDE)
        (-20.36, -40.31, True)
        >>> resolve_lat_lon(-40.31, -20.36, SwapPolicy.NEVER)
        (-40.31, -20.36, False)
    """
    if policy == SwapPolicy.MAGNITUDE and abs(lat) > abs(lon):
        return lon, lat, True
    if policy == SwapPolicy.OUT_OF_RANGE and abs(lat) > 90 and abs(lon) <= 90:
        return lon, lat, True
    return lat, lon, False


# =============================================================================
# Per-job normalizer
# =============================================================================

class CoordinateNormalizer:
    """
    Brings every record of one job into the job's target SRID.

    The target is the layer SRID when configured. Otherwise it is fixed by
    the first record: the UTM zone of its longitude for geographic sources,
    or the source SRID itself for projected sources. Transforms are built
    once per source SRID and reused for the rest of the job.
    """

    def __init__(self, layer_srid: Optional[int] = None, fallback_srid: int = DEFAULT_STORAGE_SRID):
        self.target_srid = layer_srid
        self._fallback_srid = fallback_srid
        self._transforms: dict[int | str, Transform] = {}

    def normalize(self, record: ParsedRecord) -> ParsedRecord:
        # An EPSG code wins; a CRS without one is keyed by its WKT
        source = record.srid or record.source_crs or self.target_srid or self._fallback_srid
        if self.target_srid is None:
            self.target_srid = self._resolve_target(record, source)
            logger.info("Resolved target SRID %s from record %s", self.target_srid, record.source_id)

        if source == self.target_srid:
            if record.srid == self.target_srid and record.source_crs is None:
                return record
            return replace(record, srid=self.target_srid, source_crs=None)

        transform = self._transforms.get(source)
        if transform is None:
            transform = build_transform(source, self.target_srid)
            self._transforms[source] = transform
        return replace(
            record,
            geometry=transform_geometry(record.geometry, transform),
            srid=self.target_srid,
            source_crs=None,
        )

    def _resolve_target(self, record: ParsedRecord, source: int | str) -> int:
        crs = _to_crs(source)
        if not crs.is_geographic:
            if isinstance(source, int):
                return source
            logger.warning(
                "Projected source %r has no EPSG code; storing in SRID %s",
                crs.name,
                self._fallback_srid,
            )
            return self._fallback_srid
        longitude = record.geometry.representative_point().x
        try:
            return int(detect_zone(longitude))
        except InvalidInput:
            logger.warning(
                "First record lies outside the operating region (lon=%s); using SRID %s",
                longitude,
                self._fallback_srid,
            )
            return self._fallback_srid

# =============================================================================
# Business Router
# =============================================================================
# Decides the sink of each normalized record from the layer's business
# target and shapes the sink payload.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Optional


from libs.models import (
    Attributes,
    BusinessTarget,
    GeometryKind,
    LayerConfig,
    ParsedRecord,
    RoutedRecord,
    Sink,
)
from libs.spatial_utils.geometry import kinds_compatible, to_geojson_dict
from libs.spatial_utils.tabular_headers import NAME_ALIASES, normalize_header_key

__all__ = ["BusinessRouter", "apply_attribute_mapping", "UNNAMED_DISTRICT"]

logger = logging.getLogger(__name__)

UNNAMED_DISTRICT = "Unnamed"


def _lookup(attributes: Attributes, field_name: str) -> tuple[bool, Any]:
    if field_name in attributes:
        return True, attributes[field_name]
    key = normalize_header_key(field_name)
    for name, value in attributes.items():
        if normalize_header_key(name) == key:
            return True, value
    return False, None


def apply_attribute_mapping(attributes: Attributes, mapping_config: dict[str, str]) -> dict[str, Any]:
    """
    Rename/select attributes through an ordered source -> destination mapping.

    Source fields are matched exactly first, then by normalized header key.
    Fields absent from the record are left out.
    """
    payload: dict[str, Any] = {}
    for source_field, destination in mapping_config.items():
        found, value = _lookup(attributes, source_field)
        if found:
            payload[destination] = value
    return payload


class BusinessRouter:
    """
    Routes records of one layer.

    Records must already be in the job's target SRID; the router attaches
    that SRID and, for the downstream service, the projected X/Y.
    """

    def __init__(self, layer: LayerConfig):
        self.layer = layer

    def route(self, record: ParsedRecord) -> Optional[RoutedRecord]:
        """Return the routed record, or None when the record is skipped."""
        if not kinds_compatible(self.layer.geometry_type, record.kind):
            logger.warning(
                "Skipping %s on layer %s: geometry %s does not match %s",
                record.source_id,
                self.layer.code,
                record.kind.value,
                self.layer.geometry_type.value,
            )
            return None

        target = self.layer.business_target
        if target == BusinessTarget.DOWNSTREAM_SERVICE:
            return RoutedRecord(Sink.DOWNSTREAM, self._downstream_payload(record))
        if target == BusinessTarget.DISTRICTS:
            return RoutedRecord(Sink.DISTRICT, self._district_payload(record))
        return RoutedRecord(Sink.REFERENCE, self._reference_payload(record))

    def _downstream_payload(self, record: ParsedRecord) -> dict[str, Any]:
        if self.layer.attribute_mapping:
            payload = apply_attribute_mapping(record.attributes, self.layer.attribute_mapping)
        else:
            payload = {"code": record.source_id}

        point = record.geometry
        if record.kind != GeometryKind.POINT:
            point = record.geometry.representative_point()
        payload["externalId"] = record.source_id
        payload["sirgasX"] = point.x
        payload["sirgasY"] = point.y
        payload["srid"] = record.srid
        return payload

    def _district_payload(self, record: ParsedRecord) -> dict[str, Any]:
        name = None
        for alias in NAME_ALIASES:
            found, value = _lookup(record.attributes, alias)
            if found and value not in (None, ""):
                name = str(value)
                break
        return {
            "layer_code": self.layer.code,
            "code": record.source_id,
            "name": name or UNNAMED_DISTRICT,
            "area": record.geometry.area,
            "geometry": to_geojson_dict(record.geometry),
            "srid": record.srid,
            "metadata": dict(record.attributes),
        }

    def _reference_payload(self, record: ParsedRecord) -> dict[str, Any]:
        return {
            "layer_code": self.layer.code,
            "external_id": record.source_id,
            "geometry": to_geojson_dict(record.geometry),
            "srid": record.srid,
            "properties": dict(record.attributes),
        }

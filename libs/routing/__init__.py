"""Record routing: business router and downstream batch publisher."""

from .publisher import BatchPublisher
from .router import UNNAMED_DISTRICT, BusinessRouter, apply_attribute_mapping

__all__ = [
    "BatchPublisher",
    "BusinessRouter",
    "UNNAMED_DISTRICT",
    "apply_attribute_mapping",
]

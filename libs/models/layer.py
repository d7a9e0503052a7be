# =============================================================================
# Layer Configuration Model
# =============================================================================
# Read-only map layer configuration owned by the configuration service.
# =============================================================================

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .spatial import GeometryKind


__all__ = ["BusinessTarget", "LayerConfig"]


class BusinessTarget(str, Enum):
    """Destination family for a layer's parsed records."""

    NONE = "NONE"
    LOCAL_REFERENCE = "LOCAL_REFERENCE"
    DISTRICTS = "DISTRICTS"
    DOWNSTREAM_SERVICE = "DOWNSTREAM_SERVICE"


class LayerConfig(BaseModel):
    """
    Map layer configuration.

    Attributes:
        code: Unique layer code
        name: Display name
        geometry_type: Expected geometry kind; records of another kind are skipped
        business_target: Where routed records go
        srid: Storage SRID; resolved from file content when absent
        attribute_mapping: Ordered source field -> destination field mapping
        exportable: False for layers whose records are owned downstream
    """

    model_config = ConfigDict(extra="ignore")

    code: str = Field(..., min_length=1, description="Unique layer code")
    name: Optional[str] = Field(None, description="Display name")
    geometry_type: Optional[GeometryKind] = Field(None, description="Expected geometry kind")
    business_target: BusinessTarget = Field(BusinessTarget.NONE)
    srid: Optional[int] = Field(None, gt=0, description="Storage SRID")
    attribute_mapping: dict[str, str] = Field(default_factory=dict)
    exportable: bool = Field(True, description="Whether export jobs may read this layer")

    @field_validator("geometry_type", mode="before")
    @classmethod
    def _parse_geometry_type(cls, value):
        if value is None or isinstance(value, GeometryKind):
            return value
        if isinstance(value, str):
            if not value.strip() or value.strip().upper() in ("GEOMETRY", "ANY"):
                return None
            return GeometryKind.from_name(value)
        return value

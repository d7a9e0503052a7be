# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models, enums and record types for the GIS import/export pipelines.
# =============================================================================

"""
Data models for the GIS pipelines.

This library provides:
- Spatial enums: GeometryKind, FormatKind, ExportFormat, SwapPolicy
- Job: job ledger document and its status transitions
- LayerConfig: read-only map layer configuration
- Records: ParsedRecord, RoutedRecord, ExportFeature
- Messages: trigger and downstream batch envelopes
- Configuration models
"""

__version__ = "0.1.0"

# Spatial types
from .spatial import (
    DEFAULT_STORAGE_SRID,
    GEOGRAPHIC_SRID,
    ExportFormat,
    FormatKind,
    GeometryKind,
    SwapPolicy,
)

# Job models
from .job import (
    ALLOWED_TRANSITIONS,
    Job,
    JobKind,
    JobStatus,
    can_transition,
)

# Layer models
from .layer import (
    BusinessTarget,
    LayerConfig,
)

# Record models
from .record import (
    AttributeValue,
    Attributes,
    ExportFeature,
    ParsedRecord,
    RoutedRecord,
    Sink,
    coerce_attribute,
)

# Message models
from .messages import (
    MAX_BATCH_SIZE,
    DownstreamBatch,
    ExportTrigger,
    ImportTrigger,
)

# Configuration models
from .config import (
    MinIOSettings,
    MongoSettings,
    PipelineSettings,
    RabbitMQSettings,
)

__all__ = [
    # Spatial types
    "DEFAULT_STORAGE_SRID",
    "GEOGRAPHIC_SRID",
    "ExportFormat",
    "FormatKind",
    "GeometryKind",
    "SwapPolicy",
    # Job models
    "ALLOWED_TRANSITIONS",
    "Job",
    "JobKind",
    "JobStatus",
    "can_transition",
    # Layer models
    "BusinessTarget",
    "LayerConfig",
    # Record models
    "AttributeValue",
    "Attributes",
    "ExportFeature",
    "ParsedRecord",
    "RoutedRecord",
    "Sink",
    "coerce_attribute",
    # Message models
    "MAX_BATCH_SIZE",
    "DownstreamBatch",
    "ExportTrigger",
    "ImportTrigger",
    # Configuration models
    "MinIOSettings",
    "MongoSettings",
    "PipelineSettings",
    "RabbitMQSettings",
]

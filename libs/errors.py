# =============================================================================
# Pipeline Error Taxonomy
# =============================================================================
# Row-level errors (ParseError, GeometryRepairError) are counted and skipped.
# Every other PipelineError is job-fatal: the job is marked FAILED and the
# Dagster run fails.
# =============================================================================

"""Domain errors and failure typing for the GIS import/export pipelines."""

__all__ = [
    "PipelineError",
    "InvalidInput",
    "ParseError",
    "GeometryRepairError",
    "UnsupportedFormat",
    "NoValidMember",
    "UnsupportedProjection",
    "PublishError",
    "LayerNotFound",
    "JobNotFound",
    "InvalidTransition",
    "EmptyLayer",
    "ExportNotAllowed",
]


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"
    job_fatal = True


class InvalidInput(PipelineError):
    """Raised when a caller passes a value outside an operation's domain."""

    error_code = "INVALID_INPUT"


class ParseError(PipelineError):
    """Raised for one malformed source record."""

    error_code = "PARSE_ERROR"
    job_fatal = False

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class GeometryRepairError(ParseError):
    """Raised when an invalid geometry survives the repair attempt."""

    error_code = "GEOMETRY_UNREPAIRABLE"


class UnsupportedFormat(PipelineError):
    """Raised when a file or export format is outside the supported set."""

    error_code = "UNSUPPORTED_FORMAT"


class NoValidMember(PipelineError):
    """Raised when an archive holds no recognized format family."""

    error_code = "NO_VALID_MEMBER"


class UnsupportedProjection(PipelineError):
    """Raised when a CRS cannot be decoded or no transform path exists."""

    error_code = "UNSUPPORTED_PROJECTION"


class PublishError(PipelineError):
    """Raised when a downstream batch could not be delivered."""

    error_code = "PUBLISH_ERROR"


class LayerNotFound(PipelineError):
    """Raised when a job references an unknown layer code."""

    error_code = "LAYER_NOT_FOUND"


class JobNotFound(PipelineError):
    """Raised when a job id has no ledger document."""

    error_code = "JOB_NOT_FOUND"


class InvalidTransition(PipelineError):
    """Raised when a job status change would break PENDING→PROCESSING→terminal."""

    error_code = "INVALID_TRANSITION"


class EmptyLayer(PipelineError):
    """Raised when an export is requested for a layer with no stored features."""

    error_code = "EMPTY_LAYER"


class ExportNotAllowed(PipelineError):
    """Raised when a layer is configured as non-exportable."""

    error_code = "EXPORT_NOT_ALLOWED"

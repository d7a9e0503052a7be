# =============================================================================
# Channel Message Models
# =============================================================================
# Inbound job triggers and the outbound downstream batch envelope.
# Triggers arrive either as JSON ({"jobId": ..., "layerCode": ...}) or in the
# legacy delimited form "jobId;layerCode[;FORMAT]".
# =============================================================================

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


__all__ = ["ImportTrigger", "ExportTrigger", "DownstreamBatch", "MAX_BATCH_SIZE"]

MAX_BATCH_SIZE = 50


def _decode_body(body: bytes | str, field_names: tuple[str, ...]) -> dict[str, Any]:
    text = body.decode("utf-8") if isinstance(body, (bytes, bytearray)) else body
    text = text.strip()
    if text.startswith("{"):
        return json.loads(text)
    parts = [part.strip() for part in text.split(";")]
    if len(parts) < 2 or not all(parts[:2]):
        raise ValueError(f"Malformed trigger message: {text!r}")
    return dict(zip(field_names, parts))


class ImportTrigger(BaseModel):
    """Inbound request to process an import job."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job_id: str = Field(..., min_length=1, alias="jobId")
    layer_code: str = Field(..., min_length=1, alias="layerCode")

    @classmethod
    def parse(cls, body: bytes | str) -> "ImportTrigger":
        """
        Parse a queue message body.

        Raises:
            ValueError: If the body is neither JSON nor the delimited form
            pydantic.ValidationError: If required fields are missing
        """
        return cls.model_validate(_decode_body(body, ("jobId", "layerCode")))


class ExportTrigger(BaseModel):
    """Inbound request to process an export job."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job_id: str = Field(..., min_length=1, alias="jobId")
    layer_code: str = Field(..., min_length=1, alias="layerCode")
    # Kept as sent; resolved by the export job so an unknown name fails the job
    format: Optional[str] = Field(None, description="Requested format; falls back to the job parameters")

    @field_validator("format", mode="before")
    @classmethod
    def _blank_format(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @classmethod
    def parse(cls, body: bytes | str) -> "ExportTrigger":
        """Parse a queue message body (see ImportTrigger.parse)."""
        return cls.model_validate(_decode_body(body, ("jobId", "layerCode", "format")))


class DownstreamBatch(BaseModel):
    """Envelope for one batch of downstream-bound payloads."""

    job_id: str
    layer_code: str
    sequence: int = Field(..., ge=1, description="1-based batch number within the job")
    records: list[dict[str, Any]] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)
    source: Optional[str] = Field(None, description="Source file name")

# =============================================================================
# Batch Publisher
# =============================================================================
# Accumulates downstream-bound payloads and publishes them in bounded
# batches. One instance per job.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Callable

from libs.errors import PublishError
from libs.models import MAX_BATCH_SIZE

__all__ = ["BatchPublisher"]

logger = logging.getLogger(__name__)

PublishFn = Callable[[list[dict[str, Any]], int], None]


class BatchPublisher:
    """
    Bounded accumulator in front of a publish function.

    ``publish(records, sequence)`` must return only once delivery is
    confirmed; the accumulator is cleared after it returns. Any exception
    it raises surfaces as PublishError with the batch still buffered.
    """

    def __init__(self, publish: PublishFn, batch_size: int = MAX_BATCH_SIZE):
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
        self._publish = publish
        self.batch_size = batch_size
        self._buffer: list[dict[str, Any]] = []
        self.batches_published = 0
        self.records_published = 0

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def add(self, payload: dict[str, Any]) -> None:
        self._buffer.append(payload)
        if len(self._buffer) >= self.batch_size:
            self._flush()

    def flush_remainder(self) -> None:
        """Publish the final partial batch, if any. Call once at job end."""
        if self._buffer:
            self._flush()

    def _flush(self) -> None:
        batch = list(self._buffer)
        sequence = self.batches_published + 1
        try:
            self._publish(batch, sequence)
        except PublishError:
            raise
        except Exception as exc:
            raise PublishError(f"Failed to publish batch {sequence} ({len(batch)} records): {exc}") from exc

        self._buffer.clear()
        self.batches_published += 1
        self.records_published += len(batch)
        logger.debug("Published batch %d with %d records", sequence, len(batch))

# =============================================================================
# Base Classes for Format Parsers
# =============================================================================
# Abstract parser contract and the per-job row error log.
# =============================================================================

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence

from libs.models import Attributes, ParsedRecord
from libs.spatial_utils.tabular_headers import ID_ALIASES, normalize_header_key

__all__ = ["RecordParser", "RowError", "ImportErrorLog", "pick_source_id"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowError:
    row_index: int
    error_type: str
    message: str
    field: Optional[str] = None

    def __str__(self) -> str:
        location = f"Row {self.row_index}"
        if self.field:
            location += f" [{self.field}]"
        return f"{location}: {self.error_type} - {self.message}"


@dataclass
class ImportErrorLog:
    """
    Row-level errors of one job invocation.

    Created fresh for every job and passed down the call chain, so counts
    never leak between jobs.
    """

    errors: list[RowError] = field(default_factory=list)
    counts: Counter = field(default_factory=Counter)

    def add(self, row_index: int, error_type: str, message: str, field_name: str | None = None) -> None:
        entry = RowError(row_index, error_type, message, field_name)
        self.errors.append(entry)
        self.counts[error_type] += 1
        logger.debug("%s", entry)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def summary(self, limit: int = 5) -> str:
        """
        Human-readable summary: totals by type, then the first ``limit`` errors.
        """
        if not self.errors:
            return "No errors"
        by_type = ", ".join(f"{name}: {count}" for name, count in self.counts.most_common())
        lines = [f"{self.error_count} row(s) with errors ({by_type})"]
        lines.extend(str(entry) for entry in self.errors[:limit])
        remaining = self.error_count - limit
        if remaining > 0:
            lines.append(f"... and {remaining} more")
        return "\n".join(lines)


def pick_source_id(attributes: Attributes, aliases: Sequence[str] = ID_ALIASES) -> Optional[str]:
    """Return the first non-blank attribute value whose key matches an id alias."""
    by_key: dict[str, str] = {}
    for name in attributes:
        by_key.setdefault(normalize_header_key(name), name)
    for alias in aliases:
        name = by_key.get(normalize_header_key(alias))
        if name is None:
            continue
        value = attributes[name]
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value).strip()
    return None


class RecordParser(ABC):
    """
    Base class for all format parsers.

    ``open`` returns a lazy, finite sequence of ParsedRecord. A row that
    cannot be turned into a record is added to ``errors`` and skipped; only
    failures to read the file itself propagate.
    """

    @abstractmethod
    def open(self, path: Path, errors: ImportErrorLog) -> Iterator[ParsedRecord]:
        """
        Stream records from a source file.

        Args:
            path: Source file (the primary member for multi-file formats)
            errors: Row error log of the current job

        Returns:
            Iterator of ParsedRecord; re-open the file to restart
        """
        raise NotImplementedError

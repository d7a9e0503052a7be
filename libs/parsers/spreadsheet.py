# =============================================================================
# Spreadsheet Parser
# =============================================================================
# Reads point records from field survey spreadsheets (.xlsx/.xlsm/.xls/.csv).
# Header position and spelling vary between files, so the header row is
# located by scanning and coordinate columns are resolved through aliases.
# =============================================================================

from __future__ import annotations

import logging
import math
import re
import zipfile
from pathlib import Path
from typing import Any, Iterator, Optional

import pandas as pd
from shapely.geometry import Point

from libs.errors import ParseError, UnsupportedFormat
from libs.models import GEOGRAPHIC_SRID, ParsedRecord, SwapPolicy, coerce_attribute
from libs.spatial_utils.coordinates import resolve_lat_lon
from libs.spatial_utils.tabular_headers import (
    HEADER_SCAN_LIMIT,
    LATITUDE_ALIASES,
    LONGITUDE_ALIASES,
    build_column_index,
    find_header_row,
    resolve_columns,
)
from .base import ImportErrorLog, RecordParser, pick_source_id

__all__ = ["SpreadsheetParser", "read_sheet"]

logger = logging.getLogger(__name__)

_EXCEL_ENGINES = {".xlsx": "openpyxl", ".xlsm": "openpyxl", ".xls": "xlrd"}

# Survey cells carry units and stray marks ("-20.3°", "S -20,36")
_NON_NUMERIC_PATTERN = re.compile(r"[^0-9.,\-]")


def read_sheet(path: Path) -> pd.DataFrame:
    """
    Load the first sheet (or the CSV) as raw cells, without header inference.

    Raises:
        UnsupportedFormat: If the file cannot be read as a spreadsheet
    """
    suffix = path.suffix.lower()
    try:
        if suffix == ".csv":
            try:
                return pd.read_csv(
                    path, header=None, dtype=object, keep_default_na=False,
                    sep=None, engine="python", encoding="utf-8-sig",
                )
            except UnicodeDecodeError:
                logger.info("CSV %s is not UTF-8, re-reading as Latin-1", path.name)
                return pd.read_csv(
                    path, header=None, dtype=object, keep_default_na=False,
                    sep=None, engine="python", encoding="latin-1",
                )
        engine = _EXCEL_ENGINES.get(suffix)
        if engine is None:
            raise UnsupportedFormat(f"Unsupported spreadsheet type: {path.name}")
        return pd.read_excel(path, sheet_name=0, header=None, dtype=object, engine=engine)
    except (ValueError, OSError, zipfile.BadZipFile, pd.errors.ParserError) as exc:
        raise UnsupportedFormat(f"Cannot read spreadsheet {path.name}: {exc}") from exc


def _parse_coordinate(value: Any, column: str) -> float:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        raise ParseError(f"missing {column}", field=column)
    if isinstance(value, bool):
        raise ParseError(f"{column} is not numeric: {value!r}", field=column)
    if isinstance(value, (int, float)):
        return float(value)
    text = _NON_NUMERIC_PATTERN.sub("", str(value)).replace(",", ".")
    if not text:
        raise ParseError(f"missing {column}", field=column)
    try:
        number = float(text)
    except ValueError:
        raise ParseError(f"{column} is not numeric: {value!r}", field=column) from None
    if not math.isfinite(number):
        raise ParseError(f"{column} is not finite: {value!r}", field=column)
    return number


def _first_coordinate(cells: list, columns: list[int], labels: list[str]) -> float:
    """
    Parse the first candidate column whose cell holds a usable number.

    Raises:
        ParseError: From the first candidate when no column parses
    """
    first_error: Optional[ParseError] = None
    for column in columns:
        try:
            return _parse_coordinate(cells[column], labels[column])
        except ParseError as exc:
            if first_error is None:
                first_error = exc
    raise first_error


def _is_blank_row(row: tuple) -> bool:
    return all(coerce_attribute(cell) in (None, "") for cell in row)


class SpreadsheetParser(RecordParser):
    """One geographic point record per data row."""

    def __init__(self, swap_policy: SwapPolicy = SwapPolicy.MAGNITUDE):
        self.swap_policy = swap_policy

    def open(self, path: Path, errors: ImportErrorLog) -> Iterator[ParsedRecord]:
        path = Path(path)
        frame = read_sheet(path)

        rows = list(frame.head(HEADER_SCAN_LIMIT).itertuples(index=False, name=None))
        header_index = find_header_row(rows)
        if header_index is None:
            raise UnsupportedFormat(
                f"No header row within the first {HEADER_SCAN_LIMIT} rows of {path.name}"
            )

        column_index, labels = build_column_index(rows[header_index])
        lat_cols = resolve_columns(column_index, LATITUDE_ALIASES)
        lon_cols = resolve_columns(column_index, LONGITUDE_ALIASES)
        if not lat_cols or not lon_cols:
            raise UnsupportedFormat(
                f"{path.name} has no latitude/longitude columns (headers: {labels})"
            )
        logger.info(
            "Reading %s: header at row %d, latitude=%s, longitude=%s",
            path.name, header_index + 1,
            [labels[c] for c in lat_cols], [labels[c] for c in lon_cols],
        )

        swapped_rows = 0
        data = frame.iloc[header_index + 1:].itertuples(index=True, name=None)
        for position, *cells in data:
            row_number = int(position) + 1
            if _is_blank_row(tuple(cells)):
                continue
            try:
                record, swapped = self._to_record(cells, labels, lat_cols, lon_cols, row_number)
            except ParseError as exc:
                errors.add(row_number, exc.error_code, str(exc), exc.field)
                continue
            swapped_rows += swapped
            yield record

        if swapped_rows:
            logger.warning(
                "%s: latitude/longitude swapped on %d row(s) by policy %s",
                path.name, swapped_rows, self.swap_policy.value,
            )

    def _to_record(
        self,
        cells: list,
        labels: list[str],
        lat_cols: list[int],
        lon_cols: list[int],
        row_number: int,
    ) -> tuple[ParsedRecord, bool]:
        attributes = {
            labels[idx]: coerce_attribute(cell)
            for idx, cell in enumerate(cells)
            if idx < len(labels)
        }
        lat = _first_coordinate(cells, lat_cols, labels)
        lon = _first_coordinate(cells, lon_cols, labels)
        lat, lon, swapped = resolve_lat_lon(lat, lon, self.swap_policy)
        if abs(lat) > 90 or abs(lon) > 180:
            raise ParseError(f"coordinates out of range: lat={lat}, lon={lon}", field="coordinates")

        source_id: Optional[str] = pick_source_id(attributes)
        record = ParsedRecord(
            geometry=Point(lon, lat),
            srid=GEOGRAPHIC_SRID,
            attributes=attributes,
            source_id=source_id or f"ROW-{row_number}",
            row_index=row_number,
        )
        return record, swapped

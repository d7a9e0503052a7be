# =============================================================================
# Tabular Headers Module
# =============================================================================
# Provides deterministic header normalization for spreadsheet ingestion.
# Headers written by different field teams vary in case, accents, spacing and
# punctuation ("COORDENADA_Y_LATLONG", "Coordenada Y (lat/long)", "latitude").
# Every header and every alias is reduced to the same lookup key so columns
# can be resolved from ordered alias lists.
# =============================================================================

import logging
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

__all__ = [
    "normalize_header_key",
    "find_header_row",
    "build_column_index",
    "resolve_column",
    "resolve_columns",
    "LATITUDE_ALIASES",
    "LONGITUDE_ALIASES",
    "ID_ALIASES",
    "NAME_ALIASES",
    "HEADER_SCAN_LIMIT",
]

log = logging.getLogger(__name__)

# Header row must be within the first N rows of a sheet
HEADER_SCAN_LIMIT = 50

# -----------------------------------------------------------------------------
# Column aliases (first match wins, keep most specific first)
# -----------------------------------------------------------------------------
LATITUDE_ALIASES: Tuple[str, ...] = (
    "COORDENADA_Y_LATLONG",
    "coordenada_y_latlo",
    "latitude",
    "lat",
    "latitud",
    "y",
    "coordenada_y",
)

LONGITUDE_ALIASES: Tuple[str, ...] = (
    "COORDENADA_X_LATLONG",
    "coordenada_x_latlo",
    "longitude",
    "lon",
    "longitud",
    "lng",
    "x",
    "coordenada_x",
)

ID_ALIASES: Tuple[str, ...] = (
    "externalId",
    "external_id",
    "ext_id",
    "ID DA LÂMPADA",
    "id",
    "code",
    "codigo",
)

NAME_ALIASES: Tuple[str, ...] = (
    "NAME",
    "nome",
    "nome_bairro",
    "nm_bairro",
)

_NON_ALNUM_PATTERN = re.compile(r"[^a-z0-9]")


def normalize_header_key(text: Any) -> str:
    """
    Reduce a header (or alias) to its lookup key.

    Steps: line breaks to spaces, accent folding, lowercase, then every
    character outside [a-z0-9] removed.

    Examples:
        >>> normalize_header_key("COORDENADA_Y_LATLONG")
        'coordenadaylatlong'
        >>> normalize_header_key(" Potência da\\nLâmpada ")
        'potenciadalampada'
        >>> normalize_header_key(None)
        ''
    """
    if text is None:
        return ""
    value = str(text).replace("\r", " ").replace("\n", " ")
    value = unicodedata.normalize("NFKD", value)
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    return _NON_ALNUM_PATTERN.sub("", value.lower())


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN
        return True
    return not str(value).strip()


def find_header_row(rows: Iterable[Sequence[Any]], limit: int = HEADER_SCAN_LIMIT) -> Optional[int]:
    """
    Return the index of the first row with at least one non-blank cell.

    Only the first ``limit`` rows are inspected; None if all are blank.
    """
    for index, row in enumerate(rows):
        if index >= limit:
            break
        if any(not _is_blank(cell) for cell in row):
            return index
    return None


def build_column_index(headers: Sequence[Any]) -> Tuple[Dict[str, int], List[str]]:
    """
    Build the normalized-key -> column index map for a header row.

    The first column wins when two headers normalize to the same key.
    Blank headers are labelled ``col_<index>`` so that their values are
    still carried as attributes.

    Returns:
        Tuple of:
        - column_index: Dict mapping normalized key -> column position
        - labels: Display label per column (original text, stripped)
    """
    column_index: Dict[str, int] = {}
    labels: List[str] = []
    for idx, header in enumerate(headers):
        label = "" if _is_blank(header) else str(header).strip()
        if not label:
            label = f"col_{idx}"
        labels.append(label)

        key = normalize_header_key(label)
        if not key:
            continue
        if key in column_index:
            log.debug("Duplicate header %r at column %d ignored for lookup", label, idx)
            continue
        column_index[key] = idx
    return column_index, labels


def resolve_columns(column_index: Dict[str, int], aliases: Sequence[str]) -> List[int]:
    """
    Return the positions of every alias present in ``column_index``, in alias order.

    Examples:
        >>> index, _ = build_column_index(["lat", "COORDENADA_Y_LATLONG"])
        >>> resolve_columns(index, LATITUDE_ALIASES)
        [1, 0]
    """
    positions: List[int] = []
    for alias in aliases:
        position = column_index.get(normalize_header_key(alias))
        if position is not None and position not in positions:
            positions.append(position)
    return positions


def resolve_column(column_index: Dict[str, int], aliases: Sequence[str]) -> Optional[int]:
    """Return the position of the first alias present in ``column_index``."""
    positions = resolve_columns(column_index, aliases)
    return positions[0] if positions else None

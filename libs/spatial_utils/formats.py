# =============================================================================
# Format Detector
# =============================================================================
# Classifies uploaded source files and unpacks ZIP archives into a per-job
# scratch directory, keeping only the members of one recognized format
# family.
# =============================================================================

from __future__ import annotations

import logging
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from libs.errors import NoValidMember, UnsupportedFormat
from libs.models import FormatKind

__all__ = [
    "ZIP_SIGNATURE",
    "MAX_ARCHIVE_BYTES",
    "ArchiveMembers",
    "classify",
    "resolve_archive_members",
]

logger = logging.getLogger(__name__)

ZIP_SIGNATURE = b"PK\x03\x04"
MAX_ARCHIVE_BYTES = 200 * 1024 * 1024

# Spreadsheet containers that are themselves ZIP files
_ZIP_CONTAINER_SUFFIXES = {".xlsx", ".xlsm"}

_EXTENSION_KINDS: dict[str, FormatKind] = {
    ".zip": FormatKind.ARCHIVE,
    ".shp": FormatKind.SHAPEFILE,
    ".xlsx": FormatKind.SPREADSHEET,
    ".xlsm": FormatKind.SPREADSHEET,
    ".xls": FormatKind.SPREADSHEET,
    ".csv": FormatKind.SPREADSHEET,
    ".kml": FormatKind.KML,
    ".geojson": FormatKind.GEOJSON,
    ".json": FormatKind.GEOJSON,
}

# Archive member families in precedence order: (kind, member suffixes, primary suffixes)
_FAMILIES: tuple[tuple[FormatKind, frozenset[str], frozenset[str]], ...] = (
    (
        FormatKind.SHAPEFILE,
        frozenset({".shp", ".shx", ".dbf", ".prj", ".cpg"}),
        frozenset({".shp"}),
    ),
    (
        FormatKind.SPREADSHEET,
        frozenset({".xlsx", ".xlsm", ".xls", ".csv"}),
        frozenset({".xlsx", ".xlsm", ".xls", ".csv"}),
    ),
    (FormatKind.GEOJSON, frozenset({".geojson", ".json"}), frozenset({".geojson", ".json"})),
    (FormatKind.KML, frozenset({".kml"}), frozenset({".kml"})),
)


@dataclass(frozen=True)
class ArchiveMembers:
    """Result of unpacking an archive."""

    primary: Path
    kind: FormatKind
    directory: Path


def _read_signature(path: Path) -> bytes:
    with open(path, "rb") as handle:
        return handle.read(len(ZIP_SIGNATURE))


def classify(path: str | Path) -> FormatKind:
    """
    Classify a source file by ZIP signature, then by extension.

    Raises:
        UnsupportedFormat: If the file is neither an archive nor has an
            allow-listed extension
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix not in _ZIP_CONTAINER_SUFFIXES and path.is_file():
        if _read_signature(path) == ZIP_SIGNATURE:
            return FormatKind.ARCHIVE

    kind = _EXTENSION_KINDS.get(suffix)
    if kind is None:
        raise UnsupportedFormat(f"Unsupported file type: {path.name}")
    if kind is FormatKind.ARCHIVE:
        raise UnsupportedFormat(f"File {path.name} has a .zip extension but is not a ZIP archive")
    return kind


def _is_metadata_member(name: PurePosixPath) -> bool:
    return name.parts[0] == "__MACOSX" or name.name.startswith("._")


def resolve_archive_members(archive: str | Path, scratch_dir: str | Path) -> ArchiveMembers:
    """
    Extract an archive and select its primary member.

    Entries are streamed into ``scratch_dir`` with their directory
    components dropped. The first family found in precedence order
    (geometry set, spreadsheet, GeoJSON, KML) is kept; files of other
    families are deleted. For a geometry set the primary member is the
    first ``.shp`` by name.

    Raises:
        NoValidMember: If no family is present (the scratch directory is
            removed), or if the archive is corrupt or too large
    """
    archive = Path(archive)
    scratch_dir = Path(scratch_dir)
    scratch_dir.mkdir(parents=True, exist_ok=True)

    try:
        extracted = _extract_flat(archive, scratch_dir)
    except (zipfile.BadZipFile, NoValidMember) as exc:
        shutil.rmtree(scratch_dir, ignore_errors=True)
        if isinstance(exc, NoValidMember):
            raise
        raise NoValidMember(f"Corrupt archive {archive.name}: {exc}") from exc

    for kind, members, primaries in _FAMILIES:
        candidates = sorted(p for p in extracted if p.suffix.lower() in primaries)
        if not candidates:
            continue
        for path in extracted:
            if path.suffix.lower() not in members:
                path.unlink(missing_ok=True)
        logger.info(
            "Archive %s resolved to %s member %s", archive.name, kind.value, candidates[0].name
        )
        return ArchiveMembers(primary=candidates[0], kind=kind, directory=scratch_dir)

    shutil.rmtree(scratch_dir, ignore_errors=True)
    raise NoValidMember(
        f"Archive {archive.name} contains no shapefile, spreadsheet, GeoJSON or KML member"
    )


def _extract_flat(archive: Path, scratch_dir: Path) -> list[Path]:
    extracted: list[Path] = []
    total_bytes = 0
    with zipfile.ZipFile(archive) as bundle:
        for info in bundle.infolist():
            if info.is_dir():
                continue
            name = PurePosixPath(info.filename.replace("\\", "/"))
            if _is_metadata_member(name) or not name.name:
                continue

            total_bytes += info.file_size
            if total_bytes > MAX_ARCHIVE_BYTES:
                raise NoValidMember(
                    f"Archive {archive.name} expands beyond {MAX_ARCHIVE_BYTES} bytes"
                )

            target = scratch_dir / name.name
            if target in extracted:
                logger.warning("Duplicate archive member %s ignored", info.filename)
                continue
            with bundle.open(info) as source, open(target, "wb") as sink:
                shutil.copyfileobj(source, sink, length=32 * 1024)
            extracted.append(target)
    return extracted

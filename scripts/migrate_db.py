# =============================================================================
# MongoDB Migration Runner
# =============================================================================
# Applies the numbered migrations in services/mongodb/migrations/ in order.
# Applied versions are recorded in schema_migrations so reruns are no-ops.
# =============================================================================

import importlib.util
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import CollectionInvalid, OperationFailure

from libs.models import MongoSettings

MIGRATIONS_COLLECTION = "schema_migrations"
CONTAINER_MIGRATIONS_DIR = Path("/app/services/mongodb/migrations")

UpFunction = Callable[[Database], None]


def discover_migrations(migrations_dir: Path) -> list[tuple[str, Path]]:
    """
    List ``NNN_*.py`` migration files sorted by their 3-digit version.

    Raises:
        ValueError: If the directory is missing or two files share a version
    """
    if not migrations_dir.exists():
        raise ValueError(f"Migrations directory does not exist: {migrations_dir}")

    found: dict[str, Path] = {}
    for file_path in sorted(migrations_dir.glob("*.py")):
        name = file_path.name
        if name.startswith("__"):
            continue
        version = name[:3]
        if not version.isdigit():
            print(f"Warning: Skipping '{name}' - no 3-digit version prefix", file=sys.stderr)
            continue
        if version in found:
            raise ValueError(f"Duplicate migration version '{version}' found in '{name}'")
        found[version] = file_path

    return sorted(found.items())


def load_migration_module(file_path: Path) -> tuple[str, UpFunction]:
    """
    Import a migration file and return its ``VERSION`` and ``up``.

    Raises:
        ImportError: If the file cannot be imported
        ValueError: If VERSION or up() is missing or has the wrong type
    """
    spec = importlib.util.spec_from_file_location(f"migration_{file_path.stem}", file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load migration module from {file_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    version = getattr(module, "VERSION", None)
    if version is None:
        raise ValueError(f"Migration '{file_path.name}' missing VERSION constant")
    if not isinstance(version, str):
        raise ValueError(
            f"Migration '{file_path.name}' VERSION must be a string, got {type(version).__name__}"
        )

    up_func = getattr(module, "up", None)
    if up_func is None:
        raise ValueError(f"Migration '{file_path.name}' missing up() function")
    if not callable(up_func):
        raise ValueError(f"Migration '{file_path.name}' up must be callable")
    return version, up_func


def ensure_migrations_collection(db: Database) -> None:
    try:
        db.create_collection(MIGRATIONS_COLLECTION)
    except CollectionInvalid:
        pass
    try:
        db[MIGRATIONS_COLLECTION].create_index("version", unique=True)
    except OperationFailure:
        pass


def applied_versions(db: Database) -> set[str]:
    return {doc["version"] for doc in db[MIGRATIONS_COLLECTION].find({}, {"version": 1})}


def run_migrations(db: Database, migrations_dir: Path) -> list[str]:
    """
    Apply every pending migration in version order.

    A migration is recorded only after its up() returned, so a failed
    migration is retried on the next start.

    Returns:
        Versions applied by this call
    """
    ensure_migrations_collection(db)
    done = applied_versions(db)
    applied: list[str] = []

    for version, file_path in discover_migrations(migrations_dir):
        if version in done:
            print(f"Skipping migration {version}: already applied")
            continue

        module_version, up_func = load_migration_module(file_path)
        if module_version != version:
            raise ValueError(
                f"Migration '{file_path.name}' VERSION '{module_version}' "
                f"does not match filename version '{version}'"
            )

        started = time.monotonic()
        up_func(db)
        duration_ms = int((time.monotonic() - started) * 1000)
        db[MIGRATIONS_COLLECTION].insert_one(
            {
                "version": version,
                "applied_at": datetime.now(timezone.utc),
                "duration_ms": duration_ms,
            }
        )
        print(f"Applied migration {version} (took {duration_ms}ms)")
        applied.append(version)

    return applied


def resolve_migrations_dir() -> Path:
    local = Path(__file__).resolve().parent.parent / "services" / "mongodb" / "migrations"
    return local if local.exists() else CONTAINER_MIGRATIONS_DIR


def main() -> int:
    settings = MongoSettings()
    client = MongoClient(settings.connection_string, serverSelectionTimeoutMS=10000)
    try:
        applied = run_migrations(client[settings.database], resolve_migrations_dir())
    except Exception as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1
    finally:
        client.close()

    print(f"Migrations complete ({len(applied)} applied)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

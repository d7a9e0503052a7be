"""
Migration 001: Baseline Schema

Creates the job ledger, the layer configuration collection and the two
local sinks (reference features and district boundaries) with their
indexes.

Schema constants are FROZEN - do not modify. Create new migration for changes.
"""

from pymongo.database import Database
from pymongo.errors import CollectionInvalid

VERSION = "001"

# =============================================================================
# FROZEN SCHEMA CONSTANTS - DO NOT MODIFY
# =============================================================================

JOBS_SCHEMA_V001 = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["job_id", "kind", "status", "created_at"],
        "properties": {
            "job_id": {"bsonType": "string"},
            "kind": {"enum": ["IMPORT", "EXPORT"]},
            "status": {"enum": ["PENDING", "PROCESSING", "COMPLETED", "FAILED"]},
            "parameters": {"bsonType": ["object", "null"]},
            "location": {"bsonType": ["string", "null"]},
            "rows_processed": {"bsonType": ["int", "long"], "minimum": 0},
            "rows_with_errors": {"bsonType": ["int", "long"], "minimum": 0},
            "rows_skipped": {"bsonType": ["int", "long"], "minimum": 0},
            "error_summary": {"bsonType": ["string", "null"], "maxLength": 1000},
            "created_at": {"bsonType": "date"},
            "started_at": {"bsonType": ["date", "null"]},
            "completed_at": {"bsonType": ["date", "null"]},
        },
    }
}

LAYERS_SCHEMA_V001 = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["code", "name", "business_target"],
        "properties": {
            "code": {"bsonType": "string"},
            "name": {"bsonType": "string"},
            "geometry_type": {"bsonType": ["string", "null"]},
            "business_target": {
                "enum": ["NONE", "LOCAL_REFERENCE", "DISTRICTS", "DOWNSTREAM_SERVICE"]
            },
            "srid": {"bsonType": ["int", "null"]},
            "attribute_mapping": {
                "bsonType": ["object", "null"],
                "additionalProperties": {"bsonType": "string"},
            },
            "exportable": {"bsonType": "bool"},
        },
    }
}

FEATURES_SCHEMA_V001 = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["layer_code", "geometry", "srid", "created_at"],
        "properties": {
            "layer_code": {"bsonType": "string"},
            "external_id": {"bsonType": ["string", "null"]},
            "job_id": {"bsonType": ["string", "null"]},
            "geometry": {
                "bsonType": "object",
                "required": ["type", "coordinates"],
            },
            "srid": {"bsonType": "int"},
            "properties": {"bsonType": ["object", "null"]},
            "created_at": {"bsonType": "date"},
        },
    }
}

DISTRICTS_SCHEMA_V001 = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["layer_code", "code", "name", "geometry", "srid", "created_at"],
        "properties": {
            "layer_code": {"bsonType": "string"},
            "code": {"bsonType": "string"},
            "name": {"bsonType": "string"},
            "area": {"bsonType": ["double", "int", "null"]},
            "geometry": {
                "bsonType": "object",
                "required": ["type", "coordinates"],
            },
            "srid": {"bsonType": "int"},
            "metadata": {"bsonType": ["object", "null"]},
            "job_id": {"bsonType": ["string", "null"]},
            "created_at": {"bsonType": "date"},
        },
    }
}


def _ensure_collection(db: Database, name: str, validator: dict) -> None:
    try:
        db.create_collection(
            name,
            validator=validator,
            validationLevel="strict",
            validationAction="error",
        )
    except CollectionInvalid:
        db.command(
            "collMod",
            name,
            validator=validator,
            validationLevel="strict",
            validationAction="error",
        )


def up(db: Database) -> None:
    """Apply baseline schema migration."""

    # Job ledger
    _ensure_collection(db, "jobs", JOBS_SCHEMA_V001)
    db.jobs.create_index([("job_id", 1)], unique=True)
    db.jobs.create_index([("status", 1)])
    db.jobs.create_index([("kind", 1), ("created_at", -1)])

    # Layer configuration
    _ensure_collection(db, "layers", LAYERS_SCHEMA_V001)
    db.layers.create_index([("code", 1)], unique=True)

    # Reference features
    _ensure_collection(db, "spatial_features", FEATURES_SCHEMA_V001)
    db.spatial_features.create_index([("layer_code", 1)])
    db.spatial_features.create_index([("job_id", 1)])
    db.spatial_features.create_index([("layer_code", 1), ("external_id", 1)])

    # District boundaries
    _ensure_collection(db, "district_boundaries", DISTRICTS_SCHEMA_V001)
    db.district_boundaries.create_index([("code", 1)])
    db.district_boundaries.create_index([("layer_code", 1)])

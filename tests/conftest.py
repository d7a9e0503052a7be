"""
Shared pytest fixtures.

Provides a mongomock-backed MongoDBResource, layer/job factories and small
source-file builders so parser, op and writer tests stay short.
"""

import json
from unittest.mock import Mock

import fiona
import mongomock
import pytest
from shapely.geometry import mapping

from libs.models import Job, JobKind, LayerConfig, PipelineSettings
from services.dagster.etl_pipelines.resources import MongoDBResource


# =============================================================================
# MongoDB Fixtures
# =============================================================================

@pytest.fixture
def mongomock_client():
    return mongomock.MongoClient()


@pytest.fixture
def mongo_resource(monkeypatch, mongomock_client):
    monkeypatch.setattr(
        "services.dagster.etl_pipelines.resources.mongodb_resource.MongoClient",
        lambda *args, **kwargs: mongomock_client,
    )
    return MongoDBResource(connection_string="mongodb://localhost:27017", database="gis_test")


@pytest.fixture
def gis_db(mongo_resource, mongomock_client):
    """Raw mongomock database behind mongo_resource."""
    return mongomock_client["gis_test"]


@pytest.fixture
def add_layer(gis_db):
    """Insert a layer configuration document and return it as LayerConfig."""

    def _add(code="POSTES", **fields):
        document = {
            "code": code,
            "name": fields.pop("name", code.title()),
            "business_target": fields.pop("business_target", "LOCAL_REFERENCE"),
            **fields,
        }
        gis_db["layers"].insert_one(dict(document))
        return LayerConfig(**document)

    return _add


@pytest.fixture
def add_job(mongo_resource):
    """Insert a PENDING job and return its id."""

    def _add(job_id="job-1", kind=JobKind.IMPORT, **fields):
        mongo_resource.insert_job(Job(job_id=job_id, kind=kind, **fields))
        return job_id

    return _add


# =============================================================================
# Op Fixtures
# =============================================================================

@pytest.fixture
def mock_log():
    return Mock()


@pytest.fixture
def pipeline_settings(tmp_path):
    return PipelineSettings(
        scratch_dir=str(tmp_path / "scratch"),
        export_dir=str(tmp_path / "exports"),
        batch_size=50,
        storage_srid=31984,
        swap_policy="magnitude",
        repair_geometries=False,
        upload_exports=False,
    )


# =============================================================================
# Source File Builders
# =============================================================================

@pytest.fixture
def write_shapefile(tmp_path):
    """
    Write a shapefile with fiona.

    Features are (geometry, properties) pairs; properties must match ``fields``.
    """

    def _write(name, geometry_type, features, fields=None, epsg=4326):
        path = tmp_path / f"{name}.shp"
        schema = {"geometry": geometry_type, "properties": fields or {"code": "str:20"}}
        with fiona.open(
            str(path), "w", driver="ESRI Shapefile", schema=schema, crs=f"EPSG:{epsg}"
        ) as sink:
            for geometry, properties in features:
                sink.write({"geometry": mapping(geometry), "properties": properties})
        return path

    return _write


@pytest.fixture
def write_geojson(tmp_path):
    def _write(name, document):
        path = tmp_path / f"{name}.geojson"
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write


def kml_document(placemarks: str, encoding: str = "UTF-8") -> str:
    return (
        f'<?xml version="1.0" encoding="{encoding}"?>\n'
        '<kml xmlns="http://www.opengis.net/kml/2.2"><Document>\n'
        f"{placemarks}\n"
        "</Document></kml>\n"
    )


@pytest.fixture
def write_kml(tmp_path):
    def _write(name, placemarks, encoding="utf-8"):
        path = tmp_path / f"{name}.kml"
        path.write_bytes(kml_document(placemarks).encode(encoding))
        return path

    return _write


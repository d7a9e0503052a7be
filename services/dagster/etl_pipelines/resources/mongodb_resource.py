"""MongoDB Resource - Job ledger, layer configuration and spatial sinks."""

from __future__ import annotations

from datetime import datetime, timezone
from functools import cached_property
from typing import Any, ClassVar, Dict, Iterator

from dagster import ConfigurableResource
from pydantic import Field
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from shapely.geometry import shape

from libs.models import ExportFeature, Job, JobStatus, LayerConfig

__all__ = ["MongoDBResource"]


class MongoDBResource(ConfigurableResource):
    """
    Dagster resource for MongoDB operations.

    Holds the job ledger (mutated only through status transitions), the
    read-only layer configuration, and the two local sinks: reference
    features and district boundaries. It keeps all MongoDB interactions
    centralized so that ops can remain lightweight.
    """

    connection_string: str = Field(..., description="MongoDB connection URI")
    database: str = Field("gis", description="MongoDB database name")

    JOBS: ClassVar[str] = "jobs"
    LAYERS: ClassVar[str] = "layers"
    FEATURES: ClassVar[str] = "spatial_features"
    DISTRICTS: ClassVar[str] = "district_boundaries"

    @cached_property
    def _client(self) -> MongoClient:
        return MongoClient(self.connection_string)

    def _get_db(self) -> Database:
        return self._client[self.database]

    def _get_collection(self, name: str) -> Collection:
        return self._get_db()[name]

    @staticmethod
    def _strip_object_id(doc: Dict) -> Dict:
        stripped = dict(doc)
        stripped.pop("_id", None)
        return stripped

    # ------------------------------------------------------------------
    # Job operations
    # ------------------------------------------------------------------

    def insert_job(self, job: Job) -> str:
        """
        Create a job document (upsert by job_id) and return its ObjectId.

        Jobs are normally created by the upload service; an existing
        document is never overwritten.
        """
        collection = self._get_collection(self.JOBS)
        document = job.model_dump()
        document["kind"] = job.kind.value
        document["status"] = job.status.value
        result = collection.update_one(
            {"job_id": job.job_id},
            {"$setOnInsert": document},
            upsert=True,
        )
        if result.upserted_id:
            return str(result.upserted_id)
        existing = collection.find_one({"job_id": job.job_id}, projection={"_id": 1})
        return str(existing["_id"]) if existing else ""

    def get_job(self, job_id: str) -> Job | None:
        """
        Load a job document by job_id.
        """
        collection = self._get_collection(self.JOBS)
        document = collection.find_one({"job_id": job_id})
        if not document:
            return None
        return Job(**self._strip_object_id(document))

    def transition_job(self, job_id: str, expected: JobStatus, fields: dict[str, Any]) -> bool:
        """
        Apply ``fields`` only if the job is still in status ``expected``.

        Returns:
            True if the document was updated
        """
        collection = self._get_collection(self.JOBS)
        result = collection.update_one(
            {"job_id": job_id, "status": expected.value},
            {"$set": fields},
        )
        return result.matched_count == 1

    # ------------------------------------------------------------------
    # Layer configuration
    # ------------------------------------------------------------------

    def get_layer(self, code: str) -> LayerConfig | None:
        """
        Look up a layer configuration by its code.
        """
        collection = self._get_collection(self.LAYERS)
        document = collection.find_one({"code": code})
        if not document:
            return None
        return LayerConfig(**self._strip_object_id(document))

    # ------------------------------------------------------------------
    # Sinks
    # ------------------------------------------------------------------

    def insert_feature(self, payload: dict[str, Any]) -> str:
        """
        Insert one reference feature.
        """
        collection = self._get_collection(self.FEATURES)
        document = dict(payload, created_at=datetime.now(timezone.utc))
        result = collection.insert_one(document)
        return str(result.inserted_id)

    def insert_district(self, payload: dict[str, Any]) -> str:
        """
        Insert one district boundary.
        """
        collection = self._get_collection(self.DISTRICTS)
        document = dict(payload, created_at=datetime.now(timezone.utc))
        result = collection.insert_one(document)
        return str(result.inserted_id)

    def _feature_query(self, layer_code: str, filters: dict[str, Any] | None) -> dict[str, Any]:
        query: dict[str, Any] = {"layer_code": layer_code}
        for name, value in (filters or {}).items():
            query[f"properties.{name}"] = value
        return query

    def count_features(self, layer_code: str, filters: dict[str, Any] | None = None) -> int:
        """
        Count stored reference features of a layer.
        """
        collection = self._get_collection(self.FEATURES)
        return collection.count_documents(self._feature_query(layer_code, filters))

    def iter_features(
        self, layer_code: str, filters: dict[str, Any] | None = None
    ) -> Iterator[ExportFeature]:
        """
        Stream the stored features of a layer in insertion order.

        Args:
            layer_code: Layer to export
            filters: Optional equality filters on feature properties
        """
        collection = self._get_collection(self.FEATURES)
        cursor = collection.find(self._feature_query(layer_code, filters)).sort("_id", 1)
        for document in cursor:
            yield ExportFeature(
                id=str(document["_id"]),
                external_id=document.get("external_id"),
                geometry=shape(document["geometry"]),
                srid=int(document["srid"]),
            )

# =============================================================================
# Configuration Models Module
# =============================================================================
# Provides Pydantic Settings models for all service configurations:
# - MinIOSettings: S3-compatible object storage for uploads and exports
# - MongoSettings: MongoDB job ledger, layer configuration and sinks
# - RabbitMQSettings: trigger queues and the downstream batch exchange
# - PipelineSettings: import/export behaviour (scratch space, batching,
#   coordinate policies, geometry repair)
# =============================================================================

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from .messages import MAX_BATCH_SIZE
from .spatial import DEFAULT_STORAGE_SRID, SwapPolicy

__all__ = [
    "MinIOSettings",
    "MongoSettings",
    "RabbitMQSettings",
    "PipelineSettings",
]


# =============================================================================
# MinIO Settings (S3-Compatible Object Storage)
# =============================================================================

class MinIOSettings(BaseSettings):
    """
    Configuration for MinIO (S3-compatible object storage).

    Maps environment variables with prefix "MINIO_":
    - MINIO_ENDPOINT → endpoint
    - MINIO_ROOT_USER → access_key
    - MINIO_ROOT_PASSWORD → secret_key
    - MINIO_USE_SSL → use_ssl
    - MINIO_EXPORTS_BUCKET → exports_bucket

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key (maps from MINIO_ROOT_USER)
        secret_key: Secret key (maps from MINIO_ROOT_PASSWORD)
        use_ssl: Whether to use SSL/TLS (default: False)
        exports_bucket: Bucket receiving export results (default: "gis-exports")
    """

    endpoint: str = Field(..., validation_alias="MINIO_ENDPOINT", description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., validation_alias="MINIO_ROOT_USER", description="Access key (maps from MINIO_ROOT_USER)")
    secret_key: str = Field(..., validation_alias="MINIO_ROOT_PASSWORD", description="Secret key (maps from MINIO_ROOT_PASSWORD)")
    use_ssl: bool = Field(False, validation_alias="MINIO_USE_SSL", description="Whether to use SSL/TLS")
    exports_bucket: str = Field("gis-exports", validation_alias="MINIO_EXPORTS_BUCKET", description="Export results bucket")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )


# =============================================================================
# MongoDB Settings (Job Ledger, Layers, Sinks)
# =============================================================================

class MongoSettings(BaseSettings):
    """
    Configuration for MongoDB (job ledger, layer configuration and sinks).

    Maps environment variables with prefix "MONGO_":
    - MONGO_HOST → host
    - MONGO_PORT → port
    - MONGO_INITDB_ROOT_USERNAME → username
    - MONGO_INITDB_ROOT_PASSWORD → password
    - MONGO_DATABASE → database
    - MONGO_AUTH_SOURCE → auth_source
    """

    host: str = Field("mongodb", validation_alias="MONGO_HOST", description="MongoDB host")
    port: int = Field(27017, validation_alias="MONGO_PORT", description="MongoDB port")
    username: str = Field(..., validation_alias="MONGO_INITDB_ROOT_USERNAME", description="MongoDB username")
    password: str = Field(..., validation_alias="MONGO_INITDB_ROOT_PASSWORD", description="MongoDB password")
    database: str = Field("gis", validation_alias="MONGO_DATABASE", description="Database name")
    auth_source: str = Field("admin", validation_alias="MONGO_AUTH_SOURCE", description="Authentication source")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def connection_string(self) -> str:
        """
        Build MongoDB connection URI.

        Format: mongodb://[username]:[password]@[host]:[port]/[database]?authSource=[auth_source]
        """
        return (
            f"mongodb://{self.username}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?authSource={self.auth_source}"
        )


# =============================================================================
# RabbitMQ Settings (Trigger Queues, Downstream Exchange)
# =============================================================================

class RabbitMQSettings(BaseSettings):
    """
    Configuration for RabbitMQ.

    Jobs are triggered from two durable queues. Downstream batches are
    published to the business service's exchange with a fixed routing key.
    """

    host: str = Field("rabbitmq", validation_alias="RABBITMQ_HOST")
    port: int = Field(5672, validation_alias="RABBITMQ_PORT")
    username: str = Field("guest", validation_alias="RABBITMQ_DEFAULT_USER")
    password: str = Field("guest", validation_alias="RABBITMQ_DEFAULT_PASS")
    virtual_host: str = Field("/", validation_alias="RABBITMQ_VHOST")
    import_queue: str = Field("gis.import.queue", validation_alias="RABBITMQ_IMPORT_QUEUE")
    export_queue: str = Field("gis.export.queue", validation_alias="RABBITMQ_EXPORT_QUEUE")
    downstream_exchange: str = Field("ogt.lightpoint.events", validation_alias="RABBITMQ_DOWNSTREAM_EXCHANGE")
    downstream_routing_key: str = Field("lightpoint.import.batch", validation_alias="RABBITMQ_DOWNSTREAM_ROUTING_KEY")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# =============================================================================
# Pipeline Settings
# =============================================================================

class PipelineSettings(BaseSettings):
    """
    Import/export behaviour.

    Maps environment variables:
    - GIS_SCRATCH_DIR → scratch_dir (per-job extraction directories are created inside)
    - GIS_EXPORT_DIR → export_dir
    - GIS_BATCH_SIZE → batch_size (1..50)
    - GIS_STORAGE_SRID → storage_srid (used when a layer declares no SRID and
      the source is neither geographic nor projected)
    - LATLON_SWAP_POLICY → swap_policy
    - GIS_REPAIR_GEOMETRIES → repair_geometries (opt-in buffer(0) repair)
    - GIS_UPLOAD_EXPORTS → upload_exports (copy export results to MinIO)
    """

    scratch_dir: str | None = Field(None, validation_alias="GIS_SCRATCH_DIR")
    export_dir: str = Field("/tmp/gis-exports", validation_alias="GIS_EXPORT_DIR")
    batch_size: int = Field(MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE, validation_alias="GIS_BATCH_SIZE")
    storage_srid: int = Field(DEFAULT_STORAGE_SRID, validation_alias="GIS_STORAGE_SRID")
    swap_policy: SwapPolicy = Field(SwapPolicy.MAGNITUDE, validation_alias="LATLON_SWAP_POLICY")
    repair_geometries: bool = Field(False, validation_alias="GIS_REPAIR_GEOMETRIES")
    upload_exports: bool = Field(False, validation_alias="GIS_UPLOAD_EXPORTS")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

"""Dagster Definitions - Repository Configuration.

Defines jobs, resources, and sensors for the GIS layer import/export pipelines.
"""

from dagster import Definitions, EnvVar

from .jobs import export_layer_job, import_layer_job
from .resources import MinIOResource, MongoDBResource, RabbitMQResource
from .sensors import job_trigger_sensor


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    jobs=[
        import_layer_job,
        export_layer_job,
    ],
    resources={
        "minio": MinIOResource(
            endpoint=EnvVar("MINIO_ENDPOINT"),
            access_key=EnvVar("MINIO_ROOT_USER"),
            secret_key=EnvVar("MINIO_ROOT_PASSWORD"),
            use_ssl=False,
            exports_bucket="gis-exports",
        ),
        "mongodb": MongoDBResource(
            connection_string=EnvVar("MONGO_CONNECTION_STRING"),
            database="gis",
        ),
        "rabbitmq": RabbitMQResource(
            host=EnvVar("RABBITMQ_HOST"),
            username=EnvVar("RABBITMQ_DEFAULT_USER"),
            password=EnvVar("RABBITMQ_DEFAULT_PASS"),
            import_queue="gis.import.queue",
            export_queue="gis.export.queue",
            downstream_exchange="ogt.lightpoint.events",
            downstream_routing_key="lightpoint.import.batch",
        ),
    },
    schedules=[],
    sensors=[
        job_trigger_sensor,  # Routes import/export triggers to their jobs
    ],
)

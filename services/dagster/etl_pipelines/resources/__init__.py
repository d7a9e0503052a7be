"""Dagster Resources - External Service Connections."""

from .minio_resource import MinIOResource
from .mongodb_resource import MongoDBResource
from .rabbitmq_resource import QueueMessage, RabbitMQResource

__all__ = [
    "MinIOResource",
    "MongoDBResource",
    "RabbitMQResource",
    "QueueMessage",
]

# =============================================================================
# RabbitMQ Resource - Trigger Queues and Downstream Batches
# =============================================================================
# Reads job trigger messages from the import/export queues and publishes
# downstream batches with publisher confirms and persistent delivery.
# =============================================================================

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

import pika
from dagster import ConfigurableResource
from pika.adapters.blocking_connection import BlockingChannel
from pydantic import Field

from libs.models import DownstreamBatch

__all__ = ["RabbitMQResource", "QueueMessage"]


@dataclass
class QueueMessage:
    """One message fetched with manual acknowledgement."""

    body: bytes
    delivery_tag: int
    channel: BlockingChannel

    def ack(self) -> None:
        self.channel.basic_ack(delivery_tag=self.delivery_tag)

    def reject(self) -> None:
        # Dead-letter or drop; malformed triggers are never redelivered
        self.channel.basic_reject(delivery_tag=self.delivery_tag, requeue=False)


class RabbitMQResource(ConfigurableResource):
    """
    Dagster resource for RabbitMQ operations.

    Configuration matches RabbitMQSettings from libs.models.config.

    Attributes:
        host: Broker host
        port: Broker AMQP port (default: 5672)
        username: Broker user
        password: Broker password
        virtual_host: Virtual host (default: "/")
        import_queue: Queue carrying import triggers
        export_queue: Queue carrying export triggers
        downstream_exchange: Exchange receiving downstream batches
        downstream_routing_key: Routing key for downstream batches
    """

    host: str = Field(..., description="Broker host")
    port: int = Field(5672, description="Broker AMQP port")
    username: str = Field("guest", description="Broker user")
    password: str = Field("guest", description="Broker password")
    virtual_host: str = Field("/", description="Virtual host")
    import_queue: str = Field("gis.import.queue", description="Import trigger queue")
    export_queue: str = Field("gis.export.queue", description="Export trigger queue")
    downstream_exchange: str = Field("ogt.lightpoint.events", description="Downstream batch exchange")
    downstream_routing_key: str = Field("lightpoint.import.batch", description="Downstream batch routing key")

    def _parameters(self) -> pika.ConnectionParameters:
        return pika.ConnectionParameters(
            host=self.host,
            port=self.port,
            virtual_host=self.virtual_host,
            credentials=pika.PlainCredentials(self.username, self.password),
        )

    @contextmanager
    def open_channel(self) -> Iterator[BlockingChannel]:
        """
        Open a blocking connection and channel, closing both on exit.
        """
        connection = pika.BlockingConnection(self._parameters())
        try:
            yield connection.channel()
        finally:
            if connection.is_open:
                connection.close()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def poll_messages(self, queue: str, limit: int) -> Iterator[QueueMessage]:
        """
        Fetch up to ``limit`` messages from a durable queue.

        Messages are delivered unacknowledged; the caller must ack or reject
        each one before advancing the iterator. Anything left unacknowledged
        when the iterator closes is redelivered by the broker.
        """
        with self.open_channel() as channel:
            channel.queue_declare(queue=queue, durable=True)
            for _ in range(limit):
                method, _properties, body = channel.basic_get(queue=queue, auto_ack=False)
                if method is None:
                    break
                yield QueueMessage(body=body, delivery_tag=method.delivery_tag, channel=channel)

    # ------------------------------------------------------------------
    # Downstream batches
    # ------------------------------------------------------------------

    def _publish(self, channel: BlockingChannel, batch: DownstreamBatch) -> None:
        channel.basic_publish(
            exchange=self.downstream_exchange,
            routing_key=self.downstream_routing_key,
            body=batch.model_dump_json().encode("utf-8"),
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=pika.DeliveryMode.Persistent,
                headers={"job_id": batch.job_id, "sequence": batch.sequence},
            ),
            mandatory=True,
        )

    @contextmanager
    def batch_sender(
        self, job_id: str, layer_code: str, source: Optional[str] = None
    ) -> Iterator[Callable[[list[dict[str, Any]], int], None]]:
        """
        Hold one confirmed channel for a job and yield a ``send(records, sequence)``
        callable suitable for BatchPublisher.

        ``send`` returns only after the broker confirmed the message; an
        unroutable or nacked message raises from pika.
        """
        with self.open_channel() as channel:
            channel.confirm_delivery()

            def send(records: list[dict[str, Any]], sequence: int) -> None:
                batch = DownstreamBatch(
                    job_id=job_id,
                    layer_code=layer_code,
                    sequence=sequence,
                    records=records,
                    source=source,
                )
                self._publish(channel, batch)

            yield send

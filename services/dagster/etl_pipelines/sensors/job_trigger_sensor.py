"""Job trigger sensor for import/export requests arriving on RabbitMQ.

Each poll drains a bounded number of messages from the import and export
queues and turns every well-formed trigger into a RunRequest keyed by job id.
Duplicate deliveries collapse on the run key; the ops themselves are no-ops
for jobs that are no longer PENDING.
"""

from enum import Enum
from typing import Type, Union

from dagster import (
    DefaultSensorStatus,
    RunRequest,
    SensorEvaluationContext,
    SkipReason,
    sensor,
)
from pydantic import ValidationError

from libs.models import ExportTrigger, ImportTrigger
from ..resources import RabbitMQResource


# =============================================================================
# Lane Definitions
# =============================================================================

class Lane(str, Enum):
    """Trigger lanes, one per queue."""
    IMPORT = "import"
    EXPORT = "export"


LANE_TO_JOB: dict[Lane, str] = {
    Lane.IMPORT: "import_layer_job",
    Lane.EXPORT: "export_layer_job",
}

LANE_TO_OP: dict[Lane, str] = {
    Lane.IMPORT: "import_layer",
    Lane.EXPORT: "export_layer",
}

LANE_TO_MODEL: dict[Lane, Type[Union[ImportTrigger, ExportTrigger]]] = {
    Lane.IMPORT: ImportTrigger,
    Lane.EXPORT: ExportTrigger,
}

# Messages drained per queue per evaluation
MAX_MESSAGES_PER_TICK = 25


# =============================================================================
# Run Request Building
# =============================================================================

def parse_trigger(lane: Lane, body: bytes) -> Union[ImportTrigger, ExportTrigger]:
    """
    Parse a message body for a lane.

    Raises:
        ValueError / ValidationError: If the body is malformed
    """
    return LANE_TO_MODEL[lane].parse(body)


def build_run_request(lane: Lane, trigger: Union[ImportTrigger, ExportTrigger]) -> RunRequest:
    """
    Build RunRequest for a trigger.

    Returns:
        RunRequest with lane-prefixed run_key and the trigger as op input
    """
    run_config = {
        "ops": {
            LANE_TO_OP[lane]: {
                "inputs": {
                    "trigger": {
                        "value": trigger.model_dump(mode="json", by_alias=True, exclude_none=True),
                    }
                }
            }
        }
    }

    tags = {
        "job_id": trigger.job_id,
        "layer_code": trigger.layer_code,
        "lane": lane.value,
    }
    if isinstance(trigger, ExportTrigger) and trigger.format is not None:
        tags["format"] = trigger.format.upper()

    return RunRequest(
        run_key=f"{lane.value}:{trigger.job_id}",
        job_name=LANE_TO_JOB[lane],
        run_config=run_config,
        tags=tags,
    )


# =============================================================================
# Sensor Implementation
# =============================================================================

@sensor(
    minimum_interval_seconds=15,
    default_status=DefaultSensorStatus.RUNNING,
    name="job_trigger_sensor",
    description="Polls the import/export trigger queues and launches one run per job",
)
def job_trigger_sensor(context: SensorEvaluationContext, rabbitmq: RabbitMQResource):
    """
    Poll the trigger queues and launch import/export runs.

    Flow per queue:
    1. Fetch up to MAX_MESSAGES_PER_TICK messages (manual ack)
    2. Parse each body as JSON or the delimited legacy form
    3. Malformed: log, reject without requeue, continue
    4. Valid: yield RunRequest (run_key = lane:job_id), then ack

    Args:
        context: Dagster sensor evaluation context
        rabbitmq: RabbitMQResource instance (injected by Dagster)

    Yields:
        RunRequest: For each valid trigger
        SkipReason: If no trigger was found or the broker is unreachable
    """
    queues = {
        Lane.IMPORT: rabbitmq.import_queue,
        Lane.EXPORT: rabbitmq.export_queue,
    }

    requested = 0
    for lane, queue in queues.items():
        try:
            for message in rabbitmq.poll_messages(queue, MAX_MESSAGES_PER_TICK):
                try:
                    trigger = parse_trigger(lane, message.body)
                except (ValidationError, ValueError) as e:
                    context.log.error(
                        f"Invalid {lane.value} trigger on '{queue}': {e}. "
                        f"Rejecting without requeue."
                    )
                    message.reject()
                    continue

                context.log.info(
                    f"Launching {LANE_TO_JOB[lane]} for job {trigger.job_id} (layer {trigger.layer_code})"
                )
                yield build_run_request(lane, trigger)
                message.ack()
                requested += 1
        except Exception as e:
            context.log.error(f"Failed to poll queue '{queue}': {e}")
            # A tick may carry run requests or a skip reason, not both
            if requested == 0:
                yield SkipReason(f"Error polling {queue}: {e}")
            return

    if requested == 0:
        yield SkipReason("No new job triggers")

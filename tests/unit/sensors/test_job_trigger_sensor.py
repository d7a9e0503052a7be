"""
Unit tests for job_trigger_sensor.

Tests sensor behavior with a mocked RabbitMQResource and SensorEvaluationContext.
"""

from unittest.mock import Mock

import pytest
from dagster import RunRequest, SkipReason

from libs.models import ExportTrigger, ImportTrigger
from services.dagster.etl_pipelines.resources import RabbitMQResource
from services.dagster.etl_pipelines.sensors.job_trigger_sensor import (
    MAX_MESSAGES_PER_TICK,
    Lane,
    build_run_request,
    job_trigger_sensor,
    parse_trigger,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def mock_sensor_context():
    """Create a mock SensorEvaluationContext."""
    context = Mock()
    context.log = Mock()
    return context


def _message(body):
    message = Mock()
    message.body = body
    return message


@pytest.fixture
def mock_rabbitmq():
    """RabbitMQResource mock whose queues are plain lists of messages."""
    resource = Mock(spec=RabbitMQResource)
    resource.import_queue = "gis.import.queue"
    resource.export_queue = "gis.export.queue"
    resource.queued = {"gis.import.queue": [], "gis.export.queue": []}
    resource.poll_messages.side_effect = lambda queue, limit: iter(resource.queued[queue][:limit])
    return resource


# Access the raw function from the sensor
_job_trigger_sensor_fn = job_trigger_sensor._raw_fn


# =============================================================================
# Test: Trigger parsing and run requests
# =============================================================================

def test_parse_trigger_per_lane():
    assert isinstance(parse_trigger(Lane.IMPORT, b"1;POSTES"), ImportTrigger)
    export = parse_trigger(Lane.EXPORT, b'{"jobId": "2", "layerCode": "BAIRROS", "format": "kml"}')
    assert isinstance(export, ExportTrigger)
    assert export.format == "kml"


def test_build_run_request_import():
    run_request = build_run_request(Lane.IMPORT, ImportTrigger.parse(b"42;POSTES"))

    assert run_request.run_key == "import:42"
    assert run_request.job_name == "import_layer_job"
    assert run_request.tags == {"job_id": "42", "layer_code": "POSTES", "lane": "import"}
    trigger_value = run_request.run_config["ops"]["import_layer"]["inputs"]["trigger"]["value"]
    assert trigger_value == {"jobId": "42", "layerCode": "POSTES"}


def test_build_run_request_export_carries_format():
    run_request = build_run_request(Lane.EXPORT, ExportTrigger.parse(b"7;BAIRROS;SHP"))

    assert run_request.run_key == "export:7"
    assert run_request.job_name == "export_layer_job"
    assert run_request.tags["format"] == "SHP"
    trigger_value = run_request.run_config["ops"]["export_layer"]["inputs"]["trigger"]["value"]
    assert trigger_value == {"jobId": "7", "layerCode": "BAIRROS", "format": "SHP"}


def test_run_config_round_trips_to_trigger():
    trigger = ExportTrigger.parse(b"7;BAIRROS")
    run_request = build_run_request(Lane.EXPORT, trigger)
    value = run_request.run_config["ops"]["export_layer"]["inputs"]["trigger"]["value"]
    assert ExportTrigger.model_validate(value) == trigger
    assert "format" not in run_request.tags


# =============================================================================
# Test: Sensor evaluation
# =============================================================================

def test_no_messages_skips(mock_sensor_context, mock_rabbitmq):
    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    assert len(results) == 1
    assert isinstance(results[0], SkipReason)
    assert "No new job triggers" in results[0].skip_message


def test_valid_messages_launch_runs_and_are_acked(mock_sensor_context, mock_rabbitmq):
    imported = _message(b'{"jobId": "1", "layerCode": "POSTES"}')
    exported = _message(b"2;BAIRROS;DXF")
    mock_rabbitmq.queued["gis.import.queue"].append(imported)
    mock_rabbitmq.queued["gis.export.queue"].append(exported)

    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    assert [r.run_key for r in results] == ["import:1", "export:2"]
    assert all(isinstance(r, RunRequest) for r in results)
    imported.ack.assert_called_once()
    exported.ack.assert_called_once()
    imported.reject.assert_not_called()


def test_polls_with_tick_limit(mock_sensor_context, mock_rabbitmq):
    list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    mock_rabbitmq.poll_messages.assert_any_call("gis.import.queue", MAX_MESSAGES_PER_TICK)
    mock_rabbitmq.poll_messages.assert_any_call("gis.export.queue", MAX_MESSAGES_PER_TICK)


@pytest.mark.parametrize(
    "queue, body",
    [
        ("gis.import.queue", b"garbage"),
        ("gis.import.queue", b'{"jobId": "1"}'),
        ("gis.import.queue", b"{not json"),
        ("gis.export.queue", b";BAIRROS;SHP"),
    ],
)
def test_malformed_message_rejected(mock_sensor_context, mock_rabbitmq, queue, body):
    bad = _message(body)
    mock_rabbitmq.queued[queue].append(bad)

    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    bad.reject.assert_called_once()
    bad.ack.assert_not_called()
    assert isinstance(results[0], SkipReason)
    mock_sensor_context.log.error.assert_called_once()


def test_malformed_message_does_not_block_queue(mock_sensor_context, mock_rabbitmq):
    bad = _message(b"garbage")
    good = _message(b"5;POSTES")
    mock_rabbitmq.queued["gis.import.queue"].extend([bad, good])

    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    assert [r.run_key for r in results] == ["import:5"]
    bad.reject.assert_called_once()
    good.ack.assert_called_once()


def test_duplicate_deliveries_share_run_key(mock_sensor_context, mock_rabbitmq):
    mock_rabbitmq.queued["gis.import.queue"].extend([_message(b"5;POSTES"), _message(b"5;POSTES")])

    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    assert {r.run_key for r in results} == {"import:5"}


def test_broker_error_skips(mock_sensor_context, mock_rabbitmq):
    mock_rabbitmq.poll_messages.side_effect = ConnectionError("connection refused")

    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    assert len(results) == 1
    assert isinstance(results[0], SkipReason)
    assert "connection refused" in results[0].skip_message


def test_broker_error_after_requests_keeps_them(mock_sensor_context, mock_rabbitmq):
    mock_rabbitmq.queued["gis.import.queue"].append(_message(b"5;POSTES"))

    def poll(queue, limit):
        if queue == "gis.export.queue":
            raise ConnectionError("channel closed")
        return iter(mock_rabbitmq.queued[queue])

    mock_rabbitmq.poll_messages.side_effect = poll

    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    assert len(results) == 1
    assert isinstance(results[0], RunRequest)


def test_unknown_export_format_still_launches_run(mock_sensor_context, mock_rabbitmq):
    # The export job resolves the format and records the failure on the job
    message = _message(b"3;BAIRROS;pdf")
    mock_rabbitmq.queued["gis.export.queue"].append(message)

    results = list(_job_trigger_sensor_fn(mock_sensor_context, mock_rabbitmq))

    assert [r.run_key for r in results] == ["export:3"]
    assert results[0].tags["format"] == "PDF"
    message.ack.assert_called_once()
    message.reject.assert_not_called()

"""Dagster Sensors - Event-Driven Job Triggers."""

from .job_trigger_sensor import job_trigger_sensor

__all__ = [
    "job_trigger_sensor",
]

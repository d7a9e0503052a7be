"""Dagster Jobs - Executable Workflows."""

from .import_job import import_layer_job
from .export_job import export_layer_job

__all__ = ["import_layer_job", "export_layer_job"]

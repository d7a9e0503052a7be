"""Dagster Ops - Reusable Computation Units."""

from .import_op import import_layer
from .export_op import export_layer

__all__ = [
    "import_layer",
    "export_layer",
]

# =============================================================================
# Base Classes for Export Writers
# =============================================================================
# Abstract writer contract, the write result and shared reprojection helper.
# =============================================================================

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable

from libs.models import ExportFeature
from libs.spatial_utils.coordinates import Transform, build_transform, transform_geometry

__all__ = ["ExportWriter", "WriteResult", "Reprojector"]


@dataclass(frozen=True)
class WriteResult:
    path: Path
    written: int
    skipped: int = 0


class Reprojector:
    """Brings features into one SRID, caching a transform per source SRID."""

    def __init__(self, target_srid: int):
        self.target_srid = target_srid
        self._transforms: dict[int, Transform] = {}

    def __call__(self, feature: ExportFeature) -> ExportFeature:
        if feature.srid == self.target_srid:
            return feature
        transform = self._transforms.get(feature.srid)
        if transform is None:
            transform = build_transform(feature.srid, self.target_srid)
            self._transforms[feature.srid] = transform
        return replace(
            feature,
            geometry=transform_geometry(feature.geometry, transform),
            srid=self.target_srid,
        )


class ExportWriter(ABC):
    """
    Base class for all export writers.

    A writer consumes the full feature set of one layer and produces one
    output file. A failed write leaves no output file behind.
    """

    extension: str = ""

    @abstractmethod
    def write(self, features: Iterable[ExportFeature], path: Path) -> WriteResult:
        """
        Serialize features to ``path``.

        Args:
            features: Stored features of one layer
            path: Output file path (parent directory must exist)

        Returns:
            WriteResult with the number of features written and skipped
        """
        raise NotImplementedError

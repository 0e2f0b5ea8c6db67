"""
Head tracking glue: external head-offset estimates -> rig pose.

A face tracker reports the head offset relative to the tracking camera; the
offset is optionally smoothed by an external filter, scaled into scene units
and applied to the rig's base position. Detection and filtering themselves
live outside this package.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

import numpy as np

from offaxis_stereo.core.errors import ConfigurationError
from offaxis_stereo.core.transform import Pose, Vector, as_vector3

logger = logging.getLogger(__name__)

DEFAULT_POSITION_SCALE = 10.0


def _usable(offset: Optional[np.ndarray]) -> bool:
    """Missing, all-zero and non-finite samples count as missed detections."""
    return offset is not None and bool(np.any(offset)) and bool(np.all(np.isfinite(offset)))


@runtime_checkable
class Smoother(Protocol):
    """Temporal filter over 3D samples (moving average, one-euro, ...)."""

    def smooth(self, sample: np.ndarray) -> np.ndarray:
        ...


class HeadOffsetMapper:
    """
    Converts per-frame head offsets into a rig pose.

    A missing detection (None or an all-zero offset) keeps the previous pose,
    so the view holds still instead of snapping back to the origin.
    """

    def __init__(self, base_pose: Optional[Pose] = None,
                 position_scale: float = DEFAULT_POSITION_SCALE,
                 smoother: Optional[Smoother] = None):
        """
        Args:
            base_pose: Rig pose when the head is at the tracker origin
            position_scale: Scene units per tracker unit
            smoother: Optional filter applied to raw offsets
        """
        if position_scale <= 0:
            raise ConfigurationError(f"Position scale must be positive, got {position_scale}")
        if smoother is not None and not isinstance(smoother, Smoother):
            raise ConfigurationError(f"Smoother must provide smooth(sample), got {type(smoother).__name__}")

        self.base_pose = base_pose.copy() if base_pose is not None else Pose()
        self.position_scale = float(position_scale)
        self.smoother = smoother
        self._pose = self.base_pose.copy()
        self._missed = 0

    @property
    def pose(self) -> Pose:
        """Current rig pose."""
        return self._pose

    @property
    def missed_detections(self) -> int:
        """Consecutive frames without a detection."""
        return self._missed

    def update(self, head_offset: Optional[Vector]) -> Pose:
        """
        Feed one head-offset sample.

        Args:
            head_offset: Head offset in tracker space, or None when no face
                was detected

        Returns:
            Updated rig pose
        """
        offset = None if head_offset is None else as_vector3(head_offset)
        if _usable(offset) and self.smoother is not None:
            offset = as_vector3(self.smoother.smooth(offset))

        if not _usable(offset):
            self._missed += 1
            if self._missed == 1:
                logger.debug("No usable head offset, holding last rig pose")
            return self._pose

        self._missed = 0
        # Offset is in the rig's local frame
        self._pose = Pose(
            self.base_pose.transform_point(self.position_scale * offset),
            self.base_pose.orientation,
        )
        return self._pose

    def reset(self):
        self._pose = self.base_pose.copy()
        self._missed = 0

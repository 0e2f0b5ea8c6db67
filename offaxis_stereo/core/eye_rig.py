"""
Stereo eye rig: places the left/right eyes from the IPD and orients them.

Two independent concerns:
- Lateral placement (always): eyes sit at -IPD/2 and +IPD/2 on the rig's X axis.
- Orientation mode: TOE_IN (both eyes look at the convergence point) or
  PARALLEL (both eyes share the rig orientation).

The convergence point sits on the rig's forward axis (local -Z) at
``convergence_distance``; distance changes are rate-limited.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from offaxis_stereo.core.errors import ConfigurationError
from offaxis_stereo.core.transform import FORWARD, Pose, look_rotation, quat_rotate

logger = logging.getLogger(__name__)

DEFAULT_IPD = 0.064  # meters - average adult IPD
DEFAULT_CONVERGENCE_DISTANCE = 5.0
DEFAULT_CONVERGENCE_ADJUST_SPEED = 3.0  # distance units per second

IPD_RANGE = (0.04, 0.2)
CONVERGENCE_RANGE = (0.5, 20.0)


class ConvergenceMode(Enum):
    """Eye orientation strategy."""
    TOE_IN = "toe_in"
    PARALLEL = "parallel"


class EyeSide(Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass
class EyeState:
    """
    Per-frame state of one eye.

    Recomputed every frame from the rig pose and current IPD; never persisted.
    """
    side: EyeSide
    local_position: np.ndarray  # Offset in rig space
    position: np.ndarray  # World position
    orientation: np.ndarray  # World orientation quaternion (x, y, z, w)

    @property
    def forward(self) -> np.ndarray:
        """World-space look direction."""
        return quat_rotate(self.orientation, FORWARD)

    @property
    def pose(self) -> Pose:
        return Pose(self.position, self.orientation)


def _check_range(name: str, value_range: Tuple[float, float]) -> Tuple[float, float]:
    low, high = float(value_range[0]), float(value_range[1])
    if not (math.isfinite(low) and math.isfinite(high)) or low <= 0 or low > high:
        raise ConfigurationError(f"Invalid {name} range: {value_range}")
    return low, high


def _clamp(name: str, value: float, value_range: Tuple[float, float]) -> float:
    """Clamp into range, logging when the value had to be adjusted."""
    value = float(value)
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value}")
    low, high = value_range
    clamped = min(max(value, low), high)
    if clamped != value:
        logger.warning(f"{name} {value} outside [{low}, {high}], clamped to {clamped}")
    return clamped


class EyeRig:
    """
    Kinematics for a stereo pair of eyes mounted on a rig (head).

    Usage:
        rig = EyeRig(ipd=0.064, use_toe_in=True)
        rig.request_convergence_distance(2.0)
        left, right = rig.update(dt, head_pose)
    """

    def __init__(self, ipd: float = DEFAULT_IPD,
                 use_toe_in: bool = True,
                 convergence_distance: float = DEFAULT_CONVERGENCE_DISTANCE,
                 convergence_adjust_speed: float = DEFAULT_CONVERGENCE_ADJUST_SPEED,
                 ipd_range: Tuple[float, float] = IPD_RANGE,
                 convergence_range: Tuple[float, float] = CONVERGENCE_RANGE):
        """
        Initialize the rig.

        Args:
            ipd: Interpupillary distance (clamped to ipd_range)
            use_toe_in: Converge the eyes on the convergence point
            convergence_distance: Initial distance to the convergence point
                (clamped to convergence_range)
            convergence_adjust_speed: Max change of convergence distance per second
            ipd_range: (min, max) IPD
            convergence_range: (min, max) convergence distance

        Raises:
            ConfigurationError: If a range or the adjust speed is invalid
        """
        self._ipd_range = _check_range("IPD", ipd_range)
        self._convergence_range = _check_range("convergence distance", convergence_range)

        self._ipd = _clamp("IPD", ipd, self._ipd_range)
        self._mode = ConvergenceMode.TOE_IN if use_toe_in else ConvergenceMode.PARALLEL
        self._convergence_distance = _clamp(
            "Convergence distance", convergence_distance, self._convergence_range)
        self._target_distance = self._convergence_distance
        self._adjust_speed = 0.0
        self.convergence_adjust_speed = convergence_adjust_speed

        self._left: Optional[EyeState] = None
        self._right: Optional[EyeState] = None

    # --- Configuration ---

    @property
    def ipd(self) -> float:
        return self._ipd

    @ipd.setter
    def ipd(self, value: float):
        self._ipd = _clamp("IPD", value, self._ipd_range)

    @property
    def mode(self) -> ConvergenceMode:
        return self._mode

    @mode.setter
    def mode(self, value: ConvergenceMode):
        self._mode = ConvergenceMode(value)

    @property
    def use_toe_in(self) -> bool:
        return self._mode is ConvergenceMode.TOE_IN

    @use_toe_in.setter
    def use_toe_in(self, enabled: bool):
        self._mode = ConvergenceMode.TOE_IN if enabled else ConvergenceMode.PARALLEL

    @property
    def convergence_adjust_speed(self) -> float:
        return self._adjust_speed

    @convergence_adjust_speed.setter
    def convergence_adjust_speed(self, value: float):
        value = float(value)
        if not math.isfinite(value) or value <= 0:
            raise ConfigurationError(f"Convergence adjust speed must be positive, got {value}")
        self._adjust_speed = value

    @property
    def convergence_distance(self) -> float:
        """Current (rate-limited) convergence distance."""
        return self._convergence_distance

    @property
    def target_convergence_distance(self) -> float:
        return self._target_distance

    @property
    def ipd_range(self) -> Tuple[float, float]:
        return self._ipd_range

    @property
    def convergence_range(self) -> Tuple[float, float]:
        return self._convergence_range

    # --- Convergence ---

    def request_convergence_distance(self, distance: float) -> float:
        """
        Ask the rig to move its convergence point to a new distance.

        The change is applied gradually by :meth:`step_convergence`.

        Returns:
            The accepted (clamped) target distance
        """
        self._target_distance = _clamp("Convergence distance", distance, self._convergence_range)
        return self._target_distance

    def step_convergence(self, dt: float) -> float:
        """
        Advance the convergence distance toward the target by at most
        ``convergence_adjust_speed * dt``.

        Returns:
            The new convergence distance

        Raises:
            ConfigurationError: If dt is negative or not finite
        """
        if not math.isfinite(dt) or dt < 0:
            raise ConfigurationError(f"Frame delta must be a non-negative number, got {dt}")

        delta = self._target_distance - self._convergence_distance
        max_step = self._adjust_speed * dt
        if abs(delta) <= max_step:
            self._convergence_distance = self._target_distance
        else:
            self._convergence_distance += math.copysign(max_step, delta)
        return self._convergence_distance

    def convergence_local_position(self) -> np.ndarray:
        return FORWARD * self._convergence_distance

    def convergence_point(self, rig_pose: Pose) -> np.ndarray:
        """World-space convergence point for the given rig pose."""
        return rig_pose.transform_point(self.convergence_local_position())

    # --- Eyes ---

    def eye_local_positions(self) -> Tuple[np.ndarray, np.ndarray]:
        half_ipd = self._ipd / 2.0
        return np.array([-half_ipd, 0.0, 0.0]), np.array([half_ipd, 0.0, 0.0])

    def _eye_state(self, side: EyeSide, local_position: np.ndarray, rig_pose: Pose,
                   target: Optional[np.ndarray]) -> EyeState:
        position = rig_pose.transform_point(local_position)
        if target is None or not np.all(np.isfinite(position)):
            # Nothing to aim from a non-finite position, fall back to the rig orientation
            orientation = rig_pose.orientation.copy()
        else:
            # Up is always taken from the rig so the eyes never roll independently
            orientation = look_rotation(target - position, rig_pose.up, rig_pose.right)
        return EyeState(side, local_position, position, orientation)

    def compute_eyes(self, rig_pose: Pose) -> Tuple[EyeState, EyeState]:
        """
        Place and orient both eyes for the current rig state.

        Does not advance the convergence distance.

        Returns:
            (left, right) eye states
        """
        left_local, right_local = self.eye_local_positions()
        target = self.convergence_point(rig_pose) if self.use_toe_in else None

        self._left = self._eye_state(EyeSide.LEFT, left_local, rig_pose, target)
        self._right = self._eye_state(EyeSide.RIGHT, right_local, rig_pose, target)
        return self._left, self._right

    def update(self, dt: float, rig_pose: Pose) -> Tuple[EyeState, EyeState]:
        """Per-frame update: advance convergence, then recompute both eyes."""
        self.step_convergence(dt)
        return self.compute_eyes(rig_pose)

    @property
    def left(self) -> Optional[EyeState]:
        """Left eye from the last update (None before the first one)."""
        return self._left

    @property
    def right(self) -> Optional[EyeState]:
        return self._right

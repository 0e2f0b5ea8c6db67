"""
Stereo frame driver - per-frame orchestration of the off-axis stereo core.

Each frame:
1. EyeRig places and orients both eyes from the current rig pose
2. Off-axis disabled: each eye camera is reset to its default on-axis matrices
3. Off-axis enabled: compute_frustum and compose_view produce the projection and
   view matrices, which are written into each eye camera

The driver holds no hidden scene lookups: plane, rig pose and cameras are all
passed in explicitly. Eyes are processed independently; nothing is shared
between them except read-only inputs.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from offaxis_stereo.config import CameraConfig, StereoConfig
from offaxis_stereo.core.errors import ConfigurationError, DegenerateGeometryError
from offaxis_stereo.core.eye_rig import EyeRig, EyeState
from offaxis_stereo.core.frustum import (
    DEFAULT_DISTANCE_EPSILON,
    Frustum,
    compute_frustum,
    perspective_matrix,
    validate_clip_planes,
)
from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.surface_calibration import SurfaceCalibration
from offaxis_stereo.core.transform import Pose
from offaxis_stereo.core.view import compose_view
from offaxis_stereo.utils.logging import ThrottledLogger

logger = logging.getLogger(__name__)


class EyeStatus(Enum):
    """What happened to an eye camera this frame."""
    ON_AXIS = "on_axis"
    OFF_AXIS = "off_axis"
    SKIPPED = "skipped"  # Degenerate geometry, off-axis solve skipped


class DegeneratePolicy(Enum):
    """What a skipped eye's camera shows."""
    RETAIN = "retain"  # Keep the previous frame's matrices
    RESET = "reset"  # Fall back to on-axis matrices


class EyeCamera:
    """
    Adapter for a renderer camera owned by the host application.

    Carries clip distances and the default lens, and receives the matrices
    computed each frame. The stereo core never creates or destroys the
    renderer's camera, it only writes these matrices.
    """

    def __init__(self, name: str, near: float = 0.3, far: float = 1000.0,
                 fov_y: float = 60.0, aspect: float = 16.0 / 9.0):
        validate_clip_planes(near, far)
        self.name = name
        self.near = float(near)
        self.far = float(far)
        self.fov_y = float(fov_y)
        self.aspect = float(aspect)
        self.pose = Pose()
        self.off_axis = False
        self.projection_matrix = self.default_projection_matrix()
        self.view_matrix = self.default_view_matrix()
        # False until a frame has written matrices for a real eye pose
        self.has_frame = False

    @classmethod
    def from_config(cls, name: str, config: CameraConfig) -> "EyeCamera":
        return cls(name, near=config.near, far=config.far,
                   fov_y=config.fov_y, aspect=config.aspect)

    def set_pose(self, pose: Pose):
        self.pose = pose

    def default_projection_matrix(self) -> np.ndarray:
        """Symmetric perspective from the camera's own lens settings."""
        return perspective_matrix(self.fov_y, self.aspect, self.near, self.far)

    def default_view_matrix(self) -> np.ndarray:
        """World-to-camera matrix from the camera's own pose."""
        return self.pose.inverse_matrix()

    def reset_matrices(self):
        """Restore on-axis matrices (explicit reset, nothing left stale)."""
        self.projection_matrix = self.default_projection_matrix()
        self.view_matrix = self.default_view_matrix()
        self.off_axis = False

    def apply(self, projection: np.ndarray, view: np.ndarray):
        """
        Assign off-axis matrices.

        Raises:
            DegenerateGeometryError: If either matrix is not a finite 4x4
        """
        for label, matrix in (("projection", projection), ("view", view)):
            if matrix.shape != (4, 4) or not np.all(np.isfinite(matrix)):
                raise DegenerateGeometryError(f"Refusing non-finite {label} matrix for {self.name}")
        self.projection_matrix = projection
        self.view_matrix = view
        self.off_axis = True


@dataclass
class FrameInputs:
    """
    Everything the host supplies for one frame.

    Optional fields are requests applied before the eyes are computed;
    None leaves the current setting untouched.
    """
    rig_pose: Pose = field(default_factory=Pose)
    ipd: Optional[float] = None
    convergence_distance: Optional[float] = None
    use_toe_in: Optional[bool] = None


@dataclass
class EyeResult:
    """Per-eye output of a frame."""
    eye: EyeState
    status: EyeStatus
    projection_matrix: np.ndarray
    view_matrix: np.ndarray
    frustum: Optional[Frustum] = None


@dataclass
class StereoFrame:
    """Output of :meth:`StereoFrameDriver.advance_frame`."""
    index: int
    left: EyeResult
    right: EyeResult
    convergence_point: np.ndarray
    convergence_distance: float
    gaze_pixel: Optional[np.ndarray] = None  # Where the rig's forward ray hits the display

    @property
    def eyes(self) -> Tuple[EyeResult, EyeResult]:
        return self.left, self.right


class StereoFrameDriver:
    """
    Applies per-eye off-axis (or default on-axis) matrices every frame.

    Architecture:
        StereoFrameDriver
        ├── EyeRig (eye placement/orientation)
        ├── ProjectionPlane (optional, required for off-axis)
        ├── SurfaceCalibration (optional, for gaze_pixel)
        └── EyeCamera x2 (left, right)
    """

    def __init__(self, rig: EyeRig,
                 left_camera: EyeCamera,
                 right_camera: EyeCamera,
                 plane: Optional[ProjectionPlane] = None,
                 off_axis_projection: bool = False,
                 calibration: Optional[SurfaceCalibration] = None,
                 degenerate_policy: DegeneratePolicy = DegeneratePolicy.RETAIN,
                 distance_epsilon: float = DEFAULT_DISTANCE_EPSILON):
        """
        Initialize the driver.

        Args:
            rig: Eye rig supplying per-frame eye states
            left_camera: Camera receiving the left eye matrices
            right_camera: Camera receiving the right eye matrices
            plane: Display surface (required when off_axis_projection is True)
            off_axis_projection: Start with off-axis rendering enabled
            calibration: Optional plane-to-pixel calibration
            degenerate_policy: Camera behaviour for eyes skipped this frame
            distance_epsilon: Minimum eye-to-plane distance for a solve

        Raises:
            ConfigurationError: If off-axis is requested without a plane
        """
        if distance_epsilon <= 0:
            raise ConfigurationError(f"Distance epsilon must be positive, got {distance_epsilon}")
        if calibration is not None and plane is not None and calibration.plane is not plane:
            raise ConfigurationError("Surface calibration belongs to a different projection plane")

        self.rig = rig
        self.left_camera = left_camera
        self.right_camera = right_camera
        self.calibration = calibration
        self.degenerate_policy = DegeneratePolicy(degenerate_policy)
        self.distance_epsilon = float(distance_epsilon)

        self._plane = plane
        self._off_axis = False
        self._frame_index = 0
        self._degenerate_warning = ThrottledLogger(logger)

        if off_axis_projection:
            self.enable_off_axis()
        else:
            logger.info("Stereo driver started with on-axis projection")

    @classmethod
    def from_config(cls, config: StereoConfig,
                    plane: Optional[ProjectionPlane] = None,
                    calibration: Optional[SurfaceCalibration] = None,
                    left_camera: Optional[EyeCamera] = None,
                    right_camera: Optional[EyeCamera] = None) -> "StereoFrameDriver":
        """Build rig, cameras and driver from a StereoConfig."""
        rig = EyeRig(
            ipd=config.ipd,
            use_toe_in=config.use_toe_in,
            convergence_distance=config.convergence_distance,
            convergence_adjust_speed=config.convergence_adjust_speed,
            ipd_range=config.ipd_range,
            convergence_range=config.convergence_range,
        )
        return cls(
            rig,
            left_camera or EyeCamera.from_config("left", config.camera),
            right_camera or EyeCamera.from_config("right", config.camera),
            plane=plane,
            off_axis_projection=config.off_axis_projection,
            calibration=calibration,
            degenerate_policy=DegeneratePolicy(config.degenerate_policy),
            distance_epsilon=config.distance_epsilon,
        )

    # --- Setup ---

    @property
    def plane(self) -> Optional[ProjectionPlane]:
        return self._plane

    def set_plane(self, plane: Optional[ProjectionPlane]):
        """
        Replace the projection plane.

        Raises:
            ConfigurationError: If removing the plane while off-axis is enabled
        """
        if plane is None and self._off_axis:
            raise ConfigurationError("Cannot remove projection plane while off-axis projection is enabled")
        if self.calibration is not None and self.calibration.plane is not plane:
            logger.info("Projection plane changed, dropping surface calibration")
            self.calibration = None
        self._plane = plane

    @property
    def off_axis_enabled(self) -> bool:
        return self._off_axis

    def enable_off_axis(self):
        """
        Switch to off-axis projection.

        Raises:
            ConfigurationError: If no projection plane is set; rendering stays on-axis
        """
        if self._plane is None:
            logger.error("No projection plane set, off-axis projection stays disabled")
            raise ConfigurationError("No projection plane set!")
        self._off_axis = True
        logger.info("Off-axis projection enabled")

    def disable_off_axis(self):
        """Switch back to on-axis projection and reset both cameras immediately."""
        self._off_axis = False
        self.left_camera.reset_matrices()
        self.right_camera.reset_matrices()
        logger.info("Off-axis projection disabled, cameras reset to on-axis")

    def set_off_axis(self, enabled: bool):
        if enabled:
            self.enable_off_axis()
        else:
            self.disable_off_axis()

    # --- Per frame ---

    def advance_frame(self, dt: float, inputs: FrameInputs) -> StereoFrame:
        """
        Run one frame.

        Args:
            dt: Seconds since the previous frame (>= 0)
            inputs: Rig pose and optional setting requests

        Returns:
            StereoFrame with the matrices written to both cameras

        Raises:
            ConfigurationError: If dt is invalid, or off-axis is enabled
                without a plane
        """
        if inputs.ipd is not None:
            self.rig.ipd = inputs.ipd
        if inputs.use_toe_in is not None:
            self.rig.use_toe_in = inputs.use_toe_in
        if inputs.convergence_distance is not None:
            self.rig.request_convergence_distance(inputs.convergence_distance)

        rig_pose = inputs.rig_pose
        left_eye, right_eye = self.rig.update(dt, rig_pose)

        if self._off_axis and self._plane is None:
            raise ConfigurationError("No projection plane set!")

        left = self._apply_eye(left_eye, self.left_camera, rig_pose)
        right = self._apply_eye(right_eye, self.right_camera, rig_pose)

        gaze_pixel = None
        if self.calibration is not None:
            gaze_pixel = self.calibration.ray_to_pixel(rig_pose.position, rig_pose.forward)

        frame = StereoFrame(
            index=self._frame_index,
            left=left,
            right=right,
            convergence_point=self.rig.convergence_point(rig_pose),
            convergence_distance=self.rig.convergence_distance,
            gaze_pixel=gaze_pixel,
        )
        self._frame_index += 1
        logger.debug(f"Frame {frame.index}: left={left.status.value}, right={right.status.value}, "
                     f"convergence={frame.convergence_distance:.3f}")
        return frame

    def _apply_eye(self, eye: EyeState, camera: EyeCamera, rig_pose: Pose) -> EyeResult:
        """Compute and assign one eye's matrices."""
        # A non-finite pose would poison the on-axis defaults; keep the last good one
        if np.all(np.isfinite(eye.position)):
            camera.set_pose(eye.pose)

        if not self._off_axis:
            camera.reset_matrices()
            camera.has_frame = True
            return EyeResult(eye, EyeStatus.ON_AXIS, camera.projection_matrix, camera.view_matrix)

        # Checked up front so a head passing through the plane is not an exception.
        # Written as "not >" so a NaN distance is skipped too.
        distance = self._plane.signed_distance(eye.position)
        if not distance > self.distance_epsilon:
            self._degenerate_warning.warning(
                "%s eye is %.4f from the projection plane, skipping off-axis solve",
                eye.side.value, distance,
            )
            # Nothing to retain before the first frame: construction-time matrices are stale
            if self.degenerate_policy is DegeneratePolicy.RESET or not camera.has_frame:
                camera.reset_matrices()
            camera.has_frame = True
            return EyeResult(eye, EyeStatus.SKIPPED, camera.projection_matrix, camera.view_matrix)

        frustum = compute_frustum(self._plane, eye.position, camera.near, camera.far,
                                  self.distance_epsilon)
        projection = frustum.projection_matrix()
        view = compose_view(self._plane, rig_pose.orientation, eye.position)
        camera.apply(projection, view)
        camera.has_frame = True
        return EyeResult(eye, EyeStatus.OFF_AXIS, projection, view, frustum)

    @property
    def frame_index(self) -> int:
        """Number of frames advanced so far."""
        return self._frame_index

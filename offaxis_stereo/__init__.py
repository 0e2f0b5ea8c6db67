"""
Off-Axis Stereo - per-eye projection and view matrices for a posed display surface.

This package computes, once per frame:
- an asymmetric (off-axis) frustum per eye from the display plane geometry
- a view matrix keystoned to the display plane
- left/right eye placement from the IPD, with toe-in or parallel orientation

The host application supplies the plane, rig pose and cameras explicitly and
calls StereoFrameDriver.advance_frame() from its frame loop.
"""

from offaxis_stereo.core.errors import ConfigurationError, DegenerateGeometryError, StereoError
from offaxis_stereo.core.transform import Pose
from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.frustum import Frustum, compute_frustum
from offaxis_stereo.core.view import compose_view
from offaxis_stereo.core.eye_rig import EyeRig, EyeState, EyeSide, ConvergenceMode
from offaxis_stereo.core.surface_calibration import SurfaceCalibration
from offaxis_stereo.config import StereoConfig, CameraConfig, load_config, save_config
from offaxis_stereo.driver import (
    StereoFrameDriver,
    EyeCamera,
    FrameInputs,
    StereoFrame,
    EyeResult,
    EyeStatus,
    DegeneratePolicy,
)
from offaxis_stereo.tracking import HeadOffsetMapper, Smoother

__version__ = "1.0.0"
__all__ = [
    "ConfigurationError",
    "DegenerateGeometryError",
    "StereoError",
    "Pose",
    "ProjectionPlane",
    "Frustum",
    "compute_frustum",
    "compose_view",
    "EyeRig",
    "EyeState",
    "EyeSide",
    "ConvergenceMode",
    "SurfaceCalibration",
    "StereoConfig",
    "CameraConfig",
    "load_config",
    "save_config",
    "StereoFrameDriver",
    "EyeCamera",
    "FrameInputs",
    "StereoFrame",
    "EyeResult",
    "EyeStatus",
    "DegeneratePolicy",
    "HeadOffsetMapper",
    "Smoother",
]

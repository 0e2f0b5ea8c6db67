"""Core geometry for off-axis stereo."""

from offaxis_stereo.core.errors import StereoError, ConfigurationError, DegenerateGeometryError
from offaxis_stereo.core.transform import Pose
from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.frustum import (
    Frustum,
    compute_frustum,
    compute_projection_matrix,
    frustum_matrix,
    perspective_matrix,
)
from offaxis_stereo.core.view import compose_view
from offaxis_stereo.core.eye_rig import EyeRig, EyeState, EyeSide, ConvergenceMode
from offaxis_stereo.core.surface_calibration import SurfaceCalibration

__all__ = [
    "StereoError",
    "ConfigurationError",
    "DegenerateGeometryError",
    "Pose",
    "ProjectionPlane",
    "Frustum",
    "compute_frustum",
    "compute_projection_matrix",
    "frustum_matrix",
    "perspective_matrix",
    "compose_view",
    "EyeRig",
    "EyeState",
    "EyeSide",
    "ConvergenceMode",
    "SurfaceCalibration",
]

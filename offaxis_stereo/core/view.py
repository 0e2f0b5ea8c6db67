"""
View (world-to-eye) matrix composition for off-axis rendering.

The eye frame is aligned with the display plane rather than with the
camera's own facing direction, so the image stays keystoned to the physical
surface as the head turns:

    view = M_plane @ R(inverse(camera_orientation) * plane_orientation) @ T(-eye)

applied right-to-left to a world point.
"""

import numpy as np

from offaxis_stereo.core.errors import DegenerateGeometryError
from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.transform import (
    Vector,
    as_vector3,
    quat_inverse,
    quat_multiply,
    rotation_matrix,
    translation_matrix,
)


def relative_plane_rotation(plane: ProjectionPlane, camera_orientation: Vector) -> np.ndarray:
    """Plane orientation expressed relative to the camera rig (quaternion)."""
    return quat_multiply(quat_inverse(camera_orientation), plane.orientation)


def compose_view(plane: ProjectionPlane, camera_orientation: Vector,
                 eye_position: Vector) -> np.ndarray:
    """
    Compose the world-to-eye matrix for one eye.

    Args:
        plane: Display surface geometry (supplies M and its orientation)
        camera_orientation: Orientation of the rig carrying the eye cameras,
            quaternion (x, y, z, w)
        eye_position: Eye position in world coordinates

    Returns:
        4x4 view matrix

    Raises:
        DegenerateGeometryError: If the result is not finite
    """
    eye = as_vector3(eye_position)
    view = (plane.world_matrix
            @ rotation_matrix(relative_plane_rotation(plane, camera_orientation))
            @ translation_matrix(-eye))

    if not np.all(np.isfinite(view)):
        raise DegenerateGeometryError("Composed view matrix is not finite")
    return view

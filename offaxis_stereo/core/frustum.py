"""
Generalized perspective projection (asymmetric frustum from a display plane).

Given three corners of the projection plane and the eye position, derive the
off-axis frustum extents on the near plane and the matching projection
matrix. Matrices follow the OpenGL glFrustum convention: right-handed eye
space looking down -Z, clip depth in [-1, 1], ``clip = P @ eye_point``.
"""

import math
from dataclasses import dataclass

import numpy as np

from offaxis_stereo.core.errors import ConfigurationError, DegenerateGeometryError
from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.transform import Vector, as_vector3

# Minimum eye-to-plane distance before the frustum is considered degenerate
DEFAULT_DISTANCE_EPSILON = 1e-6


def validate_clip_planes(near: float, far: float) -> None:
    """
    Raise ConfigurationError unless 0 < near < far and both are finite.
    """
    if not (math.isfinite(near) and math.isfinite(far)):
        raise ConfigurationError(f"Clip planes must be finite, got near={near}, far={far}")
    if near <= 0:
        raise ConfigurationError(f"Near clip plane must be positive, got {near}")
    if near >= far:
        raise ConfigurationError(f"Near clip plane ({near}) must be closer than far ({far})")


def frustum_matrix(left: float, right: float, bottom: float, top: float,
                   near: float, far: float) -> np.ndarray:
    """Asymmetric perspective projection matrix (glFrustum)."""
    validate_clip_planes(near, far)
    if right == left or top == bottom:
        raise DegenerateGeometryError("Frustum has zero width or height")

    m = np.zeros((4, 4))
    m[0, 0] = 2.0 * near / (right - left)
    m[0, 2] = (right + left) / (right - left)
    m[1, 1] = 2.0 * near / (top - bottom)
    m[1, 2] = (top + bottom) / (top - bottom)
    m[2, 2] = -(far + near) / (far - near)
    m[2, 3] = -2.0 * far * near / (far - near)
    m[3, 2] = -1.0
    return m


def perspective_matrix(fov_y: float, aspect: float, near: float, far: float) -> np.ndarray:
    """
    Symmetric (on-axis) perspective projection.

    Args:
        fov_y: Vertical field of view in degrees
        aspect: Width / height
        near: Near clip distance
        far: Far clip distance
    """
    if not 0 < fov_y < 180:
        raise ConfigurationError(f"Vertical field of view must be in (0, 180) degrees, got {fov_y}")
    if aspect <= 0:
        raise ConfigurationError(f"Aspect ratio must be positive, got {aspect}")
    top = near * math.tan(math.radians(fov_y) / 2.0)
    right = top * aspect
    return frustum_matrix(-right, right, -top, top, near, far)


@dataclass(frozen=True)
class Frustum:
    """Near-plane extents of a perspective viewing volume."""
    left: float
    right: float
    bottom: float
    top: float
    near: float
    far: float

    def is_symmetric(self, tolerance: float = 1e-9) -> bool:
        """True when the frustum is centered on the optical axis."""
        return (abs(self.left + self.right) <= tolerance
                and abs(self.bottom + self.top) <= tolerance)

    def projection_matrix(self) -> np.ndarray:
        return frustum_matrix(self.left, self.right, self.bottom, self.top, self.near, self.far)

    def to_dict(self) -> dict:
        return {
            'left': self.left,
            'right': self.right,
            'bottom': self.bottom,
            'top': self.top,
            'near': self.near,
            'far': self.far,
        }


def compute_frustum(plane: ProjectionPlane, eye_position: Vector, near: float, far: float,
                    epsilon: float = DEFAULT_DISTANCE_EPSILON) -> Frustum:
    """
    Solve the off-axis frustum for an eye looking at a projection plane.

    Args:
        plane: Display surface geometry
        eye_position: Eye position in world coordinates
        near: Near clip distance (> 0)
        far: Far clip distance (> near)
        epsilon: Minimum eye-to-plane distance

    Returns:
        Frustum with extents scaled to the near plane

    Raises:
        ConfigurationError: If the clip planes are invalid
        DegenerateGeometryError: If the eye is on, behind, or within epsilon
            of the plane
    """
    validate_clip_planes(near, far)
    eye = as_vector3(eye_position)
    if not np.all(np.isfinite(eye)):
        raise DegenerateGeometryError(f"Eye position is not finite: {eye.tolist()}")

    # Vectors from the eye to the plane corners
    va = plane.bottom_left - eye
    vb = plane.bottom_right - eye
    vc = plane.top_left - eye

    # Perpendicular distance from the eye to the plane
    d = -float(np.dot(plane.normal, va))
    if d <= epsilon:
        raise DegenerateGeometryError(
            f"Eye is not in front of the projection plane (distance {d:.6g} <= {epsilon:g})"
        )

    scale = near / d
    return Frustum(
        left=float(np.dot(plane.right, va)) * scale,
        right=float(np.dot(plane.right, vb)) * scale,
        bottom=float(np.dot(plane.up, va)) * scale,
        top=float(np.dot(plane.up, vc)) * scale,
        near=float(near),
        far=float(far),
    )


def compute_projection_matrix(plane: ProjectionPlane, eye_position: Vector, near: float,
                              far: float, epsilon: float = DEFAULT_DISTANCE_EPSILON) -> np.ndarray:
    """Convenience wrapper: off-axis projection matrix for an eye."""
    return compute_frustum(plane, eye_position, near, far, epsilon).projection_matrix()

"""
Projection plane: the physical (or virtual) display surface in world space.

Vertex order convention: [BL, BR, TR, TL] (counter-clockwise from bottom-left,
seen from the viewer's side). The top-right corner is implied by the other
three.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from offaxis_stereo.core.errors import ConfigurationError, DegenerateGeometryError
from offaxis_stereo.core.transform import (
    EPSILON,
    IDENTITY_QUATERNION,
    Vector,
    as_vector3,
    matrix3_to_quat,
    normalize,
    quat_rotate,
)

# Tolerance for unit length / orthogonality checks on authored axes
AXIS_TOLERANCE = 1e-5


@dataclass(frozen=True, eq=False)
class ProjectionPlane:
    """
    Rectangular display surface with orthonormal axes.

    ``right``, ``up`` and ``normal`` form a right-handed basis with ``normal``
    pointing toward the viewer. Instances are validated on creation and never
    mutated afterwards; build them with :meth:`from_corners` or
    :meth:`from_transform` unless the axes are already known.
    """
    bottom_left: np.ndarray
    bottom_right: np.ndarray
    top_left: np.ndarray
    right: np.ndarray
    up: np.ndarray
    normal: np.ndarray

    def __post_init__(self):
        for name in ('bottom_left', 'bottom_right', 'top_left', 'right', 'up', 'normal'):
            value = as_vector3(getattr(self, name)).copy()
            if not np.all(np.isfinite(value)):
                raise DegenerateGeometryError(f"Plane {name} is not finite: {value.tolist()}")
            value.setflags(write=False)
            object.__setattr__(self, name, value)

        self._validate()

    def _validate(self):
        """Check the axes are orthonormal and consistent with the rectangle edges."""
        for name in ('right', 'up', 'normal'):
            length = np.linalg.norm(getattr(self, name))
            if abs(length - 1.0) > AXIS_TOLERANCE:
                raise DegenerateGeometryError(f"Plane axis '{name}' is not unit length ({length:.6f})")

        if (abs(np.dot(self.right, self.up)) > AXIS_TOLERANCE
                or abs(np.dot(self.right, self.normal)) > AXIS_TOLERANCE
                or abs(np.dot(self.up, self.normal)) > AXIS_TOLERANCE):
            raise DegenerateGeometryError("Plane axes are not mutually orthogonal")

        if not np.allclose(np.cross(self.right, self.up), self.normal, atol=AXIS_TOLERANCE):
            raise DegenerateGeometryError("Plane axes are not right-handed (normal != right x up)")

        width_edge = self.bottom_right - self.bottom_left
        height_edge = self.top_left - self.bottom_left
        if np.linalg.norm(width_edge) < EPSILON or np.linalg.norm(height_edge) < EPSILON:
            raise DegenerateGeometryError("Plane has zero width or height")

        if not np.allclose(normalize(width_edge), self.right, atol=AXIS_TOLERANCE):
            raise DegenerateGeometryError("Bottom edge is not aligned with the right axis")
        if not np.allclose(normalize(height_edge), self.up, atol=AXIS_TOLERANCE):
            raise DegenerateGeometryError("Left edge is not aligned with the up axis (corners not a rectangle)")

    # --- Construction ---

    @classmethod
    def from_corners(cls, bottom_left: Vector, bottom_right: Vector,
                     top_left: Vector) -> "ProjectionPlane":
        """
        Build a plane from three corners, deriving the axes from its edges.

        Args:
            bottom_left: Bottom-left corner in world coordinates
            bottom_right: Bottom-right corner in world coordinates
            top_left: Top-left corner in world coordinates

        Returns:
            Validated ProjectionPlane

        Raises:
            DegenerateGeometryError: If the corners do not form a rectangle
        """
        pa = as_vector3(bottom_left)
        pb = as_vector3(bottom_right)
        pc = as_vector3(top_left)

        right = normalize(pb - pa)
        up = normalize(pc - pa)
        normal = normalize(np.cross(right, up))
        return cls(pa, pb, pc, right, up, normal)

    @classmethod
    def from_transform(cls, center: Vector, size: Tuple[float, float],
                       orientation: Vector = IDENTITY_QUATERNION) -> "ProjectionPlane":
        """
        Build a plane from a surface transform.

        The surface spans the local X (width) and Y (height) axes of the
        transform, centered on ``center``; its normal is local +Z.

        Args:
            center: Center of the surface in world coordinates
            size: (width, height) in world units
            orientation: Surface orientation quaternion (x, y, z, w)
        """
        width, height = float(size[0]), float(size[1])
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"Plane size must be positive, got {size}")

        center = as_vector3(center)
        half_right = quat_rotate(orientation, [0.5 * width, 0.0, 0.0])
        half_up = quat_rotate(orientation, [0.0, 0.5 * height, 0.0])

        return cls.from_corners(
            center - half_right - half_up,
            center + half_right - half_up,
            center - half_right + half_up,
        )

    # --- Derived geometry ---

    @property
    def top_right(self) -> np.ndarray:
        return self.bottom_right + (self.top_left - self.bottom_left)

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.bottom_right + self.top_left)

    @property
    def width(self) -> float:
        return float(np.linalg.norm(self.bottom_right - self.bottom_left))

    @property
    def height(self) -> float:
        return float(np.linalg.norm(self.top_left - self.bottom_left))

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def orientation(self) -> np.ndarray:
        """Plane rotation as a quaternion (local X/Y/Z -> right/up/normal)."""
        return matrix3_to_quat(np.column_stack((self.right, self.up, self.normal)))

    @property
    def world_matrix(self) -> np.ndarray:
        """
        4x4 matrix whose rows are right, up, normal.

        Rotates world directions into the plane's basis.
        """
        m = np.eye(4)
        m[0, :3] = self.right
        m[1, :3] = self.up
        m[2, :3] = self.normal
        return m

    def corners(self) -> np.ndarray:
        """4x3 array of corners in [BL, BR, TR, TL] order."""
        return np.array([self.bottom_left, self.bottom_right, self.top_right, self.top_left])

    def signed_distance(self, point: Vector) -> float:
        """Distance from the plane along its normal; positive on the viewer side."""
        return float(np.dot(self.normal, as_vector3(point) - self.bottom_left))

    def to_local(self, point: Vector) -> np.ndarray:
        """(u, v) coordinates of a point projected onto the plane, from bottom-left."""
        rel = as_vector3(point) - self.bottom_left
        return np.array([np.dot(rel, self.right), np.dot(rel, self.up)])

    def contains(self, point: Vector, tolerance: float = 1e-9) -> bool:
        """Whether the projection of ``point`` falls within the rectangle."""
        u, v = self.to_local(point)
        return (-tolerance <= u <= self.width + tolerance
                and -tolerance <= v <= self.height + tolerance)

    def intersect_ray(self, origin: Vector, direction: Vector) -> Optional[np.ndarray]:
        """
        Intersect a ray with the (infinite) plane.

        Returns:
            World-space hit point, or None if the ray is parallel to the plane
            or points away from it
        """
        origin = as_vector3(origin)
        direction = as_vector3(direction)
        denom = float(np.dot(self.normal, direction))
        if abs(denom) < EPSILON:
            return None
        t = -self.signed_distance(origin) / denom
        if t < 0:
            return None
        return origin + t * direction

    # --- Serialization ---

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization (corner form)."""
        return {
            'bottom_left': self.bottom_left.tolist(),
            'bottom_right': self.bottom_right.tolist(),
            'top_left': self.top_left.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectionPlane":
        """
        Create from dictionary.

        Accepts either the corner form (``bottom_left``, ``bottom_right``,
        ``top_left``) or the transform form (``center``, ``size`` and an
        optional ``orientation``).

        Raises:
            ConfigurationError: If neither form is complete
        """
        corner_keys = ('bottom_left', 'bottom_right', 'top_left')
        if all(k in data for k in corner_keys):
            return cls.from_corners(*(data[k] for k in corner_keys))

        if 'center' in data and 'size' in data:
            size: Sequence[float] = data['size']
            if len(size) != 2:
                raise ConfigurationError(f"Plane size must be [width, height], got {size}")
            return cls.from_transform(
                data['center'],
                (size[0], size[1]),
                data.get('orientation', IDENTITY_QUATERNION.tolist()),
            )

        raise ConfigurationError(
            "Plane needs either bottom_left/bottom_right/top_left or center/size"
        )

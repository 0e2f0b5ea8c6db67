"""
Rigid transform helpers: quaternions, 4x4 homogeneous matrices and Pose.

Conventions:
- Quaternions are (x, y, z, w) numpy arrays, same ordering as the tracker feed.
- Matrices are 4x4 float64, column-vector convention (``p' = M @ p``).
- Right-handed world. Local +X is right, +Y is up, forward is local -Z.
"""

import math
from dataclasses import dataclass, field
from typing import Sequence, Union

import numpy as np

from offaxis_stereo.core.errors import DegenerateGeometryError

Vector = Union[Sequence[float], np.ndarray]

# Norms below this are treated as zero-length
EPSILON = 1e-9

RIGHT = np.array([1.0, 0.0, 0.0])
UP = np.array([0.0, 1.0, 0.0])
FORWARD = np.array([0.0, 0.0, -1.0])

IDENTITY_QUATERNION = np.array([0.0, 0.0, 0.0, 1.0])


def as_vector3(value: Vector) -> np.ndarray:
    """Coerce to a float64 3-vector."""
    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"Expected 3 components, got shape {vec.shape}")
    return vec


def normalize(vec: Vector) -> np.ndarray:
    """Return the unit vector, raising on zero length."""
    vec = np.asarray(vec, dtype=np.float64)
    norm = np.linalg.norm(vec)
    if norm < EPSILON or not np.isfinite(norm):
        raise DegenerateGeometryError(f"Cannot normalize vector {vec.tolist()}")
    return vec / norm


# --- Quaternions ---

def quat_normalize(quat: Vector) -> np.ndarray:
    q = np.asarray(quat, dtype=np.float64).reshape(-1)
    if q.shape != (4,):
        raise ValueError(f"Quaternion must have 4 components, got shape {q.shape}")
    return normalize(q)


def quat_multiply(a: Vector, b: Vector) -> np.ndarray:
    """Hamilton product ``a * b`` (apply b first, then a)."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ])


def quat_conjugate(quat: Vector) -> np.ndarray:
    x, y, z, w = quat
    return np.array([-x, -y, -z, w])


def quat_inverse(quat: Vector) -> np.ndarray:
    """Inverse of a rotation quaternion (tolerates non-unit input)."""
    q = np.asarray(quat, dtype=np.float64)
    norm_sq = float(np.dot(q, q))
    if norm_sq < EPSILON:
        raise DegenerateGeometryError("Cannot invert zero quaternion")
    return quat_conjugate(q) / norm_sq


def quat_from_axis_angle(axis: Vector, angle: float) -> np.ndarray:
    """
    Rotation of ``angle`` radians about ``axis`` (right-hand rule).

    Args:
        axis: Rotation axis, any non-zero length
        angle: Angle in radians

    Returns:
        Unit quaternion (x, y, z, w)
    """
    axis = normalize(axis)
    half = 0.5 * angle
    s = math.sin(half)
    return np.array([axis[0] * s, axis[1] * s, axis[2] * s, math.cos(half)])


def quat_to_matrix3(quat: Vector) -> np.ndarray:
    """3x3 rotation matrix for a quaternion."""
    x, y, z, w = quat_normalize(quat)
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ])


def matrix3_to_quat(m: np.ndarray) -> np.ndarray:
    """
    Quaternion from a 3x3 rotation matrix.

    Uses the largest-diagonal branch for numerical stability near 180 degrees.
    """
    m = np.asarray(m, dtype=np.float64)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = 2.0 * math.sqrt(trace + 1.0)
        w = 0.25 * s
        x = (m[2, 1] - m[1, 2]) / s
        y = (m[0, 2] - m[2, 0]) / s
        z = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = 2.0 * math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s
    return quat_normalize([x, y, z, w])


def quat_rotate(quat: Vector, vec: Vector) -> np.ndarray:
    """Rotate a 3-vector by a quaternion."""
    return quat_to_matrix3(quat) @ as_vector3(vec)


def quat_angle_between(a: Vector, b: Vector) -> float:
    """Smallest rotation angle (radians) taking orientation a to b."""
    dot = abs(float(np.dot(quat_normalize(a), quat_normalize(b))))
    return 2.0 * math.acos(min(1.0, dot))


def look_rotation(direction: Vector, up_hint: Vector, fallback_right: Vector = RIGHT) -> np.ndarray:
    """
    Orientation whose forward (-Z) axis points along ``direction``.

    The up axis is taken from ``up_hint`` (orthogonalised). When ``direction``
    is parallel to ``up_hint`` the frame is built from ``fallback_right``
    instead, so the result never flips or rolls at the pole.

    Args:
        direction: Look direction, any non-zero length
        up_hint: Preferred up direction
        fallback_right: Right axis used when direction is parallel to up_hint

    Returns:
        Unit quaternion (x, y, z, w)
    """
    back = -normalize(direction)
    right = np.cross(up_hint, back)
    if np.linalg.norm(right) < 1e-6:
        # Looking straight along up: keep the caller's right axis
        right = as_vector3(fallback_right) - np.dot(fallback_right, back) * back
    right = normalize(right)
    up = np.cross(back, right)
    return matrix3_to_quat(np.column_stack((right, up, back)))


# --- 4x4 matrices ---

def translation_matrix(offset: Vector) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = as_vector3(offset)
    return m


def rotation_matrix(quat: Vector) -> np.ndarray:
    m = np.eye(4)
    m[:3, :3] = quat_to_matrix3(quat)
    return m


def transform_point(matrix: np.ndarray, point: Vector) -> np.ndarray:
    """Apply a 4x4 matrix to a 3D point (with perspective divide)."""
    p = np.append(as_vector3(point), 1.0)
    out = np.asarray(matrix, dtype=np.float64) @ p
    if abs(out[3]) < EPSILON:
        raise DegenerateGeometryError("Point maps to infinity (w = 0)")
    return out[:3] / out[3]


@dataclass
class Pose:
    """
    Position + orientation of a rigid body in world space.

    Plain value type: the stereo core never walks a scene graph, callers
    resolve world-space poses and hand them in.
    """
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())

    def __post_init__(self):
        self.position = as_vector3(self.position)
        self.orientation = quat_normalize(self.orientation)

    @property
    def right(self) -> np.ndarray:
        return quat_rotate(self.orientation, RIGHT)

    @property
    def up(self) -> np.ndarray:
        return quat_rotate(self.orientation, UP)

    @property
    def forward(self) -> np.ndarray:
        return quat_rotate(self.orientation, FORWARD)

    def matrix(self) -> np.ndarray:
        """Local-to-world 4x4 matrix."""
        m = rotation_matrix(self.orientation)
        m[:3, 3] = self.position
        return m

    def inverse_matrix(self) -> np.ndarray:
        """World-to-local 4x4 matrix."""
        rot = quat_to_matrix3(self.orientation)
        m = np.eye(4)
        m[:3, :3] = rot.T
        m[:3, 3] = -rot.T @ self.position
        return m

    def transform_point(self, local_point: Vector) -> np.ndarray:
        """Local-space point to world space."""
        return self.position + quat_rotate(self.orientation, local_point)

    def copy(self) -> "Pose":
        return Pose(self.position.copy(), self.orientation.copy())

    def to_dict(self) -> dict:
        return {
            'position': self.position.tolist(),
            'orientation': self.orientation.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Pose":
        return cls(
            position=data.get('position', [0.0, 0.0, 0.0]),
            orientation=data.get('orientation', IDENTITY_QUATERNION.tolist()),
        )

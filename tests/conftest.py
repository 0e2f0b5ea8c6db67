"""Shared fixtures for off-axis stereo tests."""

import math

import numpy as np
import pytest

from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.transform import UP, Pose, quat_from_axis_angle, quat_multiply


@pytest.fixture
def unit_plane():
    """2x2 plane on z=0 facing +Z: corners (-1,-1,0), (1,-1,0), (-1,1,0)."""
    return ProjectionPlane.from_corners([-1, -1, 0], [1, -1, 0], [-1, 1, 0])


@pytest.fixture
def tilted_plane():
    """1.6x0.9 plane, yawed 30 degrees and pitched back 15 degrees, off origin."""
    yaw = quat_from_axis_angle(UP, math.radians(30))
    pitch = quat_from_axis_angle([1, 0, 0], math.radians(-15))
    return ProjectionPlane.from_transform([0.4, 1.2, -2.0], (1.6, 0.9), quat_multiply(yaw, pitch))


@pytest.fixture
def origin_pose():
    return Pose()


@pytest.fixture
def viewer_pose():
    """Rig 5 units in front of the unit plane, looking at it (forward -Z)."""
    return Pose(position=np.array([0.0, 0.0, 5.0]))

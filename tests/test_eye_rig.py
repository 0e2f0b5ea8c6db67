"""Unit tests for EyeRig."""

import logging
import math

import numpy as np
import pytest

from offaxis_stereo.core.errors import ConfigurationError
from offaxis_stereo.core.eye_rig import ConvergenceMode, EyeRig, EyeSide
from offaxis_stereo.core.transform import (
    UP,
    Pose,
    normalize,
    quat_angle_between,
    quat_from_axis_angle,
    quat_rotate,
)


class TestConfiguration:
    """Test rig settings, ranges and clamping."""

    def test_defaults(self):
        """Test default IPD, mode and convergence distance."""
        rig = EyeRig()
        assert rig.ipd == pytest.approx(0.064)
        assert rig.mode is ConvergenceMode.TOE_IN
        assert rig.use_toe_in
        assert rig.convergence_distance == pytest.approx(5.0)
        assert rig.target_convergence_distance == pytest.approx(5.0)
        assert rig.convergence_adjust_speed == pytest.approx(3.0)

    def test_ipd_clamped_high(self, caplog):
        """Test an oversized IPD is clamped with a warning."""
        with caplog.at_level(logging.WARNING, logger="offaxis_stereo.core.eye_rig"):
            rig = EyeRig(ipd=0.5)
        assert rig.ipd == pytest.approx(0.2)
        assert "clamped" in caplog.text

    def test_ipd_clamped_low(self):
        """Test an undersized IPD set later is clamped."""
        rig = EyeRig()
        rig.ipd = 0.01
        assert rig.ipd == pytest.approx(0.04)

    def test_non_finite_ipd(self):
        """Test NaN IPD is a configuration error, not a clamp."""
        with pytest.raises(ConfigurationError):
            EyeRig(ipd=math.nan)

    def test_convergence_distance_clamped(self):
        """Test initial and requested distances are clamped."""
        rig = EyeRig(convergence_distance=0.1)
        assert rig.convergence_distance == pytest.approx(0.5)
        assert rig.request_convergence_distance(100.0) == pytest.approx(20.0)

    @pytest.mark.parametrize("speed", [0.0, -1.0, math.inf])
    def test_invalid_adjust_speed(self, speed):
        """Test non-positive or infinite adjust speed raises."""
        with pytest.raises(ConfigurationError):
            EyeRig(convergence_adjust_speed=speed)

    def test_invalid_range(self):
        """Test an inverted range raises."""
        with pytest.raises(ConfigurationError):
            EyeRig(ipd_range=(0.2, 0.04))

    def test_custom_range(self):
        """Test custom ranges are honoured."""
        rig = EyeRig(ipd=0.3, ipd_range=(0.01, 1.0))
        assert rig.ipd == pytest.approx(0.3)
        assert rig.ipd_range == (0.01, 1.0)

    def test_mode_from_value(self):
        """Test the mode setter accepts enum values."""
        rig = EyeRig()
        rig.mode = "parallel"
        assert rig.mode is ConvergenceMode.PARALLEL
        assert not rig.use_toe_in
        rig.use_toe_in = True
        assert rig.mode is ConvergenceMode.TOE_IN


class TestConvergence:
    """Test rate-limited convergence distance."""

    def test_steps_are_rate_limited(self):
        """Test each step moves at most speed * dt and never overshoots."""
        rig = EyeRig(convergence_distance=5.0, convergence_adjust_speed=3.0)
        rig.request_convergence_distance(1.0)

        previous = rig.convergence_distance
        for _ in range(20):
            current = rig.step_convergence(0.1)
            assert current <= previous
            assert previous - current <= 0.3 + 1e-12
            assert current >= 1.0
            previous = current
        assert rig.convergence_distance == pytest.approx(1.0)

    def test_small_change_lands_exactly(self):
        """Test a change smaller than one step lands on the target."""
        rig = EyeRig(convergence_distance=5.0)
        rig.request_convergence_distance(5.1)
        assert rig.step_convergence(0.1) == 5.1

    def test_zero_dt(self):
        """Test dt = 0 leaves the distance unchanged."""
        rig = EyeRig(convergence_distance=5.0)
        rig.request_convergence_distance(2.0)
        assert rig.step_convergence(0.0) == pytest.approx(5.0)

    @pytest.mark.parametrize("dt", [-0.1, math.nan])
    def test_invalid_dt(self, dt):
        """Test negative or NaN dt raises."""
        rig = EyeRig()
        with pytest.raises(ConfigurationError):
            rig.step_convergence(dt)

    def test_convergence_point(self, viewer_pose):
        """Test the convergence point sits on the rig's forward axis."""
        rig = EyeRig(convergence_distance=5.0)
        np.testing.assert_allclose(rig.convergence_point(viewer_pose), [0, 0, 0], atol=1e-12)


class TestEyes:
    """Test eye placement and orientation."""

    def test_no_eyes_before_update(self):
        """Test eye states are None before the first update."""
        rig = EyeRig()
        assert rig.left is None
        assert rig.right is None

    def test_local_positions(self):
        """Test eyes sit at -IPD/2 and +IPD/2 on the X axis."""
        left, right = EyeRig(ipd=0.064).eye_local_positions()
        np.testing.assert_allclose(left, [-0.032, 0, 0])
        np.testing.assert_allclose(right, [0.032, 0, 0])

    def test_parallel_eyes(self, origin_pose):
        """Test parallel mode copies the rig orientation."""
        rig = EyeRig(use_toe_in=False)
        left, right = rig.update(0.0, origin_pose)
        assert left.side is EyeSide.LEFT
        assert right.side is EyeSide.RIGHT
        np.testing.assert_allclose(left.position, [-0.032, 0, 0])
        np.testing.assert_allclose(right.position, [0.032, 0, 0])
        np.testing.assert_allclose(left.orientation, origin_pose.orientation)
        np.testing.assert_allclose(right.forward, [0, 0, -1], atol=1e-12)
        assert rig.left is left

    @pytest.mark.parametrize("pose", [
        Pose(),
        Pose([0, 1.7, 0], quat_from_axis_angle(UP, math.pi)),
        Pose([1, 2, 3], quat_from_axis_angle([1, 1, 0], 0.7)),
    ])
    def test_parallel_eyes_follow_rotated_rig(self, pose):
        """Test parallel eyes share the rig orientation and sit symmetric about it."""
        rig = EyeRig(use_toe_in=False)
        left, right = rig.compute_eyes(pose)

        np.testing.assert_allclose(left.orientation, pose.orientation, atol=1e-12)
        np.testing.assert_allclose(right.orientation, pose.orientation, atol=1e-12)
        np.testing.assert_allclose(left.forward, pose.forward, atol=1e-12)
        np.testing.assert_allclose(right.forward, pose.forward, atol=1e-12)
        np.testing.assert_allclose((left.position + right.position) / 2, pose.position, atol=1e-12)
        np.testing.assert_allclose(right.position - left.position,
                                   quat_rotate(pose.orientation, [0.064, 0, 0]), atol=1e-12)

    def test_rig_turned_around(self):
        """Test eye positions follow the rig's rotation."""
        rig = EyeRig(use_toe_in=False)
        pose = Pose([0, 1.7, 0], quat_from_axis_angle(UP, math.pi))
        left, right = rig.compute_eyes(pose)
        np.testing.assert_allclose(left.position, [0.032, 1.7, 0], atol=1e-12)
        np.testing.assert_allclose(right.position, [-0.032, 1.7, 0], atol=1e-12)

    def test_toe_in_eyes_look_at_convergence_point(self, viewer_pose):
        """Test both eyes point at the convergence point."""
        rig = EyeRig(convergence_distance=5.0)
        left, right = rig.update(0.0, viewer_pose)
        target = rig.convergence_point(viewer_pose)

        for eye in (left, right):
            np.testing.assert_allclose(eye.forward, normalize(target - eye.position), atol=1e-9)
        assert left.forward[0] > 0
        assert right.forward[0] < 0

    def test_toe_in_keeps_rig_up(self, viewer_pose):
        """Test toe-in rotates about the rig's up axis without rolling."""
        rig = EyeRig(convergence_distance=0.5)
        left, right = rig.compute_eyes(viewer_pose)
        np.testing.assert_allclose(quat_rotate(left.orientation, UP), UP, atol=1e-9)
        np.testing.assert_allclose(quat_rotate(right.orientation, UP), UP, atol=1e-9)

    def test_toe_in_converges_with_distance(self, viewer_pose):
        """Test a nearer convergence point means a larger toe-in angle."""
        far_rig = EyeRig(convergence_distance=10.0)
        near_rig = EyeRig(convergence_distance=1.0)
        far_left, _ = far_rig.compute_eyes(viewer_pose)
        near_left, _ = near_rig.compute_eyes(viewer_pose)
        far_angle = quat_angle_between(far_left.orientation, viewer_pose.orientation)
        near_angle = quat_angle_between(near_left.orientation, viewer_pose.orientation)
        assert near_angle > far_angle > 0

    def test_eye_pose(self, viewer_pose):
        """Test EyeState.pose carries position and orientation."""
        left, _ = EyeRig(use_toe_in=False).compute_eyes(viewer_pose)
        np.testing.assert_allclose(left.pose.position, [-0.032, 0, 5])

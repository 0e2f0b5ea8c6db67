"""Unit tests for the off-axis frustum solver."""

import math

import numpy as np
import pytest

from offaxis_stereo.core.errors import ConfigurationError, DegenerateGeometryError
from offaxis_stereo.core.frustum import (
    Frustum,
    compute_frustum,
    compute_projection_matrix,
    frustum_matrix,
    perspective_matrix,
    validate_clip_planes,
)
from offaxis_stereo.core.transform import transform_point
from offaxis_stereo.core.view import compose_view


class TestComputeFrustum:
    """Test frustum extents for an eye in front of a plane."""

    def test_centered_eye(self, unit_plane):
        """Test an eye on the plane axis gives a symmetric frustum."""
        frustum = compute_frustum(unit_plane, [0, 0, 5], near=0.1, far=100.0)
        assert frustum.left == pytest.approx(-0.02)
        assert frustum.right == pytest.approx(0.02)
        assert frustum.bottom == pytest.approx(-0.02)
        assert frustum.top == pytest.approx(0.02)
        assert frustum.near == 0.1
        assert frustum.far == 100.0
        assert frustum.is_symmetric()

    def test_off_center_eye(self, unit_plane):
        """Test a sideways eye shifts the frustum the other way."""
        frustum = compute_frustum(unit_plane, [0.5, 0, 5], near=0.1, far=100.0)
        assert frustum.left == pytest.approx(-0.03)
        assert frustum.right == pytest.approx(0.01)
        assert frustum.bottom == pytest.approx(-0.02)
        assert frustum.top == pytest.approx(0.02)
        assert not frustum.is_symmetric()

    def test_extents_scale_with_near(self, unit_plane):
        """Test extents are proportional to the near distance."""
        a = compute_frustum(unit_plane, [0.3, 0.2, 4], near=0.1, far=10.0)
        b = compute_frustum(unit_plane, [0.3, 0.2, 4], near=0.2, far=10.0)
        assert b.left == pytest.approx(2 * a.left)
        assert b.top == pytest.approx(2 * a.top)

    def test_eye_on_plane(self, unit_plane):
        """Test an eye on the plane is degenerate."""
        with pytest.raises(DegenerateGeometryError):
            compute_frustum(unit_plane, [0, 0, 0], near=0.1, far=100.0)

    def test_eye_behind_plane(self, unit_plane):
        """Test an eye behind the plane is degenerate."""
        with pytest.raises(DegenerateGeometryError):
            compute_frustum(unit_plane, [0, 0, -1], near=0.1, far=100.0)

    def test_eye_within_epsilon(self, unit_plane):
        """Test an eye closer than epsilon is degenerate."""
        with pytest.raises(DegenerateGeometryError):
            compute_frustum(unit_plane, [0, 0, 1e-7], near=0.1, far=100.0)
        frustum = compute_frustum(unit_plane, [0, 0, 1e-7], near=0.1, far=100.0, epsilon=1e-8)
        assert frustum.right > 0

    def test_non_finite_eye(self, unit_plane):
        """Test NaN eye positions are rejected."""
        with pytest.raises(DegenerateGeometryError):
            compute_frustum(unit_plane, [math.nan, 0, 5], near=0.1, far=100.0)

    @pytest.mark.parametrize("near,far", [(0.0, 10.0), (-1.0, 10.0), (10.0, 10.0), (20.0, 10.0),
                                          (math.inf, 10.0)])
    def test_invalid_clip_planes(self, unit_plane, near, far):
        """Test invalid near/far raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            compute_frustum(unit_plane, [0, 0, 5], near=near, far=far)

    def test_errors_are_value_errors(self, unit_plane):
        """Test both error types can be caught as ValueError."""
        with pytest.raises(ValueError):
            compute_frustum(unit_plane, [0, 0, 5], near=0.0, far=1.0)
        with pytest.raises(ValueError):
            compute_frustum(unit_plane, [0, 0, -5], near=0.1, far=1.0)


class TestProjectionMatrix:
    """Test projection matrix construction."""

    def test_frustum_matrix_entries(self):
        """Test glFrustum layout for the centered scenario."""
        m = frustum_matrix(-0.02, 0.02, -0.02, 0.02, 0.1, 100.0)
        assert m[0, 0] == pytest.approx(5.0)
        assert m[1, 1] == pytest.approx(5.0)
        assert m[0, 2] == pytest.approx(0.0)
        assert m[1, 2] == pytest.approx(0.0)
        assert m[2, 2] == pytest.approx(-100.1 / 99.9)
        assert m[2, 3] == pytest.approx(-20.0 / 99.9)
        assert m[3, 2] == -1.0
        assert m[3, 3] == 0.0

    def test_asymmetric_offsets(self):
        """Test the off-center terms for an asymmetric frustum."""
        m = frustum_matrix(-0.03, 0.01, -0.02, 0.02, 0.1, 100.0)
        assert m[0, 2] == pytest.approx(-0.5)
        assert m[0, 0] == pytest.approx(5.0)

    def test_zero_width(self):
        """Test a zero-width frustum raises."""
        with pytest.raises(DegenerateGeometryError):
            frustum_matrix(0.1, 0.1, -1, 1, 0.1, 10)

    def test_perspective(self):
        """Test a 90 degree square perspective."""
        m = perspective_matrix(90.0, 1.0, 1.0, 10.0)
        assert m[0, 0] == pytest.approx(1.0)
        assert m[1, 1] == pytest.approx(1.0)
        assert m[2, 2] == pytest.approx(-11.0 / 9.0)
        assert m[2, 3] == pytest.approx(-20.0 / 9.0)

    @pytest.mark.parametrize("fov,aspect", [(0.0, 1.0), (180.0, 1.0), (60.0, 0.0)])
    def test_perspective_invalid(self, fov, aspect):
        """Test invalid lens settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            perspective_matrix(fov, aspect, 0.1, 10.0)

    def test_wrapper_matches_frustum(self, unit_plane):
        """Test compute_projection_matrix equals the frustum's matrix."""
        expected = compute_frustum(unit_plane, [0.2, -0.1, 3], 0.1, 50.0).projection_matrix()
        np.testing.assert_allclose(compute_projection_matrix(unit_plane, [0.2, -0.1, 3], 0.1, 50.0),
                                   expected)

    def test_to_dict(self):
        """Test dictionary export of the extents."""
        frustum = Frustum(-1.0, 1.0, -0.5, 0.5, 0.1, 10.0)
        assert frustum.to_dict() == {
            'left': -1.0, 'right': 1.0, 'bottom': -0.5, 'top': 0.5, 'near': 0.1, 'far': 10.0,
        }

    def test_validate_clip_planes_accepts(self):
        """Test valid clip planes pass silently."""
        validate_clip_planes(0.01, 0.02)


class TestCornersToClipSpace:
    """Test that the plane outline lands on the edges of the image."""

    @pytest.mark.parametrize("offset", [(0.0, 0.0), (0.3, -0.2), (-0.7, 0.4)])
    def test_tilted_plane_corners_map_to_ndc(self, tilted_plane, offset):
        """Test each plane corner projects to its NDC corner."""
        eye = (tilted_plane.center
               + 2.0 * tilted_plane.normal
               + offset[0] * tilted_plane.right
               + offset[1] * tilted_plane.up)
        projection = compute_projection_matrix(tilted_plane, eye, 0.1, 100.0)
        view = compose_view(tilted_plane, tilted_plane.orientation, eye)

        expected = [(-1, -1), (1, -1), (1, 1), (-1, 1)]
        for corner, ndc in zip(tilted_plane.corners(), expected):
            projected = transform_point(projection @ view, corner)
            np.testing.assert_allclose(projected[:2], ndc, atol=1e-9)

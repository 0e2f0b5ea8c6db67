"""
Surface calibration: projection plane (meters) <-> display pixels.

Terminology:
- local_points: plane coordinates (u, v) in meters, origin at the bottom-left
  corner, u along the plane's right axis, v along its up axis
- pixel_points: where the display shows those points (the keystone quad)

Corner order is [BL, BR, TR, TL] for both sets. A projector that is not
square to the surface shows the rectangle as an arbitrary quad; the
homography between the two absorbs that keystone.
"""

import logging
from typing import List, Optional, Union

import cv2
import numpy as np

from offaxis_stereo.core.errors import ConfigurationError
from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.transform import Vector

logger = logging.getLogger(__name__)

Points = Union[np.ndarray, List[List[float]]]


def _apply_homography(matrix: np.ndarray, coords: Points) -> np.ndarray:
    """
    Apply a 3x3 homography to a single 2D point or an array of points.

    Returns:
        Transformed coordinates in the same shape as the input
    """
    coords = np.array(coords, dtype=np.float32)
    single_point = False

    # Handle single point case
    if coords.ndim == 1:
        coords = coords.reshape(1, -1)
        single_point = True

    # cv2.perspectiveTransform wants (N, 1, 2)
    transformed = cv2.perspectiveTransform(coords.reshape(-1, 1, 2), matrix)
    transformed = transformed.reshape(-1, 2)

    if single_point:
        return transformed[0]
    return transformed


class SurfaceCalibration:
    """Maps points on a projection plane to display pixels and back."""

    def __init__(self, plane: ProjectionPlane, pixel_points: Points):
        """
        Args:
            plane: Calibrated display surface
            pixel_points: 4x2 pixel positions of the plane corners [BL, BR, TR, TL]

        Raises:
            ConfigurationError: If the pixel quad is malformed or degenerate
        """
        pixel_points = np.array(pixel_points, dtype=np.float32)
        if pixel_points.shape != (4, 2):
            raise ConfigurationError(f"Pixel points must be a 4x2 array, got shape {pixel_points.shape}")

        self.plane = plane
        self.pixel_points = pixel_points
        self.local_points = np.array([
            [0.0, 0.0],
            [plane.width, 0.0],
            [plane.width, plane.height],
            [0.0, plane.height],
        ], dtype=np.float32)

        # Collinear pixel corners give a singular homography
        if abs(cv2.contourArea(pixel_points)) < 1e-6:
            raise ConfigurationError("Pixel corners are degenerate (zero area)")

        self._local_to_pixel = cv2.getPerspectiveTransform(self.local_points, self.pixel_points)
        self._pixel_to_local = cv2.getPerspectiveTransform(self.pixel_points, self.local_points)
        logger.debug(f"Surface calibration: {plane.width:.3f}x{plane.height:.3f} -> "
                     f"{self.pixel_points.tolist()}")

    @classmethod
    def from_resolution(cls, plane: ProjectionPlane, width_px: int,
                        height_px: int) -> "SurfaceCalibration":
        """
        Calibration for a display whose raster exactly covers the plane.

        Pixel origin is top-left with +Y down.
        """
        if width_px <= 0 or height_px <= 0:
            raise ConfigurationError(f"Resolution must be positive, got {width_px}x{height_px}")
        return cls(plane, [
            [0, height_px],
            [width_px, height_px],
            [width_px, 0],
            [0, 0],
        ])

    def local_to_pixels(self, coords: Points) -> np.ndarray:
        """Plane coordinates (meters) to pixel coordinates."""
        return _apply_homography(self._local_to_pixel, coords)

    def pixels_to_local(self, coords: Points) -> np.ndarray:
        """Pixel coordinates to plane coordinates (meters)."""
        return _apply_homography(self._pixel_to_local, coords)

    def world_to_pixels(self, points: Points) -> np.ndarray:
        """
        World points to pixels, projecting them onto the plane along its normal.

        Args:
            points: Single 3D point or (N, 3) array

        Returns:
            (2,) or (N, 2) pixel coordinates
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            return self.local_to_pixels(self.plane.to_local(points))
        local = np.array([self.plane.to_local(p) for p in points])
        return self.local_to_pixels(local)

    def pixels_to_world(self, coords: Points) -> np.ndarray:
        """Pixel coordinates to world points lying on the plane."""
        local = np.atleast_2d(self.pixels_to_local(coords)).astype(np.float64)
        world = (self.plane.bottom_left
                 + local[:, :1] * self.plane.right
                 + local[:, 1:2] * self.plane.up)
        if np.asarray(coords).ndim == 1:
            return world[0]
        return world

    def ray_to_pixel(self, origin: Vector, direction: Vector) -> Optional[np.ndarray]:
        """
        Pixel where a world-space ray hits the display.

        Returns:
            Pixel coordinates, or None if the ray misses the surface
        """
        hit = self.plane.intersect_ray(origin, direction)
        if hit is None or not self.plane.contains(hit):
            return None
        return self.world_to_pixels(hit)

    def to_dict(self) -> dict:
        return {'pixel_points': self.pixel_points.tolist()}

    @classmethod
    def from_dict(cls, plane: ProjectionPlane, data: dict) -> "SurfaceCalibration":
        """
        Create from dictionary.

        Accepts ``pixel_points`` (4x2, [BL, BR, TR, TL]) or
        ``resolution: {width, height}``.
        """
        if 'pixel_points' in data:
            return cls(plane, data['pixel_points'])
        resolution = data.get('resolution')
        if resolution and 'width' in resolution and 'height' in resolution:
            return cls.from_resolution(plane, int(resolution['width']), int(resolution['height']))
        raise ConfigurationError("Calibration needs pixel_points or resolution.width/height")

"""
Configuration for the off-axis stereo core.

YAML layout:

    stereo:
      ipd: 0.064
      use_toe_in: true
      convergence_distance: 5.0
      convergence_adjust_speed: 3.0
      off_axis_projection: true
      degenerate_policy: retain     # retain | reset
    camera:
      near: 0.3
      far: 1000.0
      fov_y: 60.0
      aspect: 1.777
    plane:                          # optional
      bottom_left: [-1, -1, 0]
      bottom_right: [1, -1, 0]
      top_left: [-1, 1, 0]
    calibration:                    # optional, requires plane
      resolution: {width: 1920, height: 1080}

IPD and convergence distance outside their ranges are clamped (with a
warning); structurally invalid values raise ConfigurationError.
"""

import math
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple, Union

import yaml

from offaxis_stereo.core.errors import ConfigurationError
from offaxis_stereo.core.eye_rig import (
    CONVERGENCE_RANGE,
    DEFAULT_CONVERGENCE_ADJUST_SPEED,
    DEFAULT_CONVERGENCE_DISTANCE,
    DEFAULT_IPD,
    IPD_RANGE,
)
from offaxis_stereo.core.frustum import DEFAULT_DISTANCE_EPSILON, validate_clip_planes
from offaxis_stereo.core.projection_plane import ProjectionPlane
from offaxis_stereo.core.surface_calibration import SurfaceCalibration

logger = logging.getLogger(__name__)

DEGENERATE_POLICIES = ("retain", "reset")


def _clamp_to_range(name: str, value: float, value_range: Tuple[float, float]) -> float:
    low, high = value_range
    clamped = min(max(value, low), high)
    if clamped != value:
        logger.warning(f"Config {name}={value} outside [{low}, {high}], clamped to {clamped}")
    return clamped


def _as_float(name: str, value) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Config {name} must be a number, got {value!r}") from None
    if not math.isfinite(result):
        raise ConfigurationError(f"Config {name} must be finite, got {value!r}")
    return result


def _as_bool(name: str, value) -> bool:
    # A quoted YAML "false" is a string and would coerce to True
    if not isinstance(value, bool):
        raise ConfigurationError(f"Config {name} must be true or false, got {value!r}")
    return value


def _as_range(name: str, value) -> Tuple[float, float]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ConfigurationError(f"Config {name} must be [min, max], got {value!r}")
    low, high = _as_float(name, value[0]), _as_float(name, value[1])
    if low <= 0 or low > high:
        raise ConfigurationError(f"Config {name} must satisfy 0 < min <= max, got {value!r}")
    return low, high


@dataclass
class CameraConfig:
    """Lens and clip settings shared by both eye cameras."""
    near: float = 0.3
    far: float = 1000.0
    fov_y: float = 60.0  # degrees, used for the on-axis default
    aspect: float = 16.0 / 9.0

    def __post_init__(self):
        self.near = _as_float("camera.near", self.near)
        self.far = _as_float("camera.far", self.far)
        self.fov_y = _as_float("camera.fov_y", self.fov_y)
        self.aspect = _as_float("camera.aspect", self.aspect)
        validate_clip_planes(self.near, self.far)
        if not 0 < self.fov_y < 180:
            raise ConfigurationError(f"camera.fov_y must be in (0, 180), got {self.fov_y}")
        if self.aspect <= 0:
            raise ConfigurationError(f"camera.aspect must be positive, got {self.aspect}")

    def to_dict(self) -> dict:
        return {
            "near": self.near,
            "far": self.far,
            "fov_y": self.fov_y,
            "aspect": self.aspect,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CameraConfig":
        defaults = cls()
        return cls(
            near=data.get("near", defaults.near),
            far=data.get("far", defaults.far),
            fov_y=data.get("fov_y", defaults.fov_y),
            aspect=data.get("aspect", defaults.aspect),
        )


@dataclass
class StereoConfig:
    """Recognised stereo options, validated and clamped on creation."""
    ipd: float = DEFAULT_IPD
    use_toe_in: bool = True
    convergence_distance: float = DEFAULT_CONVERGENCE_DISTANCE
    convergence_adjust_speed: float = DEFAULT_CONVERGENCE_ADJUST_SPEED
    off_axis_projection: bool = False
    ipd_range: Tuple[float, float] = IPD_RANGE
    convergence_range: Tuple[float, float] = CONVERGENCE_RANGE
    degenerate_policy: str = "retain"
    distance_epsilon: float = DEFAULT_DISTANCE_EPSILON
    camera: CameraConfig = field(default_factory=CameraConfig)

    def __post_init__(self):
        self.ipd_range = _as_range("ipd_range", self.ipd_range)
        self.convergence_range = _as_range("convergence_range", self.convergence_range)
        self.ipd = _clamp_to_range("ipd", _as_float("ipd", self.ipd), self.ipd_range)
        self.convergence_distance = _clamp_to_range(
            "convergence_distance",
            _as_float("convergence_distance", self.convergence_distance),
            self.convergence_range,
        )

        self.convergence_adjust_speed = _as_float("convergence_adjust_speed", self.convergence_adjust_speed)
        if self.convergence_adjust_speed <= 0:
            raise ConfigurationError(
                f"convergence_adjust_speed must be positive, got {self.convergence_adjust_speed}")

        self.distance_epsilon = _as_float("distance_epsilon", self.distance_epsilon)
        if self.distance_epsilon <= 0:
            raise ConfigurationError(f"distance_epsilon must be positive, got {self.distance_epsilon}")

        if self.degenerate_policy not in DEGENERATE_POLICIES:
            raise ConfigurationError(
                f"degenerate_policy must be one of {DEGENERATE_POLICIES}, got {self.degenerate_policy!r}")

        self.use_toe_in = _as_bool("use_toe_in", self.use_toe_in)
        self.off_axis_projection = _as_bool("off_axis_projection", self.off_axis_projection)

    def to_dict(self) -> dict:
        """Convert to the YAML layout (``stereo`` + ``camera`` sections)."""
        return {
            "stereo": {
                "ipd": self.ipd,
                "use_toe_in": self.use_toe_in,
                "convergence_distance": self.convergence_distance,
                "convergence_adjust_speed": self.convergence_adjust_speed,
                "off_axis_projection": self.off_axis_projection,
                "ipd_range": list(self.ipd_range),
                "convergence_range": list(self.convergence_range),
                "degenerate_policy": self.degenerate_policy,
                "distance_epsilon": self.distance_epsilon,
            },
            "camera": self.camera.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StereoConfig":
        """Create from the YAML layout. Missing keys take defaults."""
        stereo = data.get("stereo") or {}
        camera = data.get("camera") or {}
        if not isinstance(stereo, dict) or not isinstance(camera, dict):
            raise ConfigurationError("Config sections 'stereo' and 'camera' must be mappings")

        defaults = cls()
        return cls(
            ipd=stereo.get("ipd", defaults.ipd),
            use_toe_in=stereo.get("use_toe_in", defaults.use_toe_in),
            convergence_distance=stereo.get("convergence_distance", defaults.convergence_distance),
            convergence_adjust_speed=stereo.get("convergence_adjust_speed", defaults.convergence_adjust_speed),
            off_axis_projection=stereo.get("off_axis_projection", defaults.off_axis_projection),
            ipd_range=tuple(stereo.get("ipd_range", defaults.ipd_range)),
            convergence_range=tuple(stereo.get("convergence_range", defaults.convergence_range)),
            degenerate_policy=stereo.get("degenerate_policy", defaults.degenerate_policy),
            distance_epsilon=stereo.get("distance_epsilon", defaults.distance_epsilon),
            camera=CameraConfig.from_dict(camera),
        )


@dataclass
class LoadedConfig:
    """Result of :func:`load_config`."""
    stereo: StereoConfig
    plane: Optional[ProjectionPlane] = None
    calibration: Optional[SurfaceCalibration] = None


def load_config(path: Union[str, Path]) -> LoadedConfig:
    """
    Load stereo configuration (and optional plane/calibration) from YAML.

    Args:
        path: Path to the YAML file

    Returns:
        LoadedConfig

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid,
            or if off-axis projection is enabled without a plane
    """
    config_file = Path(path)
    if not config_file.exists():
        raise ConfigurationError(f"Config file not found: {config_file}")

    try:
        with open(config_file, 'r') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_file} must contain a mapping")

    stereo = StereoConfig.from_dict(data)

    plane = None
    if data.get("plane"):
        plane = ProjectionPlane.from_dict(data["plane"])

    calibration = None
    if data.get("calibration"):
        if plane is None:
            raise ConfigurationError("Calibration section requires a plane section")
        calibration = SurfaceCalibration.from_dict(plane, data["calibration"])

    if stereo.off_axis_projection and plane is None:
        raise ConfigurationError("off_axis_projection is enabled but no plane is configured")

    logger.info(f"Config loaded: ipd={stereo.ipd}, toe_in={stereo.use_toe_in}, "
                f"off_axis={stereo.off_axis_projection}, plane={'yes' if plane else 'no'}")
    return LoadedConfig(stereo, plane, calibration)


def save_config(path: Union[str, Path], config: StereoConfig,
                plane: Optional[ProjectionPlane] = None,
                calibration: Optional[SurfaceCalibration] = None) -> Path:
    """
    Write configuration to YAML in the layout read by :func:`load_config`.

    Returns:
        Path written
    """
    data = config.to_dict()
    if plane is not None:
        data["plane"] = plane.to_dict()
    if calibration is not None:
        data["calibration"] = calibration.to_dict()

    config_file = Path(path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w') as f:
        yaml.safe_dump(data, f, default_flow_style=None, sort_keys=False)
    logger.debug(f"Config written to {config_file}")
    return config_file

"""
Exception types for the off-axis stereo core.

Both concrete errors subclass ValueError so callers that already guard
geometry/config setup with ``except ValueError`` keep working.
"""


class StereoError(Exception):
    """Base class for all off-axis stereo errors."""


class ConfigurationError(StereoError, ValueError):
    """
    Structurally invalid setup.

    Raised for a missing projection plane while off-axis mode is enabled,
    non-positive near plane, near >= far, non-positive adjust speed and
    malformed configuration files. Out-of-range IPD or convergence distance
    is clamped instead.
    """


class DegenerateGeometryError(StereoError, ValueError):
    """
    Geometry that cannot produce a finite transform.

    Eye on or behind the projection plane, non-orthonormal plane axes,
    zero-length direction vectors.
    """

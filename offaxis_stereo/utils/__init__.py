"""Utility modules."""

from offaxis_stereo.utils.logging import setup_logging, ThrottledLogger

__all__ = [
    "setup_logging",
    "ThrottledLogger",
]

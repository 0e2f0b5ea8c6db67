"""
Dual-sink logging for the off-axis stereo core.

setup_logging() sends the package's records to stdout and a log file. Modules
log through ``logging.getLogger(__name__)``; warnings raised from the
per-frame path go through ThrottledLogger.
"""

import sys
import time
import logging
from pathlib import Path
from typing import Iterable, Optional

PACKAGE_LOGGER = "offaxis_stereo"

# Tried in order when no log file is given
LOG_FILE_PATHS = (
    "/var/log/offaxis_stereo.log",
    "/tmp/offaxis_stereo.log",
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _first_writable(paths: Iterable[str]) -> Optional[str]:
    for path in paths:
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).touch(exist_ok=True)
        except OSError:
            continue
        return path
    return None


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Route log records to stdout and a log file.

    Args:
        verbose: DEBUG instead of INFO
        log_file: Log file path; defaults to the first writable LOG_FILE_PATHS entry

    Returns:
        The package logger
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler(sys.stdout)]

    file_path = log_file or _first_writable(LOG_FILE_PATHS)
    if file_path:
        try:
            handlers.append(logging.FileHandler(file_path, mode='a'))
        except OSError as e:
            print(f"Warning: no file logging at {file_path}: {e}", file=sys.stderr)

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    return logger


class ThrottledLogger:
    """
    Emits at most one warning per interval, prefixed with the number of
    occurrences since the last emitted one.
    """

    def __init__(self, logger: logging.Logger, interval_sec: float = 5.0) -> None:
        self._logger = logger
        self._interval = interval_sec
        self._last_log_time: Optional[float] = None
        self._counter = 0

    @property
    def suppressed(self) -> int:
        """Occurrences counted since the last emitted warning."""
        return self._counter

    def warning(self, message: str, *args) -> bool:
        """
        Count an occurrence and log it if the interval has elapsed.

        Returns:
            True if the warning was emitted
        """
        self._counter += 1
        now = time.monotonic()

        if self._last_log_time is None or now - self._last_log_time >= self._interval:
            self._logger.warning("[%d] " + message, self._counter, *args)
            self._last_log_time = now
            self._counter = 0
            return True
        return False

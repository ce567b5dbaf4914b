"""Common errors and polling utilities shared across the scorecard."""

import io
import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Sub-second poll interval for convergence waits
DEFAULT_POLL_INTERVAL = 0.5


class ScorecardError(Exception):
    """Base class for all scorecard errors."""


class DecodeError(ScorecardError):
    """Malformed manifest content."""


class ControlPlaneError(ScorecardError):
    """Create/get/delete against the cluster failed."""


class ConvergenceTimeoutError(ControlPlaneError):
    """Object never reported status before the deadline."""

    def __init__(self, identity: str, timeout: float):
        super().__init__(f"timed out after {timeout:g}s waiting for status on {identity}")
        self.identity = identity
        self.timeout = timeout


class CleanupError(ScorecardError):
    """One or more cleanup actions failed."""

    def __init__(self, errors: list[Exception]):
        super().__init__('; '.join(str(e) for e in errors))
        self.errors = errors


@contextmanager
def error_context(description: str) -> Iterator[None]:
    """Re-raise any ScorecardError from the block prefixed with description.

    The re-raised error has the same class and attributes as the original,
    which becomes its __cause__, so a convergence timeout stays a
    ConvergenceTimeoutError after passing through a stage.
    """
    try:
        yield
    except ScorecardError as e:
        # __new__ skips subclass __init__ signatures (identity, timeout)
        wrapped = type(e).__new__(type(e), f"{description}: {e}")
        wrapped.__dict__.update(e.__dict__)
        raise wrapped from e


class LogCapture:
    """Copies root-logger records into an in-memory buffer while attached."""

    def __init__(self, level: int = logging.INFO):
        self._buffer = io.StringIO()
        self.handler = logging.StreamHandler(self._buffer)
        self.handler.setLevel(level)
        self.handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))

    def read(self) -> str:
        """Return everything captured so far."""
        try:
            self.handler.flush()
            return self._buffer.getvalue()
        except (OSError, ValueError) as e:
            return f"failed to read log buffer: {e}"


@contextmanager
def capture_logs(level: int = logging.INFO) -> Iterator[LogCapture]:
    """Attach a LogCapture to the root logger for the duration of the block.

    The root level is lowered to `level` while attached if it is higher.
    """
    capture = LogCapture(level)
    root = logging.getLogger()
    old_level = root.level
    if root.getEffectiveLevel() > level:
        root.setLevel(level)
    root.addHandler(capture.handler)
    try:
        yield capture
    finally:
        root.removeHandler(capture.handler)
        root.setLevel(old_level)


def poll_until(
    probe: Callable[[], Optional[T]],
    timeout: float,
    interval: float = DEFAULT_POLL_INTERVAL,
    description: str = 'condition',
) -> Optional[T]:
    """Call probe until it returns a truthy value or timeout elapses.

    The first probe runs immediately. Returns the probe's value, or None
    once at least `timeout` seconds have passed without success. The last
    sleep is shortened so the overrun never exceeds one interval.
    """
    logger.debug(f"Waiting for {description} (timeout {timeout}s)...")
    start = time.monotonic()
    while True:
        value = probe()
        if value:
            return value
        elapsed = time.monotonic() - start
        if elapsed >= timeout:
            logger.debug(f"Gave up waiting for {description} after {elapsed:.1f}s")
            return None
        time.sleep(min(interval, timeout - elapsed))

# errors.py
# Homeostat - error taxonomy
#
# The reducer never raises for bad events; these types only cross the
# orchestrator boundary (collaborators, watchdog, snapshot loading).

from __future__ import annotations


class HomeostatError(Exception):
    """Base class for every error raised by this package."""

    retryable = False


class RetryableError(HomeostatError):
    retryable = True


class GeneratorError(RetryableError):
    """The external text generator failed or returned garbage."""


class GeneratorTimeoutError(GeneratorError):
    """The watchdog deadline expired before the generator answered."""

    def __init__(self, timeout_s: float):
        super().__init__(f"generator did not answer within {timeout_s:.1f}s")
        self.timeout_s = timeout_s


class MemoryStoreError(RetryableError):
    pass


class SnapshotCorruptedError(HomeostatError):
    """
    A persisted DriveState could not be read back.
    Needs an operator to fix or delete the snapshot file.
    """

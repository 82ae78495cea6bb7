"""Lock error taxonomy.

Each error maps to a distinct log event and exit code so operators can tell
a contention skip apart from a stale lock apart from a broken job.
"""

from pathlib import Path


class LockError(Exception):
    """Base exception for lock directory errors."""

    pass


class LockAlreadyHeld(LockError):
    """Another instance holds the lock. Expected; the run is skipped."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Lock directory '{path}' already exists")


class LockCreateFailed(LockError):
    """Lock directory could not be created for an environmental reason."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not create lock directory '{path}': {reason}")


class LockReleaseFailed(LockError):
    """Lock directory could not be removed after bounded retries.

    The stale lock blocks every future run until an operator clears it.
    """

    def __init__(self, path: Path, attempts: int, reason: str):
        self.path = path
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Failed to remove lock directory '{path}' after {attempts} attempts: {reason}"
        )

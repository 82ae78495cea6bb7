"""Runner type definitions."""

import signal
from enum import Enum, IntEnum
from typing import Optional


class RunStatus(str, Enum):
    """Outcome of a single runner invocation."""

    COMPLETED = "completed"
    FAILED = "failed"
    ALREADY_RUNNING = "already_running"
    INTERRUPTED = "interrupted"

    @property
    def job_attempted(self) -> bool:
        """Check if the job was started under the lock."""
        return self is not RunStatus.ALREADY_RUNNING


class SignalPolicy(str, Enum):
    """What happens to the in-flight job when the runner is signalled."""

    TERMINATE = "terminate"  # forward SIGTERM, then SIGKILL after grace period
    DETACH = "detach"  # leave the job running, only release the lock


class ExitCode(IntEnum):
    """Process exit codes reported to the scheduler."""

    OK = 0
    LOCK_CREATE_FAILED = 1
    LOCK_RELEASE_FAILED = 2
    SKIPPED = 3
    JOB_FAILED = 4

    @staticmethod
    def for_signal(signum: Optional[int]) -> int:
        """Shell convention for death-by-signal: 128 + signum."""
        return 128 + (signum or signal.SIGTERM)

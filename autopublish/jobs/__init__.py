"""Lock-guarded job execution."""

from autopublish.jobs.command import CommandJob
from autopublish.jobs.errors import (
    LockAlreadyHeld,
    LockCreateFailed,
    LockError,
    LockReleaseFailed,
)
from autopublish.jobs.lock import DirectoryLock
from autopublish.jobs.runner import JobResult, JobRunner
from autopublish.jobs.types import ExitCode, RunStatus, SignalPolicy

__all__ = [
    "CommandJob",
    "DirectoryLock",
    "ExitCode",
    "JobResult",
    "JobRunner",
    "LockAlreadyHeld",
    "LockCreateFailed",
    "LockError",
    "LockReleaseFailed",
    "RunStatus",
    "SignalPolicy",
]

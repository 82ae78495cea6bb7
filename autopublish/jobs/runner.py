"""Job runner with directory lock and guaranteed release."""

import asyncio
import os
import signal
import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence, Union
from uuid import uuid4

import structlog

from autopublish.jobs.errors import LockAlreadyHeld
from autopublish.jobs.lock import DirectoryLock
from autopublish.jobs.types import RunStatus

logger = structlog.get_logger(__name__)

# Type alias for job function signature
# job_fn() -> exit status (0 = success)
JobFn = Callable[[], Awaitable[int]]

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class JobResult:
    """Result of a runner invocation."""

    status: RunStatus
    lock_acquired: bool
    correlation_id: str
    duration_ms: int = 0
    job_returncode: Optional[int] = None
    signum: Optional[int] = None
    release_attempts: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and status output."""
        return {
            "status": self.status.value,
            "lock_acquired": self.lock_acquired,
            "correlation_id": self.correlation_id,
            "duration_ms": self.duration_ms,
            "job_returncode": self.job_returncode,
            "signal": signal.Signals(self.signum).name if self.signum else None,
            "release_attempts": self.release_attempts,
            "error": self.error,
        }


@contextmanager
def pushd(path: Union[str, Path]) -> Iterator[Path]:
    """Change into ``path`` for the duration of the block, then change back."""
    previous = os.getcwd()
    os.chdir(path)
    try:
        yield Path(path)
    finally:
        os.chdir(previous)


class _SignalTrap:
    """Turns termination signals into cancellation of the job task.

    Handlers go through the event loop, so they only run at await points and
    the runner's finally block always gets to release the lock.
    """

    def __init__(self, signals: Sequence[int]):
        self.signals = tuple(signals)
        self.received: Optional[int] = None
        self._task: Optional[asyncio.Future] = None

    def __enter__(self) -> "_SignalTrap":
        loop = asyncio.get_running_loop()
        for sig in self.signals:
            loop.add_signal_handler(sig, self._on_signal, sig)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        loop = asyncio.get_running_loop()
        for sig in self.signals:
            loop.remove_signal_handler(sig)

    def watch(self, task: asyncio.Future) -> None:
        """Cancel ``task`` on signal; at once if one already arrived."""
        self._task = task
        if self.received is not None:
            task.cancel()

    def _on_signal(self, signum: int) -> None:
        logger.warning("runner_signal_received", signal=signal.Signals(signum).name)
        if self.received is not None:
            # Already shutting down; a second cancel would cut the job's
            # termination grace period short.
            return
        self.received = signum
        if self._task is not None and not self._task.done():
            self._task.cancel()


class JobRunner:
    """
    Runs a job under a directory lock.

    Features:
    - Acquires the lock without blocking; a held lock skips the run
    - Runs the job inside the configured working directory, restoring the
      runner's own directory afterwards
    - SIGINT/SIGTERM cancel the job instead of killing the runner outright
    - Always releases the lock in a finally block
    """

    def __init__(
        self,
        lock: DirectoryLock,
        workdir: Optional[Union[str, Path]] = None,
        signals: Sequence[int] = DEFAULT_SIGNALS,
    ):
        """
        Args:
            lock: Lock guarding the job
            workdir: Directory to run the job in (None = current directory)
            signals: Signals that interrupt the job and release the lock
        """
        self.lock = lock
        self.workdir = workdir
        self.signals = signals

    async def run(self, job_fn: JobFn) -> JobResult:
        """
        Execute a job with lock protection.

        Args:
            job_fn: Async callable returning the job's exit status

        Returns:
            JobResult with execution details

        Raises:
            LockCreateFailed: Lock directory could not be created (job not run)
            LockReleaseFailed: Lock could not be removed after the job
            Original exception from job_fn on failure (after cleanup)
        """
        correlation_id = f"job-{uuid4().hex[:8]}"
        log = logger.bind(correlation_id=correlation_id, lock_path=str(self.lock.path))
        log.info("job_run_starting", workdir=str(self.workdir) if self.workdir else None)

        # Handlers go in before the lock exists so no signal can kill the
        # process between creating the lock and guarding it.
        with _SignalTrap(self.signals) as trap:
            try:
                self.lock.acquire()
            except LockAlreadyHeld:
                log.info("job_skipped_already_running")
                return JobResult(
                    status=RunStatus.ALREADY_RUNNING,
                    lock_acquired=False,
                    correlation_id=correlation_id,
                )

            started = time.monotonic()
            returncode: Optional[int] = None
            status = RunStatus.FAILED

            try:
                with pushd(self.workdir) if self.workdir else nullcontext():
                    task = asyncio.ensure_future(job_fn())
                    trap.watch(task)
                    try:
                        returncode = await task
                    except asyncio.CancelledError:
                        if trap.received is None:
                            # Cancelled from outside, not by a signal
                            raise
                        status = RunStatus.INTERRUPTED

                if status is not RunStatus.INTERRUPTED:
                    status = RunStatus.COMPLETED if returncode == 0 else RunStatus.FAILED

            except Exception as e:
                log.error(
                    "job_failed",
                    error=str(e),
                    duration_ms=int((time.monotonic() - started) * 1000),
                    exc_info=True,
                )
                raise

            finally:
                # Always release lock; a release failure propagates from here.
                # Retry sleeps run off the loop so a signal arriving meanwhile
                # still reaches the trap.
                loop = asyncio.get_running_loop()
                release_attempts = await loop.run_in_executor(None, self.lock.release)

        if trap.received is not None and status is not RunStatus.INTERRUPTED:
            # Signalled after the job finished, while releasing
            status = RunStatus.INTERRUPTED

        duration_ms = int((time.monotonic() - started) * 1000)
        result = JobResult(
            status=status,
            lock_acquired=True,
            correlation_id=correlation_id,
            duration_ms=duration_ms,
            job_returncode=returncode,
            signum=trap.received,
            release_attempts=release_attempts,
            error=f"job exited with status {returncode}" if status is RunStatus.FAILED else None,
        )

        if status is RunStatus.INTERRUPTED:
            log.warning("job_interrupted", **result.to_dict())
        elif status is RunStatus.FAILED:
            log.warning("job_finished", **result.to_dict())
        else:
            log.info("job_finished", **result.to_dict())

        return result

"""External job process.

The job is opaque to the runner: it is started in the current working
directory (the runner changes into the job directory first), its output goes
straight to the runner's stdout/stderr, and its exit status is returned.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from typing import Sequence

import structlog

from autopublish.jobs.types import SignalPolicy

logger = structlog.get_logger(__name__)

# Shell convention for "command not found"
COMMAND_NOT_FOUND = 127


class CommandNotFoundError(Exception):
    """Job executable is not on PATH."""

    def __init__(self, executable: str):
        self.executable = executable
        super().__init__(f"Job executable '{executable}' not found on PATH")


class CommandJob:
    """
    Runs a command as the job.

    The executable is looked up on PATH when the job starts rather than when
    it is configured, so the runtime currently selected by a version manager
    is the one that runs.
    """

    def __init__(
        self,
        command: Sequence[str],
        signal_policy: SignalPolicy = SignalPolicy.TERMINATE,
        terminate_grace_s: float = 10.0,
    ):
        if not command:
            raise ValueError("job command must not be empty")
        self.command = list(command)
        self.signal_policy = signal_policy
        self.terminate_grace_s = terminate_grace_s

    def resolve(self) -> list[str]:
        """Return argv with the executable resolved to an absolute path."""
        executable = shutil.which(self.command[0])
        if executable is None:
            raise CommandNotFoundError(self.command[0])
        return [executable, *self.command[1:]]

    async def __call__(self) -> int:
        try:
            argv = self.resolve()
        except CommandNotFoundError as e:
            logger.error("job_command_not_found", executable=e.executable)
            return COMMAND_NOT_FOUND

        # A detached job must not share our process group, or a Ctrl-C
        # aimed at the runner would still reach it.
        process = await asyncio.create_subprocess_exec(
            *argv,
            start_new_session=self.signal_policy is SignalPolicy.DETACH,
        )
        logger.info("job_process_started", argv=argv, pid=process.pid, cwd=os.getcwd())

        try:
            return await process.wait()
        except asyncio.CancelledError:
            await self._stop(process)
            raise

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        """Apply the signal policy to a job whose runner is going away."""
        if process.returncode is not None:
            return

        if self.signal_policy is SignalPolicy.DETACH:
            logger.warning("job_process_detached", pid=process.pid)
            return

        logger.warning(
            "job_process_terminating",
            pid=process.pid,
            grace_s=self.terminate_grace_s,
        )
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.terminate_grace_s)
        except asyncio.TimeoutError:
            logger.warning("job_process_killed", pid=process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

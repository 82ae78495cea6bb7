#!/usr/bin/env python
"""
Single-instance runner for the publishing job.

Usage:
    autopublish [run]      Run the job unless another instance holds the lock
    autopublish status     Report whether the lock is held
    autopublish release    Remove a stale lock left behind by a failed release

Meant to be called from cron once per period; overlapping runs are dropped.

Examples:
    # crontab entry, JSON log lines appended to a file
    * * * * * cd /home/build && autopublish >> publish.log 2>&1

    # Check for a stale lock
    autopublish status

    # Propagate the job's own failure into the exit code
    PROPAGATE_JOB_STATUS=true autopublish

Exit codes:
    0    job ran and the lock was released
    1    lock directory could not be created (status: lock path blocked by a file)
    2    lock directory could not be removed (stale lock, or release of a blocked path)
    3    skipped, another instance holds the lock
    4    job failed (only with PROPAGATE_JOB_STATUS=true) or raised
    128+N  interrupted by signal N
"""

import argparse
import asyncio
import json
import time
from typing import Optional, Sequence

import structlog

from autopublish import __version__
from autopublish.config import Settings, get_settings
from autopublish.core import metrics
from autopublish.core.logging import configure_logging
from autopublish.core.sentry import init_sentry, report_stale_lock
from autopublish.jobs.command import CommandJob
from autopublish.jobs.errors import LockCreateFailed, LockReleaseFailed
from autopublish.jobs.lock import DirectoryLock
from autopublish.jobs.runner import JobResult, JobRunner
from autopublish.jobs.types import ExitCode, RunStatus

logger = structlog.get_logger(__name__)


def build_lock(settings: Settings) -> DirectoryLock:
    return DirectoryLock(
        settings.lock_dir,
        max_attempts=settings.release_max_attempts,
        retry_delay_s=settings.release_retry_delay_s,
    )


def build_job(settings: Settings) -> CommandJob:
    return CommandJob(
        settings.job_argv,
        signal_policy=settings.job_signal_policy,
        terminate_grace_s=settings.job_terminate_grace_s,
    )


def exit_code_for(result: JobResult, propagate_job_status: bool) -> int:
    """Map a runner result to the process exit code."""
    if result.status is RunStatus.ALREADY_RUNNING:
        return ExitCode.SKIPPED
    if result.status is RunStatus.INTERRUPTED:
        return ExitCode.for_signal(result.signum)
    if result.status is RunStatus.FAILED and propagate_job_status:
        return ExitCode.JOB_FAILED
    return ExitCode.OK


def _write_metrics(settings: Settings) -> None:
    if settings.metrics_textfile is None:
        return
    try:
        metrics.write_textfile(settings.metrics_textfile)
    except OSError as e:
        logger.warning(
            "metrics_textfile_write_failed",
            path=str(settings.metrics_textfile),
            error=str(e),
        )


async def cmd_run(settings: Settings) -> int:
    """Acquire the lock, run the job, release the lock."""
    runner = JobRunner(build_lock(settings), workdir=settings.job_workdir)
    job = build_job(settings)

    try:
        result = await runner.run(job)
    except LockCreateFailed:
        metrics.record_lock_error("lock_create_failed")
        exit_code = ExitCode.LOCK_CREATE_FAILED
    except LockReleaseFailed as e:
        metrics.record_lock_error("lock_release_failed")
        metrics.LOCK_RELEASE_RETRIES_TOTAL.inc(e.attempts - 1)
        report_stale_lock(e)
        logger.critical(
            "stale_lock_left_behind",
            lock_path=str(e.path),
            hint="future runs are blocked until the lock is removed (autopublish release)",
        )
        exit_code = ExitCode.LOCK_RELEASE_FAILED
    except Exception:
        # Already logged as job_failed by the runner, lock released
        metrics.record_lock_error(RunStatus.FAILED.value)
        exit_code = ExitCode.JOB_FAILED
    else:
        metrics.record_result(result)
        exit_code = exit_code_for(result, settings.propagate_job_status)

    _write_metrics(settings)
    return exit_code


def cmd_status(settings: Settings) -> int:
    """Print lock state; exit 3 when the lock is held, 1 when its path is blocked."""
    lock = build_lock(settings)
    status = {
        "lock_path": str(lock.path),
        "held": lock.exists(),
        "blocked": lock.blocked(),
        "age_s": None,
    }
    if status["held"] or status["blocked"]:
        status["age_s"] = round(time.time() - lock.path.lstat().st_mtime, 1)
    print(json.dumps(status))
    if status["blocked"]:
        return ExitCode.LOCK_CREATE_FAILED
    return ExitCode.SKIPPED if status["held"] else ExitCode.OK


def cmd_release(settings: Settings) -> int:
    """Remove the lock directory on behalf of an operator."""
    lock = build_lock(settings)
    if lock.blocked():
        # Only directories are ever removed
        logger.error(
            "lock_path_blocked",
            lock_path=str(lock.path),
            hint="remove the file at the lock path by hand",
        )
        return ExitCode.LOCK_RELEASE_FAILED
    if lock.exists():
        logger.warning("operator_lock_release", lock_path=str(lock.path))
    try:
        lock.release()
    except LockReleaseFailed:
        return ExitCode.LOCK_RELEASE_FAILED
    return ExitCode.OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="autopublish",
        description="Run the publishing job under a single-instance directory lock",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Run the job (default)")
    subparsers.add_parser("status", help="Report whether the lock is held")
    subparsers.add_parser("release", help="Remove a stale lock directory")

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    init_sentry(settings)

    if args.command == "status":
        return cmd_status(settings)
    if args.command == "release":
        return cmd_release(settings)

    exit_code = asyncio.run(cmd_run(settings))
    return int(exit_code)


if __name__ == "__main__":
    raise SystemExit(main())

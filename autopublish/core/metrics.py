"""Prometheus metrics for runner invocations.

Each invocation is a short-lived process, so metrics live in a private
registry and are written to a node_exporter textfile at the end of the run.
The last success timestamp is carried over from the previous file so a run
of skips or failures does not reset it.
"""

import time
from pathlib import Path
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile
from prometheus_client.parser import text_string_to_metric_families

from autopublish.jobs.runner import JobResult
from autopublish.jobs.types import RunStatus

logger = structlog.get_logger(__name__)

REGISTRY = CollectorRegistry()

# =============================================================================
# Prometheus Metrics
# =============================================================================

RUNS_TOTAL = Counter(
    "autopublish_runs_total",
    "Runner invocations by outcome",
    ["status"],  # completed, failed, already_running, interrupted, lock_create_failed, lock_release_failed
    registry=REGISTRY,
)
LOCK_RELEASE_RETRIES_TOTAL = Counter(
    "autopublish_lock_release_retries_total",
    "Lock removal attempts that failed and were retried",
    registry=REGISTRY,
)
JOB_DURATION_SECONDS = Histogram(
    "autopublish_job_duration_seconds",
    "Wall time of the job under the lock",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800),
    registry=REGISTRY,
)
JOB_LAST_RETURNCODE = Gauge(
    "autopublish_job_last_returncode",
    "Exit status of the most recent job process",
    registry=REGISTRY,
)
LAST_RUN_TIMESTAMP = Gauge(
    "autopublish_last_run_timestamp_seconds",
    "Timestamp of the last runner invocation (unix seconds)",
    registry=REGISTRY,
)
LAST_SUCCESS_TIMESTAMP = Gauge(
    "autopublish_last_success_timestamp_seconds",
    "Timestamp of the last completed job (unix seconds)",
    registry=REGISTRY,
)


def record_result(result: JobResult) -> None:
    """Record a runner result."""
    now = time.time()
    RUNS_TOTAL.labels(status=result.status.value).inc()
    LAST_RUN_TIMESTAMP.set(now)

    if result.release_attempts > 1:
        LOCK_RELEASE_RETRIES_TOTAL.inc(result.release_attempts - 1)

    if not result.status.job_attempted:
        return

    JOB_DURATION_SECONDS.observe(result.duration_ms / 1000)
    if result.job_returncode is not None:
        JOB_LAST_RETURNCODE.set(result.job_returncode)
    if result.status is RunStatus.COMPLETED:
        LAST_SUCCESS_TIMESTAMP.set(now)


def record_lock_error(status: str) -> None:
    """Record a run that ended in a lock error (no JobResult available)."""
    RUNS_TOTAL.labels(status=status).inc()
    LAST_RUN_TIMESTAMP.set(time.time())


def _previous_value(path: Path, name: str) -> Optional[float]:
    """Read a sample value from an existing textfile, if present."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None

    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            if sample.name == name:
                return sample.value
    return None


def write_textfile(path: Path) -> None:
    """Write the registry to ``path`` atomically, keeping the last success time."""
    if LAST_SUCCESS_TIMESTAMP._value.get() == 0:  # type: ignore
        try:
            previous = _previous_value(path, "autopublish_last_success_timestamp_seconds")
        except ValueError as e:
            logger.warning("metrics_textfile_unreadable", path=str(path), error=str(e))
            previous = None
        if previous:
            LAST_SUCCESS_TIMESTAMP.set(previous)

    write_to_textfile(str(path), REGISTRY)
    logger.debug("metrics_textfile_written", path=str(path))

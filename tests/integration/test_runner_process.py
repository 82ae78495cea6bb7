"""Process-level tests: real runner processes, real signals.

Each test starts ``python -m autopublish`` with a long-running job and
checks what is left on disk once the process is gone.
"""

import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _spawn(tmp_path: Path, command: str, **extra_env) -> subprocess.Popen:
    env = {
        **os.environ,
        "PYTHONPATH": str(PROJECT_ROOT),
        "LOCK_DIR": str(tmp_path / "lockdir"),
        "JOB_WORKDIR": str(tmp_path),
        "JOB_COMMAND": command,
        "JOB_TERMINATE_GRACE_S": "2",
        "RELEASE_RETRY_DELAY_S": "0",
        **extra_env,
    }
    return subprocess.Popen(
        [sys.executable, "-m", "autopublish"],
        cwd=tmp_path,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )


def _wait_for(predicate, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.05)
    raise AssertionError("condition not met in time")


@pytest.fixture
def started_marker(tmp_path):
    return tmp_path / "job_started"


def _long_job(marker: Path) -> str:
    return f"sh -c 'touch {marker}; exec sleep 30'"


@pytest.mark.parametrize(
    "signum,expected_exit",
    [(signal.SIGTERM, 143), (signal.SIGINT, 130)],
)
def test_signal_mid_job_removes_lock(tmp_path, started_marker, signum, expected_exit):
    proc = _spawn(tmp_path, _long_job(started_marker))
    try:
        _wait_for(started_marker.exists)
        assert (tmp_path / "lockdir").is_dir()

        proc.send_signal(signum)
        proc.wait(timeout=10)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()

    assert proc.returncode == expected_exit
    assert not (tmp_path / "lockdir").exists()


def test_overlapping_run_is_skipped(tmp_path, started_marker):
    first = _spawn(tmp_path, _long_job(started_marker))
    try:
        _wait_for(started_marker.exists)

        second = _spawn(tmp_path, f"sh -c 'touch {tmp_path / 'second_ran'}'")
        second.wait(timeout=10)

        assert second.returncode == 3
        assert not (tmp_path / "second_ran").exists()
        assert b"lock_already_held" in second.stdout.read()
        assert (tmp_path / "lockdir").is_dir()
    finally:
        first.terminate()
        first.wait(timeout=10)

    assert not (tmp_path / "lockdir").exists()


def test_run_to_completion(tmp_path):
    proc = _spawn(tmp_path, "sh -c 'echo published'")
    out, _ = proc.communicate(timeout=10)

    assert proc.returncode == 0
    assert b"published" in out
    assert b"lock_released" in out
    assert not (tmp_path / "lockdir").exists()

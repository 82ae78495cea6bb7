"""Tests for runner type definitions."""

import signal

import pytest

from autopublish.jobs.types import ExitCode, RunStatus, SignalPolicy


class TestRunStatus:
    def test_values(self):
        assert RunStatus.COMPLETED.value == "completed"
        assert RunStatus.FAILED.value == "failed"
        assert RunStatus.ALREADY_RUNNING.value == "already_running"
        assert RunStatus.INTERRUPTED.value == "interrupted"

    @pytest.mark.parametrize(
        "status,attempted",
        [
            (RunStatus.COMPLETED, True),
            (RunStatus.FAILED, True),
            (RunStatus.INTERRUPTED, True),
            (RunStatus.ALREADY_RUNNING, False),
        ],
    )
    def test_job_attempted(self, status, attempted):
        assert status.job_attempted is attempted


class TestExitCode:
    def test_codes_are_distinct(self):
        codes = [code.value for code in ExitCode]
        assert len(codes) == len(set(codes))
        assert ExitCode.OK == 0
        assert ExitCode.LOCK_CREATE_FAILED == 1
        assert ExitCode.LOCK_RELEASE_FAILED == 2

    def test_for_signal(self):
        assert ExitCode.for_signal(signal.SIGINT) == 130
        assert ExitCode.for_signal(signal.SIGTERM) == 143

    def test_for_unknown_signal_defaults_to_sigterm(self):
        assert ExitCode.for_signal(None) == 143


def test_signal_policy_from_string():
    assert SignalPolicy("detach") is SignalPolicy.DETACH
    assert SignalPolicy("terminate") is SignalPolicy.TERMINATE

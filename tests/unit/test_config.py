"""Unit tests for autopublish.config module."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from autopublish.config import Settings, get_settings
from autopublish.jobs.types import SignalPolicy


def test_defaults():
    """Defaults reproduce the crontab wrapper's behaviour."""
    settings = get_settings()

    assert settings.lock_dir == Path("./lockdir")
    assert settings.job_argv == ["node", "index.js"]
    assert settings.job_workdir == Path("/home/build/files/git-repo-auto-publish")
    assert settings.release_max_attempts == 3
    assert settings.release_retry_delay_s == 1.0
    assert settings.job_signal_policy is SignalPolicy.TERMINATE
    assert settings.propagate_job_status is False
    assert settings.log_format == "json"
    assert settings.sentry_dsn is None
    assert settings.metrics_textfile is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("LOCK_DIR", "/var/run/publish.lock")
    monkeypatch.setenv("JOB_SIGNAL_POLICY", "detach")
    monkeypatch.setenv("PROPAGATE_JOB_STATUS", "true")
    monkeypatch.setenv("RELEASE_MAX_ATTEMPTS", "5")

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.lock_dir == Path("/var/run/publish.lock")
    assert settings.job_signal_policy is SignalPolicy.DETACH
    assert settings.propagate_job_status is True
    assert settings.release_max_attempts == 5


def test_dotenv_file_is_read(tmp_path):
    """Settings pick up .env from the invocation directory."""
    (tmp_path / ".env").write_text("JOB_COMMAND=npm run publish\nLOG_FORMAT=console\n")

    settings = Settings()

    assert settings.job_argv == ["npm", "run", "publish"]
    assert settings.log_format == "console"


def test_job_command_shell_quoting():
    settings = Settings(job_command="node 'build script.js' --flag")

    assert settings.job_argv == ["node", "build script.js", "--flag"]


def test_invalid_signal_policy_rejected():
    with pytest.raises(ValidationError):
        Settings(job_signal_policy="ignore")


def test_release_attempts_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(release_max_attempts=0)


def test_settings_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize("command", ["", "   ", "node 'unterminated"])
def test_unusable_job_command_rejected(command):
    with pytest.raises(ValidationError):
        Settings(job_command=command)


def test_empty_job_command_from_env_rejected(monkeypatch):
    monkeypatch.setenv("JOB_COMMAND", "")
    get_settings.cache_clear()

    with pytest.raises(ValidationError, match="job_command must not be empty"):
        get_settings()

"""Tests for Sentry initialization."""

from pathlib import Path
from unittest.mock import patch

from autopublish.config import Settings
from autopublish.core.sentry import init_sentry, report_stale_lock
from autopublish.jobs.errors import LockReleaseFailed


def test_not_initialized_without_dsn():
    with patch("autopublish.core.sentry.sentry_sdk.init") as init:
        assert init_sentry(Settings(sentry_dsn=None)) is False

    init.assert_not_called()


def test_initialized_with_dsn():
    settings = Settings(
        sentry_dsn="https://public@sentry.example.com/1",
        sentry_environment="production",
    )

    with patch("autopublish.core.sentry.sentry_sdk.init") as init, patch(
        "autopublish.core.sentry.sentry_sdk.set_tag"
    ):
        assert init_sentry(settings) is True

    kwargs = init.call_args.kwargs
    assert kwargs["dsn"] == "https://public@sentry.example.com/1"
    assert kwargs["environment"] == "production"
    assert kwargs["send_default_pii"] is False


def test_report_stale_lock_captures_exception():
    error = LockReleaseFailed(Path("/srv/lockdir"), 3, "Directory not empty")

    with patch("autopublish.core.sentry.sentry_sdk.capture_exception") as capture:
        report_stale_lock(error)

    capture.assert_called_once_with(error)

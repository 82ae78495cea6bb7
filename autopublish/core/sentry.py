"""Sentry initialization and stale lock reporting."""

import os

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration

from autopublish import __version__
from autopublish.config import Settings
from autopublish.jobs.errors import LockReleaseFailed

logger = structlog.get_logger(__name__)


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry if DSN is configured.

    Returns True if Sentry was initialized, False otherwise.
    """
    if not settings.sentry_dsn:
        return False

    # Only send ERROR-level logs as Sentry events
    sentry_logging = LoggingIntegration(
        level=None,  # Keep normal log levels
        event_level="ERROR",  # Only ERROR+ become Sentry events
    )

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        release=os.environ.get("GIT_SHA", f"autopublish@{__version__}"),
        integrations=[sentry_logging],
        send_default_pii=False,
        attach_stacktrace=True,
    )

    sentry_sdk.set_tag("service", "autopublish")
    sentry_sdk.set_tag("lock_dir", str(settings.lock_dir))

    logger.info("sentry_initialized", environment=settings.sentry_environment)

    return True


def report_stale_lock(error: LockReleaseFailed) -> None:
    """Capture a lock release failure; every future run is blocked until it is cleared."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("lock_path", str(error.path))
        scope.set_extra("attempts", error.attempts)
        scope.set_level("fatal")
        sentry_sdk.capture_exception(error)

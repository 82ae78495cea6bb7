"""Configuration management using Pydantic Settings."""

import shlex
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from autopublish.jobs.types import SignalPolicy


class Settings(BaseSettings):
    """Runner settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Lock
    lock_dir: Path = Field(
        default=Path("./lockdir"),
        description="Lock directory; relative paths resolve against the invocation directory",
    )
    release_max_attempts: int = Field(
        default=3, ge=1, description="Attempts to remove the lock directory before giving up"
    )
    release_retry_delay_s: float = Field(
        default=1.0, ge=0.0, description="Delay between lock removal attempts in seconds"
    )

    # Job
    job_command: str = Field(
        default="node index.js",
        description="Job command line; the executable is resolved through PATH at run time",
    )
    job_workdir: Optional[Path] = Field(
        default=Path("/home/build/files/git-repo-auto-publish"),
        description="Working directory for the job (runner's directory is restored afterwards)",
    )
    job_signal_policy: SignalPolicy = Field(
        default=SignalPolicy.TERMINATE,
        description="terminate: stop the job when the runner is signalled; detach: leave it running",
    )
    job_terminate_grace_s: float = Field(
        default=10.0, ge=0.0, description="Seconds between SIGTERM and SIGKILL for the job"
    )
    propagate_job_status: bool = Field(
        default=False,
        description="Exit non-zero when the job itself fails (default: report lock handling only)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="json for cron logs, console for terminals"
    )

    # Sentry Observability
    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking (stale lock alerts)"
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment tag (development, staging, production)"
    )

    # Metrics
    metrics_textfile: Optional[Path] = Field(
        default=None,
        description="Write Prometheus metrics here after each run (node_exporter textfile collector)",
    )

    @field_validator("job_command")
    @classmethod
    def validate_job_command(cls, v):
        """Reject a command line that splits into nothing."""
        try:
            argv = shlex.split(v)
        except ValueError as e:
            raise ValueError(f"job_command is not a valid command line: {e}")
        if not argv:
            raise ValueError("job_command must not be empty")
        return v

    @property
    def job_argv(self) -> list[str]:
        """Job command split into argv."""
        return shlex.split(self.job_command)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

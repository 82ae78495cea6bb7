"""Directory lock used as a cross-process mutex.

``mkdir`` is atomic and exclusive: of any number of processes racing to
create the same directory exactly one succeeds. The directory carries no
content; its existence is the lock.
"""

import os
import time
from pathlib import Path
from typing import Union

import structlog

from autopublish.jobs.errors import LockAlreadyHeld, LockCreateFailed, LockReleaseFailed

logger = structlog.get_logger(__name__)


class DirectoryLock:
    """
    Non-blocking lock backed by a directory.

    Features:
    - Acquire never waits: an existing directory means another run is active
    - Release is idempotent: an absent directory is a logged no-op
    - Release retries removal with a fixed delay, then fails loudly
    - Usable as a context manager (release on every exit path)
    """

    def __init__(
        self,
        path: Union[str, Path],
        max_attempts: int = 3,
        retry_delay_s: float = 1.0,
    ):
        """
        Args:
            path: Lock directory. Relative paths are resolved against the
                current working directory now, so a later chdir does not
                move the lock.
            max_attempts: Removal attempts before LockReleaseFailed
            retry_delay_s: Sleep between removal attempts
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.path = Path(path).absolute()
        self.max_attempts = max_attempts
        self.retry_delay_s = retry_delay_s
        self._held = False

    @property
    def held(self) -> bool:
        """True while this instance owns the lock directory."""
        return self._held

    def exists(self) -> bool:
        return self.path.is_dir()

    def blocked(self) -> bool:
        """True when something other than a directory occupies the lock path.

        Such an entry makes every acquire fail and is never removed by
        release; an operator has to delete it.
        """
        return os.path.lexists(self.path) and not self.path.is_dir()

    def acquire(self) -> None:
        """
        Create the lock directory.

        Raises:
            LockAlreadyHeld: Directory already exists (another run is active)
            LockCreateFailed: Directory could not be created (permissions,
                missing parent, disk, a file in the way) or is not a
                directory afterwards
        """
        try:
            os.mkdir(self.path)
        except FileExistsError as e:
            if self.blocked():
                reason = "lock path exists and is not a directory"
                logger.error("lock_create_failed", lock_path=str(self.path), error=reason)
                raise LockCreateFailed(self.path, reason) from e
            logger.info("lock_already_held", lock_path=str(self.path))
            raise LockAlreadyHeld(self.path) from e
        except OSError as e:
            reason = e.strerror or str(e)
            logger.error("lock_create_failed", lock_path=str(self.path), error=reason)
            raise LockCreateFailed(self.path, reason) from e

        if not self.path.is_dir():
            logger.error(
                "lock_create_failed",
                lock_path=str(self.path),
                error="not a directory after mkdir",
            )
            raise LockCreateFailed(self.path, "not a directory after mkdir")

        self._held = True
        logger.info("lock_acquired", lock_path=str(self.path), pid=os.getpid())

    def release(self) -> int:
        """
        Remove the lock directory, retrying on failure.

        Returns:
            Number of removal attempts made (0 when there was nothing to remove)

        Raises:
            LockReleaseFailed: All attempts failed; the stale lock stays behind
        """
        if not self.path.is_dir():
            logger.info(
                "lock_release_skipped",
                lock_path=str(self.path),
                reason="lock path is not a directory"
                if self.blocked()
                else "lock directory does not exist",
            )
            self._held = False
            return 0

        attempt = 0
        while True:
            attempt += 1
            try:
                os.rmdir(self.path)
                break
            except FileNotFoundError:
                # Removed underneath us; the lock is free either way
                break
            except OSError as e:
                reason = e.strerror or str(e)
                if attempt >= self.max_attempts:
                    logger.error(
                        "lock_release_failed",
                        lock_path=str(self.path),
                        attempts=attempt,
                        error=reason,
                    )
                    raise LockReleaseFailed(self.path, attempt, reason) from e

                logger.warning(
                    "lock_release_retry",
                    lock_path=str(self.path),
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=reason,
                )
                time.sleep(self.retry_delay_s)

        self._held = False
        logger.info("lock_released", lock_path=str(self.path), attempts=attempt)
        return attempt

    def __enter__(self) -> "DirectoryLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

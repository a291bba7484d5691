"""Cross-process barrier that runs suite setup exactly once.

Parallel test workers all start by asking for setup. The first one to create
the lock file runs it and writes a completed-marker; the others poll until the
marker shows up. A marker older than the freshness window is stale and setup
runs again.
"""

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Union

from wfsnap.core.exceptions import SetupTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_FRESHNESS = 60 * 60.0


class SetupBarrier:
    """File-based once-per-session setup coordination."""

    def __init__(
        self,
        marker_path: Union[str, Path],
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        freshness: float = DEFAULT_FRESHNESS,
    ):
        self.marker_path = Path(marker_path)
        self.lock_path = self.marker_path.with_name(f"{self.marker_path.name}.lock")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.freshness = freshness

    def is_complete(self) -> bool:
        """True if a completed-marker exists and is still fresh."""
        try:
            mtime = self.marker_path.stat().st_mtime
        except FileNotFoundError:
            return False
        return time.time() - mtime < self.freshness

    def _try_create_lock(self) -> bool:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return True

    @contextmanager
    def _hold_lock(self) -> Iterator[None]:
        try:
            yield
        finally:
            self.lock_path.unlink(missing_ok=True)

    def _acquire_or_wait(self) -> bool:
        """Take the lock, or wait for another worker to finish setup.

        Returns:
            True if the lock was acquired, False if setup completed elsewhere

        Raises:
            SetupTimeoutError: If neither happens within the timeout
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout
        while True:
            if self._try_create_lock():
                return True
            if self.is_complete():
                return False
            if time.monotonic() >= deadline:
                raise SetupTimeoutError(self.lock_path, self.timeout)
            time.sleep(self.poll_interval)

    def mark_complete(self) -> None:
        self.marker_path.parent.mkdir(parents=True, exist_ok=True)
        self.marker_path.write_text(datetime.now(timezone.utc).isoformat(), encoding="utf-8")

    def invalidate(self) -> None:
        """Forget a previous setup so the next run_once() repeats it."""
        self.marker_path.unlink(missing_ok=True)

    def run_once(self, setup: Callable[[], None]) -> bool:
        """Run ``setup`` unless this or another worker already completed it.

        Returns:
            True if this call ran setup, False if it was already done
        """
        if self.is_complete():
            logger.info("Workflow setup already complete (cached)")
            return False

        if not self._acquire_or_wait():
            logger.info("Workflow setup completed by another worker")
            return False

        with self._hold_lock():
            # Another worker may have finished between our check and the lock
            if self.is_complete():
                logger.info("Workflow setup completed by another worker")
                return False
            logger.info("Running workflow setup...")
            setup()
            self.mark_complete()
            logger.info("Workflow setup complete")
        return True

"""
Durable deferred deletion of translated outputs.

Deletions are written to the ``pending_deletions`` table with a due time and
carried out by a sweep, either from the background thread started with the
API or on demand. Because the schedule is persisted, objects whose grace
window expires while the process is down are removed by the first sweep
after restart.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from threading import Event, Thread
from typing import Callable, Optional

from .database import JobDatabase
from .errors import NotFoundError, StorageError
from .storage import ObjectStore

logger = logging.getLogger(__name__)


class DeletionScheduler:
    def __init__(
        self,
        database: JobDatabase,
        store: ObjectStore,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._db = database
        self._store = store
        self._clock = clock
        self._stop = Event()
        self._thread: Optional[Thread] = None

    def schedule(self, object_key: str, delay_seconds: float) -> datetime:
        due_at = self._clock() + timedelta(seconds=delay_seconds)
        self._db.add_pending_deletion(object_key, due_at)
        logger.info(f"Scheduled deletion of {object_key} at {due_at.isoformat()}")
        return due_at

    def pending(self) -> int:
        return self._db.count_pending_deletions()

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Delete every object whose grace window has elapsed.

        Missing objects count as deleted. Other storage failures are logged
        and the entry is kept for the next sweep.

        Returns:
            Number of entries cleared
        """
        cleared = 0
        for entry in self._db.due_deletions(now or self._clock()):
            key = entry["object_key"]
            try:
                self._store.delete(key)
            except NotFoundError:
                logger.info(f"{key} already gone; clearing scheduled deletion")
            except StorageError as exc:
                logger.error(f"Failed to delete {key}: {exc}")
                self._db.record_deletion_failure(key, str(exc))
                continue
            self._db.remove_pending_deletion(key)
            cleared += 1
        return cleared

    def start(self, interval_seconds: float) -> None:
        """Run ``sweep`` every ``interval_seconds`` on a daemon thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, args=(interval_seconds,), name="deletion-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def _run(self, interval_seconds: float) -> None:
        # Catch up on anything that came due while the process was down
        while not self._stop.is_set():
            try:
                self.sweep()
            except Exception:
                logger.exception("Deletion sweep failed")
            self._stop.wait(interval_seconds)

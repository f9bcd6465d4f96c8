"""Recurring due-date sweep."""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from taskboard.core import engine
from taskboard.core import tasks as tasks_mod
from taskboard.db.engine import init_db

logger = logging.getLogger(__name__)

IDLE = "idle"
SCANNING = "scanning"
DISPATCHING = "dispatching"


class DueDateScheduler:
    """Background thread that sweeps for overdue tasks on a fixed interval.

    Nothing is checkpointed between ticks; every tick is a fresh full scan.
    """

    def __init__(
        self,
        db_path: Path,
        interval: float = 3600.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db_path = db_path
        self.interval = interval
        self.clock = clock or tasks_mod.utcnow
        self.state = IDLE
        self.ticks = 0
        self.join_timeout = 10.0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the scheduler thread."""
        if self.running:
            if self._stop_event.is_set():
                logger.warning("Due-date scheduler is still stopping; not restarted")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="due-date-scheduler", daemon=True
        )
        self._thread.start()
        logger.info("Due-date scheduler started (interval %ss)", self.interval)

    def stop(self):
        """Signal the scheduler thread to stop."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self.join_timeout)
            if self._thread.is_alive():
                # Keep the handle so start() does not spawn a second sweep thread.
                logger.warning("Due-date scheduler still finishing a sweep after %ss", self.join_timeout)
                return
            self._thread = None
        logger.info("Due-date scheduler stopped")

    def _run(self):
        """Main scheduler loop."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Error in due-date sweep")
            self._stop_event.wait(self.interval)

    def tick(self) -> int:
        """Run one sweep. Returns the number of overdue tasks dispatched."""
        db = init_db(self.db_path)
        try:
            self.state = SCANNING
            overdue = tasks_mod.find_overdue_tasks(db, self.clock())
            self.state = DISPATCHING
            for task in overdue:
                engine.dispatch_due_date(db, task)
            logger.info("Due-date sweep dispatched %d overdue task(s)", len(overdue))
            return len(overdue)
        finally:
            self.state = IDLE
            self.ticks += 1
            db.close()

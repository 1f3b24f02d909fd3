"""
Interest Scheduler Module

Background driver for the accrual engine: one batch right away (covering any
downtime), then one batch per interval until stopped. Nothing about the
scheduler itself is persisted.
"""

import threading
from typing import Optional

from .interest import BatchResult, InterestAccrualEngine
from .logging_config import get_logger, log_action


class InterestScheduler:
    """Runs ``engine.run_batch`` on a fixed interval"""

    def __init__(self, engine: InterestAccrualEngine, interval_seconds: float = 3600):
        if interval_seconds <= 0:
            raise ValueError("Scheduler interval must be positive")
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.logger = get_logger("piggybank.scheduler")
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0
        self.last_result: Optional[BatchResult] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Optional[BatchResult]:
        """
        Run one batch

        A failure of the whole batch (e.g. accounts cannot be listed) is logged
        and returns None; the next tick tries again.
        """
        self.runs += 1
        try:
            result = self.engine.run_batch()
        except Exception as e:
            log_action(
                self.logger, "error", "Failed to check and apply interest",
                action="run_batch", extra={"error": str(e), "run": self.runs}, exc_info=True
            )
            return None

        self.last_result = result
        return result

    def _loop(self) -> None:
        self.run_once()
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        """Start the background thread; the first batch runs immediately"""
        if self.is_running:
            raise RuntimeError("Interest scheduler is already running")

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="interest-scheduler", daemon=True)
        self._thread.start()
        log_action(
            self.logger, "info",
            f"Interest scheduler started (checks every {self.interval_seconds:g} seconds)",
            action="start_scheduler"
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to exit and wait for the current batch to finish"""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log_action(self.logger, "info", "Interest scheduler stopped", action="stop_scheduler")

    def run_forever(self) -> None:
        """Run in the calling thread until ``stop()`` is called from elsewhere"""
        self._stop_event.clear()
        self._loop()

"""
Periodic runner for long-lived (non-Lambda) deployments.

Runs a task every interval on a single worker thread. A slow run delays the
next one; runs never overlap.
"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Run a task at a fixed interval until stopped.

    Example:
        >>> scheduler = Scheduler(orchestrator.run_tick, interval_seconds=600)
        >>> scheduler.run_forever()  # blocks until scheduler.stop()
    """

    def __init__(self, task: Callable[[], object], interval_seconds: float, run_on_start: bool = True):
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive: {interval_seconds}")
        self.task = task
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run_forever(self) -> None:
        logger.info(
            f"Scheduler started: interval={self.interval_seconds}s, run_on_start={self.run_on_start}"
        )
        if self.run_on_start and not self._stop.is_set():
            self._run_once()
        # wait() returns True as soon as stop() is called
        while not self._stop.wait(self.interval_seconds):
            self._run_once()
        logger.info("Scheduler stopped")

    def start_in_background(self) -> threading.Thread:
        thread = threading.Thread(target=self.run_forever, name='ingestion-scheduler', daemon=True)
        thread.start()
        return thread

    def stop(self) -> None:
        self._stop.set()

    def _run_once(self) -> None:
        try:
            self.task()
        except Exception as e:
            logger.error(f"Scheduled task failed: {e}", exc_info=True)

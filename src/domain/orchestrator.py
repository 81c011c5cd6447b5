"""
Batch driver of the ingestion pipeline.

One tick fetches every unread email of the configured folders and processes
them one after the other. Ticks never overlap: a tick triggered while
another one is running is rejected immediately.
"""

import logging
import threading
from typing import Sequence

from .email_processor import EmailProcessor
from .models import BatchReport, Clock, ProcessingResult, utc_now
from services.mailbox import EmailSource
from services.monitoring import MonitoringService

logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    """
    Runs ingestion ticks with a single-flight guard.

    State: idle, or running (while the lock is held).
    """

    def __init__(
        self,
        email_source: EmailSource,
        processor: EmailProcessor,
        monitoring: MonitoringService,
        folders: Sequence[str] = ('INBOX',),
        clock: Clock = utc_now,
    ):
        self.email_source = email_source
        self.processor = processor
        self.monitoring = monitoring
        self.folders = tuple(folders)
        self.clock = clock
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_tick(self) -> BatchReport:
        """
        Run one ingestion tick.

        Returns:
            BatchReport of the tick (ran=False if another tick was running)
        """
        started_at = self.clock()
        if not self._lock.acquire(blocking=False):
            logger.warning("Ingestion tick rejected: previous tick still running")
            return BatchReport(started_at=started_at, ran=False)

        report = BatchReport(started_at=started_at)
        try:
            self._run(report)
        except Exception as e:
            logger.error(f"Unexpected error during ingestion tick: {e}", exc_info=True)
            report.transport_error = f"{type(e).__name__}: {e}"
            self._notify_transport_error(e, "Ingestion tick")
        finally:
            self._lock.release()

        self._log_summary(report)
        return report

    def _run(self, report: BatchReport) -> None:
        logger.info(f"Checking emails in folders: {', '.join(self.folders)}")
        try:
            messages = self.email_source.fetch_unread(self.folders)
        except Exception as e:
            logger.error(f"Failed to fetch emails: {e}", exc_info=True)
            report.transport_error = f"{type(e).__name__}: {e}"
            self._notify_transport_error(e, "Fetching unread emails")
            return

        logger.info(f"Fetched {len(messages)} unread email(s)")
        for index, raw in enumerate(messages, 1):
            logger.info(f"Email {index}/{len(messages)}")
            result = self.processor.process_message(raw)
            report.results.append(result)

    def _notify_transport_error(self, error: Exception, context: str) -> None:
        try:
            self.monitoring.notify_transport_error(error, context)
        except Exception as e:
            logger.error(f"Monitoring failed: {e}", exc_info=True)

    @staticmethod
    def _log_summary(report: BatchReport) -> None:
        logger.info("=" * 70)
        logger.info(
            f"Ingestion tick complete: {len(report.results)} email(s), "
            f"{report.processed_count} processed, {report.skipped_count} skipped, "
            f"{report.failed_count} failed"
        )
        for result in report.results:
            if result.status == ProcessingResult.FAILED:
                logger.error(f"  Failed: {result!r}")
        if report.transport_error:
            logger.error(f"  Transport error: {report.transport_error}")
        logger.info("=" * 70)

"""
Monitoring of ingestion failures.

The pipeline never lets an error escape a tick: every failure is reported
here instead. LoggingMonitoringService reports through the application logs.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from domain.models import ProcessingErrorContext

logger = logging.getLogger(__name__)


class MonitoringService(ABC):

    @abstractmethod
    def notify_processing_error(self, context: ProcessingErrorContext) -> None:
        """Report an email that could not be processed."""

    @abstractmethod
    def notify_transport_error(self, error: Exception, context: Optional[str] = None) -> None:
        """Report a mailbox or storage failure."""


class LoggingMonitoringService(MonitoringService):

    def notify_processing_error(self, context: ProcessingErrorContext) -> None:
        logger.error(
            f"Error while processing email \"{context.email_subject}\" "
            f"(handler: {context.handler_name or 'none'}): "
            f"{type(context.error).__name__}: {context.error}",
            exc_info=context.error,
        )

    def notify_transport_error(self, error: Exception, context: Optional[str] = None) -> None:
        prefix = f"{context}: " if context else ''
        logger.error(f"{prefix}{type(error).__name__}: {error}", exc_info=error)

"""
Email processing pipeline - core business logic.

This module handles the end-to-end processing of one fetched message:
1. Resolve the MIME tree into an Email
2. Select the newsletter handler claiming the email
3. Extract publications (failing if none has articles)
4. Save the publications
5. Acknowledge the message (mark as read, optionally move it)
6. Return result (processed, skipped or failed)

All errors are caught, reported to monitoring and returned as a
ProcessingResult. No exceptions propagate out of process_message().
"""

import logging
from typing import List, Optional, Sequence

from .exceptions import AmbiguousHandlerError, EmptyExtractionError
from .models import Clock, Email, ProcessingErrorContext, ProcessingResult, Publication, utc_now
from newsletters.base import NewsletterHandler
from services.email import decode_header_value, resolve_email
from services.mailbox import EmailSource, RawMessage
from services.monitoring import MonitoringService
from services.publications import PublicationSink

logger = logging.getLogger(__name__)


class EmailProcessor:
    """
    Handles end-to-end processing of a single email.

    Collaborators are injected so the pipeline holds no global state and
    tests can replace any of them.
    """

    def __init__(
        self,
        handlers: Sequence[NewsletterHandler],
        email_source: EmailSource,
        publication_sink: PublicationSink,
        monitoring: MonitoringService,
        move_after_processing: bool = False,
        clock: Clock = utc_now,
    ):
        self.handlers = tuple(handlers)
        self.email_source = email_source
        self.publication_sink = publication_sink
        self.monitoring = monitoring
        self.move_after_processing = move_after_processing
        self.clock = clock

    def find_handler(self, email: Email) -> Optional[NewsletterHandler]:
        """
        Find the handler of an email.

        Returns:
            The only handler claiming the email, None if no handler does

        Raises:
            AmbiguousHandlerError: If several handlers claim the email
        """
        matching = [h for h in self.handlers if h.can_handle(email)]
        if not matching:
            logger.warning(f"No handler found for email \"{email.subject}\" (sender: {email.sender})")
            return None
        if len(matching) > 1:
            raise AmbiguousHandlerError(email.subject, [h.name for h in matching])
        return matching[0]

    def process_message(self, raw: RawMessage) -> ProcessingResult:
        """
        Process a single fetched message.

        Args:
            raw: Message fetched from the email source

        Returns:
            ProcessingResult with status processed, skipped or failed
        """
        message_id = raw.message_id
        logger.info(f"Processing message: {message_id}")

        email = None
        handler = None
        try:
            email = resolve_email(raw.message, message_id=message_id, clock=self.clock)
            logger.info(f"Resolved: from={email.sender}, subject={email.subject}, content={email.content!r}")

            handler = self.find_handler(email)
            if handler is None:
                return ProcessingResult(
                    status=ProcessingResult.SKIPPED,
                    message_id=message_id,
                    subject=email.subject,
                )

            publications = self._extract_publications(handler, email)
            saved = self.publication_sink.save_publications(publications)

        except Exception as e:
            logger.error(f"Failed to process {message_id}: {e}", exc_info=True)
            if email is not None:
                subject = email.subject
            else:
                subject = decode_header_value(raw.message.get('Subject', ''))
            handler_name = handler.name if handler is not None else None
            self._notify_processing_error(ProcessingErrorContext(
                email_subject=subject,
                error=e,
                handler_name=handler_name,
            ))
            return ProcessingResult(
                status=ProcessingResult.FAILED,
                message_id=message_id,
                subject=subject,
                handler_name=handler_name,
                error_message=f"{type(e).__name__}: {e}",
            )

        self._acknowledge(email)
        self._log_processing_success(email, handler, saved)

        return ProcessingResult(
            status=ProcessingResult.PROCESSED,
            message_id=message_id,
            subject=email.subject,
            handler_name=handler.name,
            publications=saved,
        )

    def _extract_publications(self, handler: NewsletterHandler, email: Email) -> List[Publication]:
        """
        Run the handler and keep the publications with articles.

        Raises:
            EmptyExtractionError: If no publication has articles
            NewsletterParsingException: Propagated from the handler
        """
        logger.info(f"Extracting publications with {handler.name}")
        publications = handler.build_publications(email)
        non_empty = [p for p in publications if p.has_articles]
        if not non_empty:
            raise EmptyExtractionError(
                f"No articles found in email \"{email.subject}\" with {handler.name}"
            )
        return non_empty

    def _acknowledge(self, email: Email) -> None:
        """
        Mark the email as read, then move it if configured.

        Publications are already saved at this point: a failure here is
        reported as a transport error and does not fail the email.
        """
        message_id = email.message_id
        if message_id is None:
            return
        try:
            self.email_source.mark_as_read(message_id)
            if self.move_after_processing:
                self.email_source.move_to_processed(message_id)
        except Exception as e:
            logger.error(f"Failed to acknowledge {message_id}: {e}", exc_info=True)
            try:
                self.monitoring.notify_transport_error(e, f"Acknowledging email \"{email.subject}\"")
            except Exception as notify_error:
                logger.error(f"Monitoring failed: {notify_error}", exc_info=True)

    def _notify_processing_error(self, context: ProcessingErrorContext) -> None:
        try:
            self.monitoring.notify_processing_error(context)
        except Exception as e:
            logger.error(f"Monitoring failed: {e}", exc_info=True)

    def _log_processing_success(
        self,
        email: Email,
        handler: NewsletterHandler,
        publications: List[Publication],
    ) -> None:
        """Log successful processing summary."""
        logger.info("=" * 50)
        logger.info("EMAIL PROCESSED SUCCESSFULLY")
        logger.info(f"From: {email.sender}")
        logger.info(f"Subject: {email.subject}")
        logger.info(f"Handler: {handler.name}")
        for publication in publications:
            logger.info(f"  {publication.newsletter.code}: {len(publication.articles)} article(s)")
        logger.info("=" * 50)

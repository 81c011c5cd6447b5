"""
Exceptions raised by the ingestion pipeline.

Every one of them is caught at the per-email or per-tick boundary and turned
into a monitoring notification; none of them escapes a tick.
"""

from typing import Sequence


class IngestionError(Exception):
    """Base class for ingestion pipeline errors."""
    pass


class NoContentError(IngestionError):
    """Raised when a message has neither a text/plain nor a text/html leaf."""
    pass


class NewsletterParsingException(IngestionError):
    """Raised by a handler when a structural marker of its template is missing."""
    pass


class EmptyExtractionError(IngestionError):
    """Raised when a handler ran without error but produced no articles."""
    pass


class AmbiguousHandlerError(IngestionError):
    """Raised when more than one handler claims the same email."""

    def __init__(self, subject: str, handler_names: Sequence[str]):
        self.subject = subject
        self.handler_names = list(handler_names)
        super().__init__(
            f"Too many handlers found for email \"{subject}\": {', '.join(self.handler_names)}"
        )


class TransportError(IngestionError):
    """Raised when the mailbox or the publication store cannot be reached."""
    pass

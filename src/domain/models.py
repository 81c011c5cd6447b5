"""
Data models for the newsletter ingestion domain.

These type-safe data structures define clear contracts between components:
emails coming out of the mailbox, publications going into the sink, and the
explicit per-email / per-batch results produced by the ingestion pipeline.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

# Supplies "now" for date stamping; injected so tests can freeze time
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: current time, timezone-aware (UTC)."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MessageId:
    """
    Handle used to re-locate a message in its mailbox for acknowledgment.

    Attributes:
        folder: Mailbox folder (IMAP folder, S3 prefix or local directory)
        uid: Stable identifier of the message inside the folder
    """
    folder: str
    uid: str

    def __str__(self) -> str:
        return f"{self.folder}/{self.uid}"


class EmailContent:
    """
    Body of an email: text, HTML, or both.

    Exactly three shapes exist (TextOnly, HtmlOnly, TextAndHtml), so an email
    always carries at least one representation.
    """

    @property
    def text_or_none(self) -> Optional[str]:
        return None

    @property
    def html_or_none(self) -> Optional[str]:
        return None


@dataclass(frozen=True, repr=False)
class TextOnly(EmailContent):
    text: str

    @property
    def text_or_none(self) -> Optional[str]:
        return self.text

    def __repr__(self) -> str:
        return f"TextOnly(text={len(self.text)} chars)"


@dataclass(frozen=True, repr=False)
class HtmlOnly(EmailContent):
    html: str

    @property
    def html_or_none(self) -> Optional[str]:
        return self.html

    def __repr__(self) -> str:
        return f"HtmlOnly(html={len(self.html)} chars)"


@dataclass(frozen=True, repr=False)
class TextAndHtml(EmailContent):
    text: str
    html: str

    @property
    def text_or_none(self) -> Optional[str]:
        return self.text

    @property
    def html_or_none(self) -> Optional[str]:
        return self.html

    def __repr__(self) -> str:
        return f"TextAndHtml(text={len(self.text)} chars, html={len(self.html)} chars)"


@dataclass(frozen=True)
class Email:
    """
    Normalized email, built from a raw mail message.

    Attributes:
        sender: First address of the From header
        date: Date the email was sent
        subject: Decoded subject line
        content: Body variant (TextOnly, HtmlOnly or TextAndHtml)
        message_id: Handle back to the mailbox, only used for acknowledgment
        reply_to: First address of the Reply-To header, if any
    """
    sender: str
    date: date
    subject: str
    content: EmailContent
    message_id: Optional[MessageId] = field(default=None, compare=False)
    reply_to: Optional[str] = None

    @property
    def html(self) -> str:
        """HTML body, for handlers that cannot work without one."""
        html = self.content.html_or_none
        if html is None:
            raise ValueError(f"Email \"{self.subject}\" does not have html content")
        return html

    @property
    def text(self) -> str:
        text = self.content.text_or_none
        if text is None:
            raise ValueError(f"Email \"{self.subject}\" does not have text content")
        return text


@dataclass(frozen=True)
class Newsletter:
    """
    A named, periodic email source.

    Attributes:
        code: Unique key of the newsletter (also used in storage paths)
        name: Display name
        website_url: Public website of the newsletter
        notes: Optional short description (e.g. "Libraries")
        feed_title: Optional feed title, defaults to the name
    """
    code: str
    name: str
    website_url: str
    notes: Optional[str] = None
    feed_title: Optional[str] = None

    @property
    def title(self) -> str:
        return self.feed_title or self.name


@dataclass(frozen=True)
class Article:
    """
    A single item extracted from a newsletter issue.

    Raises:
        ValueError: If link is not an absolute http(s) URL
    """
    title: str
    link: str
    description: str

    def __post_init__(self):
        parsed = urlparse(self.link)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f"Article link must be an absolute URL: {self.link!r}")


@dataclass(frozen=True)
class Publication:
    """
    One issue of a newsletter.

    A publication without articles is valid as a handler output but must not
    be persisted.
    """
    title: str
    date: date
    newsletter: Newsletter
    articles: Tuple[Article, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'articles', tuple(self.articles))

    @property
    def has_articles(self) -> bool:
        return len(self.articles) > 0


@dataclass(frozen=True)
class ProcessingErrorContext:
    """
    Context sent to monitoring when an email cannot be processed.

    Attributes:
        email_subject: Subject of the failing email
        handler_name: Name of the matched handler (None if failure happened before)
        error: The exception that was raised
    """
    email_subject: str
    error: Exception
    handler_name: Optional[str] = None


@dataclass
class ProcessingResult:
    """
    Result of processing a single email.

    This explicit result type makes success/failure handling clear
    and prevents exceptions from being used for control flow.

    Attributes:
        status: One of PROCESSED, SKIPPED or FAILED
        message_id: Mailbox handle of the email
        subject: Email subject (empty if the message could not be read)
        handler_name: Name of the handler that processed the email
        publications: Publications that were persisted
        error_message: Error description (if processing failed)
    """
    PROCESSED = 'processed'
    SKIPPED = 'skipped'
    FAILED = 'failed'

    status: str
    message_id: Optional[MessageId]
    subject: str = ''
    handler_name: Optional[str] = None
    publications: List[Publication] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == self.PROCESSED

    @property
    def article_count(self) -> int:
        return sum(len(p.articles) for p in self.publications)

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.status == self.FAILED:
            return (
                f"ProcessingResult(status={self.status}, message_id={self.message_id}, "
                f"error={self.error_message})"
            )
        return f"ProcessingResult(status={self.status}, message_id={self.message_id})"


@dataclass
class BatchReport:
    """
    Result of one ingestion tick.

    Attributes:
        started_at: When the tick was triggered
        ran: False if the tick was rejected because another one was running
        results: One ProcessingResult per fetched email, in fetch order
        transport_error: Description of the mailbox failure that ended the tick
    """
    started_at: datetime
    ran: bool = True
    results: List[ProcessingResult] = field(default_factory=list)
    transport_error: Optional[str] = None

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def processed_count(self) -> int:
        return self._count(ProcessingResult.PROCESSED)

    @property
    def skipped_count(self) -> int:
        return self._count(ProcessingResult.SKIPPED)

    @property
    def failed_count(self) -> int:
        return self._count(ProcessingResult.FAILED)

    def to_dict(self):
        return {
            'startedAt': self.started_at.isoformat(),
            'ran': self.ran,
            'emails': len(self.results),
            'processed': self.processed_count,
            'skipped': self.skipped_count,
            'failed': self.failed_count,
            'transportError': self.transport_error,
        }

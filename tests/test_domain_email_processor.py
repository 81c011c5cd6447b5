"""
Tests for single email processing.
"""

import pytest
from unittest.mock import MagicMock
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.email_processor import EmailProcessor
from domain.exceptions import AmbiguousHandlerError, NewsletterParsingException, TransportError
from domain.models import Article, MessageId, Newsletter, ProcessingResult
from newsletters.base import MultipleFeedsHandler, SingleFeedHandler
from services.email import parse_raw_email
from services.mailbox import RawMessage
from services.publications import InMemoryPublicationSink

NEWSLETTER = Newsletter(code='weekly', name='Weekly', website_url='https://weekly.example.com')
LIBRARIES = Newsletter(code='weekly/libraries', name='Weekly', website_url='https://weekly.example.com')
ARTICLE = Article(title='Article', link='https://example.com/a', description='')


def make_raw(subject='Weekly #1', sender='news@weekly.example.com', uid='1'):
    raw_email = (
        f"From: Weekly <{sender}>\r\n"
        f"Subject: {subject}\r\n"
        f"Date: Sun, 10 Mar 2024 08:00:00 +0000\r\n"
        f"Content-Type: text/html; charset=utf-8\r\n"
        f"\r\n"
        f"<p>Hello</p>\r\n"
    ).encode('utf-8')
    return RawMessage(message_id=MessageId('INBOX', uid), message=parse_raw_email(raw_email))


class WeeklyHandler(SingleFeedHandler):

    def __init__(self, articles=None, error=None):
        self.articles = [ARTICLE] if articles is None else articles
        self.error = error

    @property
    def newsletter(self):
        return NEWSLETTER

    def can_handle(self, email):
        return 'weekly.example.com' in email.sender

    def extract_articles(self, email):
        if self.error:
            raise self.error
        return self.articles


class OtherWeeklyHandler(WeeklyHandler):
    pass


class SplitWeeklyHandler(MultipleFeedsHandler):

    @property
    def newsletters(self):
        return (NEWSLETTER, LIBRARIES)

    def can_handle(self, email):
        return 'weekly.example.com' in email.sender

    def extract_articles(self, email):
        return {NEWSLETTER: [ARTICLE], LIBRARIES: []}


@pytest.fixture
def email_source():
    return MagicMock()


@pytest.fixture
def monitoring():
    return MagicMock()


@pytest.fixture
def sink():
    return InMemoryPublicationSink()


def make_processor(handlers, email_source, sink, monitoring, **kwargs):
    return EmailProcessor(handlers, email_source, sink, monitoring, **kwargs)


class TestProcessMessage:
    """Test the outcome of processing one message."""

    def test_processed(self, email_source, sink, monitoring, fixed_clock):
        """Test that publications are saved and the email is marked as read."""
        processor = make_processor([WeeklyHandler()], email_source, sink, monitoring, clock=fixed_clock)

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.PROCESSED
        assert result.success
        assert result.handler_name == 'WeeklyHandler'
        assert result.article_count == 1
        assert len(sink.publications) == 1
        assert sink.publications[0].title == 'Weekly #1'
        email_source.mark_as_read.assert_called_once_with(MessageId('INBOX', '1'))
        email_source.move_to_processed.assert_not_called()
        monitoring.notify_processing_error.assert_not_called()

    def test_move_after_processing(self, email_source, sink, monitoring):
        """Test that the email is moved when configured."""
        processor = make_processor(
            [WeeklyHandler()], email_source, sink, monitoring, move_after_processing=True
        )

        processor.process_message(make_raw())

        email_source.mark_as_read.assert_called_once()
        email_source.move_to_processed.assert_called_once_with(MessageId('INBOX', '1'))

    def test_empty_feeds_are_dropped(self, email_source, sink, monitoring):
        """Test that only feeds with articles are saved."""
        processor = make_processor([SplitWeeklyHandler()], email_source, sink, monitoring)

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.PROCESSED
        assert [p.newsletter for p in sink.publications] == [NEWSLETTER]

    def test_no_handler_is_skipped(self, email_source, sink, monitoring):
        """Test that an unknown newsletter is left unread."""
        processor = make_processor([WeeklyHandler()], email_source, sink, monitoring)

        result = processor.process_message(make_raw(sender='someone@example.org'))

        assert result.status == ProcessingResult.SKIPPED
        assert not result.success
        email_source.mark_as_read.assert_not_called()
        monitoring.notify_processing_error.assert_not_called()

    def test_ambiguous_handlers_fail(self, email_source, sink, monitoring):
        """Test that several handlers claiming an email is a failure."""
        processor = make_processor(
            [WeeklyHandler(), OtherWeeklyHandler()], email_source, sink, monitoring
        )

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.FAILED
        assert 'AmbiguousHandlerError' in result.error_message
        context = monitoring.notify_processing_error.call_args.args[0]
        assert isinstance(context.error, AmbiguousHandlerError)
        assert context.email_subject == 'Weekly #1'
        email_source.mark_as_read.assert_not_called()

    def test_no_articles_fails(self, email_source, sink, monitoring):
        """Test that an extraction without articles is a failure."""
        processor = make_processor([WeeklyHandler(articles=[])], email_source, sink, monitoring)

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.FAILED
        assert result.error_message.startswith('EmptyExtractionError')
        assert sink.publications == []
        email_source.mark_as_read.assert_not_called()

    def test_parsing_error_fails(self, email_source, sink, monitoring):
        """Test that a handler error is reported with the handler name."""
        error = NewsletterParsingException('Cannot find article description')
        processor = make_processor([WeeklyHandler(error=error)], email_source, sink, monitoring)

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.FAILED
        assert result.handler_name == 'WeeklyHandler'
        context = monitoring.notify_processing_error.call_args.args[0]
        assert context.error is error
        assert context.handler_name == 'WeeklyHandler'

    def test_monitoring_failure_does_not_escape(self, email_source, sink, monitoring):
        """Test that a failing monitoring service does not raise."""
        monitoring.notify_processing_error.side_effect = RuntimeError('monitoring down')
        processor = make_processor([WeeklyHandler(articles=[])], email_source, sink, monitoring)

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.FAILED

    def test_acknowledge_failure_keeps_result(self, email_source, sink, monitoring):
        """Test that an email whose publications are saved stays processed."""
        email_source.mark_as_read.side_effect = TransportError('mailbox down')
        processor = make_processor([WeeklyHandler()], email_source, sink, monitoring)

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.PROCESSED
        assert len(sink.publications) == 1
        monitoring.notify_transport_error.assert_called_once()

    def test_unreadable_email_reports_subject(self, email_source, sink, monitoring):
        """Test that an email without text or html body is reported with its subject."""
        raw_email = (
            b"From: Weekly <news@weekly.example.com>\r\n"
            b"Subject: =?utf-8?q?Weekly_=237?=\r\n"
            b"Content-Type: image/png\r\n"
            b"Content-Transfer-Encoding: base64\r\n"
            b"\r\n"
            b"iVBORw0KGgo=\r\n"
        )
        raw = RawMessage(message_id=MessageId('INBOX', '9'), message=parse_raw_email(raw_email))
        processor = make_processor([WeeklyHandler()], email_source, sink, monitoring)

        result = processor.process_message(raw)

        assert result.status == ProcessingResult.FAILED
        assert result.subject == 'Weekly #7'
        assert result.error_message.startswith('NoContentError')
        context = monitoring.notify_processing_error.call_args.args[0]
        assert context.email_subject == 'Weekly #7'
        assert context.handler_name is None

    def test_save_failure_fails(self, email_source, monitoring):
        """Test that a storage error fails the email and leaves it unread."""
        failing_sink = MagicMock()
        failing_sink.save_publications.side_effect = TransportError('bucket down')
        processor = make_processor([WeeklyHandler()], email_source, failing_sink, monitoring)

        result = processor.process_message(make_raw())

        assert result.status == ProcessingResult.FAILED
        email_source.mark_as_read.assert_not_called()

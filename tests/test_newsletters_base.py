"""
Tests for the handler contract and the handler registry.
"""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.models import Article, Newsletter
from newsletters import build_handlers
from newsletters.base import MultipleFeedsHandler, SingleFeedHandler

FEED_A = Newsletter(code='feed_a', name='Feed A', website_url='https://a.example.com')
FEED_B = Newsletter(code='feed_b', name='Feed B', website_url='https://b.example.com')
ARTICLE = Article(title='T', link='https://example.com/t', description='D')


class StubSingleFeedHandler(SingleFeedHandler):

    @property
    def newsletter(self):
        return FEED_A

    def can_handle(self, email):
        return True

    def extract_articles(self, email):
        return [ARTICLE]


class StubMultipleFeedsHandler(MultipleFeedsHandler):

    @property
    def newsletters(self):
        return (FEED_A, FEED_B)

    def can_handle(self, email):
        return True

    def extract_articles(self, email):
        return {FEED_A: [ARTICLE], FEED_B: []}


class TestBuildPublications:
    """Test publications built from both handler shapes."""

    def test_single_feed(self, make_email):
        """Test one publication titled after the subject and dated with the email."""
        email = make_email('<p></p>', subject='Issue #7')

        publications = StubSingleFeedHandler().build_publications(email)

        assert len(publications) == 1
        assert publications[0].title == 'Issue #7'
        assert publications[0].date == email.date
        assert publications[0].newsletter == FEED_A
        assert publications[0].articles == (ARTICLE,)

    def test_multiple_feeds(self, make_email):
        """Test one publication per feed, empty ones included."""
        publications = StubMultipleFeedsHandler().build_publications(make_email('<p></p>'))

        assert [p.newsletter for p in publications] == [FEED_A, FEED_B]
        assert [p.has_articles for p in publications] == [True, False]

    def test_single_feed_newsletters(self):
        """Test that a single-feed handler exposes its newsletter as a one-item sequence."""
        assert StubSingleFeedHandler().newsletters == (FEED_A,)

    def test_name(self):
        """Test the default handler name."""
        assert StubSingleFeedHandler().name == 'StubSingleFeedHandler'


class TestBuildHandlers:
    """Test the handler registry."""

    def test_all_handlers(self):
        """Test that every handler is registered, in a stable order."""
        handlers = build_handlers()

        assert isinstance(handlers, tuple)
        assert [h.name for h in handlers] == [
            'AndroidWeeklyNewsletterHandler',
            'KotlinWeeklyNewsletterHandler',
            'MITWeekendReadsNewsletterHandler',
            'PointerNewsletterHandler',
            'TechReadersNewsletterHandler',
        ]

    def test_newsletter_codes_are_unique(self):
        """Test that no two feeds share a code."""
        codes = [n.code for h in build_handlers() for n in h.newsletters]

        assert len(codes) == len(set(codes))

    def test_disabled_newsletter_removes_handler(self):
        """Test disabling a handler through any of its codes."""
        handlers = build_handlers(['kotlin_weekly/libraries', ' pointer ', ''])

        names = [h.name for h in handlers]
        assert 'KotlinWeeklyNewsletterHandler' not in names
        assert 'PointerNewsletterHandler' not in names
        assert len(handlers) == 3

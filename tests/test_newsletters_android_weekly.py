"""
Tests for the Android Weekly handler.
"""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.exceptions import NewsletterParsingException
from newsletters.android_weekly import (
    ARTICLES_NEWSLETTER,
    LIBRARIES_NEWSLETTER,
    AndroidWeeklyNewsletterHandler,
)

SENDER = 'contact@androidweekly.net'
SECTION_STYLE = 'font-size:20px;color:#111111'

ANDROID_WEEKLY_HTML = f"""
<table><tr><td>
<span style="{SECTION_STYLE}">Articles &amp; Tutorials</span>
<p><a href="https://example.com/compose">Compose tips</a> Learn compose tricks.</p>
<p><a href="https://example.com/flow">Flow guide</a> Everything about flows.</p>
<span style="{SECTION_STYLE}">Sponsored</span>
<p><a href="https://sponsor.example.com">Sponsor</a> Buy it.</p>
<span style="{SECTION_STYLE}">Libraries &amp; Code</span>
<p><a href="https://github.com/example/y">y-lib</a> A small library.</p>
<span style="font-size:12px">Unsubscribe below</span>
</td></tr></table>
"""


@pytest.fixture
def handler():
    return AndroidWeeklyNewsletterHandler()


class TestAndroidWeekly:
    """Test Android Weekly extraction."""

    def test_can_handle(self, handler, make_email):
        """Test sender based selection."""
        assert handler.can_handle(make_email('', sender=SENDER))
        assert not handler.can_handle(make_email('', sender='mailinglist@kotlinweekly.net'))

    def test_sections_feed_their_newsletters(self, handler, make_email):
        """Test that articles and libraries go to their own feeds."""
        result = handler.extract_articles(make_email(ANDROID_WEEKLY_HTML, sender=SENDER))

        assert set(result) == {ARTICLES_NEWSLETTER, LIBRARIES_NEWSLETTER}
        assert [a.title for a in result[ARTICLES_NEWSLETTER]] == ['Compose tips', 'Flow guide']
        assert [a.title for a in result[LIBRARIES_NEWSLETTER]] == ['y-lib']

    def test_description_is_text_after_link(self, handler, make_email):
        """Test description extraction."""
        result = handler.extract_articles(make_email(ANDROID_WEEKLY_HTML, sender=SENDER))

        first = result[ARTICLES_NEWSLETTER][0]
        assert first.link == 'https://example.com/compose'
        assert first.description == 'Learn compose tricks.'

    def test_missing_articles_marker_raises(self, handler, make_email):
        """Test that a template without the articles header is rejected."""
        html = f'<span style="{SECTION_STYLE}">Something else</span><p><a href="https://x.y">x</a> y</p>'

        with pytest.raises(NewsletterParsingException, match='Articles & Tutorials'):
            handler.extract_articles(make_email(html, sender=SENDER))

    def test_missing_description_raises(self, handler, make_email):
        """Test that a link without following content is rejected."""
        html = f'<span style="{SECTION_STYLE}">Articles &amp; Tutorials</span><p><a href="https://x.y">x</a></p>'

        with pytest.raises(NewsletterParsingException, match='Cannot find article description'):
            handler.extract_articles(make_email(html, sender=SENDER))

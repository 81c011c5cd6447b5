"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
from datetime import date, datetime, timezone

import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')
os.environ.setdefault('EMAIL_SOURCE', 'local')

from domain.models import Email, HtmlOnly, MessageId  # noqa: E402


@pytest.fixture
def fixed_clock():
    """Clock frozen on 2024-03-10 12:00 UTC."""
    return lambda: datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_email():
    """Factory building an HtmlOnly email."""
    def _make(html, sender='sender@example.com', subject='Issue #1', sent=date(2024, 3, 10), uid='1'):
        return Email(
            sender=sender,
            date=sent,
            subject=subject,
            content=HtmlOnly(html=html),
            message_id=MessageId(folder='INBOX', uid=uid),
        )
    return _make

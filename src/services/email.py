"""
Email parsing utilities.

This module turns raw mail messages into normalized Email values:
the first text/plain leaf and the first text/html leaf of the MIME tree
become the email content, the first From address becomes the sender.
"""

import logging
from email import policy
from email.header import decode_header, make_header
from email.message import Message
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from typing import Optional, Tuple

from domain.exceptions import NoContentError
from domain.models import (
    Clock,
    Email,
    EmailContent,
    HtmlOnly,
    MessageId,
    TextAndHtml,
    TextOnly,
    utc_now,
)

logger = logging.getLogger(__name__)


def parse_raw_email(raw_email: bytes) -> Message:
    """
    Parse raw email bytes (RFC 822 / MIME) into a navigable part tree.

    Args:
        raw_email: Raw email bytes, as stored by the mail server

    Returns:
        Message: Parsed message (email.message.EmailMessage)
    """
    return BytesParser(policy=policy.default).parsebytes(raw_email)


def resolve_email(
    message: Message,
    message_id: Optional[MessageId] = None,
    clock: Clock = utc_now,
) -> Email:
    """
    Convert a parsed mail message into a normalized Email.

    Args:
        message: Parsed message (see parse_raw_email)
        message_id: Mailbox handle used later to acknowledge the message
        clock: Supplies the date when the Date header is missing or invalid

    Returns:
        Email: Normalized email

    Raises:
        NoContentError: If the message has no text/plain nor text/html leaf

    Example:
        >>> msg = parse_raw_email(b"From: a@example.com\\r\\nSubject: Hi\\r\\n\\r\\nHello")
        >>> resolve_email(msg).content
        TextOnly(text=5 chars)
    """
    subject = decode_header_value(message.get('Subject', ''))
    text_body, html_body = find_body_leaves(message)
    content = _build_content(text_body, html_body, subject)

    return Email(
        sender=first_address(message, 'From') or '',
        date=_message_date(message, clock),
        subject=subject,
        content=content,
        message_id=message_id,
        reply_to=first_address(message, 'Reply-To'),
    )


def find_body_leaves(message: Message) -> Tuple[Optional[str], Optional[str]]:
    """
    Find the first text/plain and the first text/html leaves of a MIME tree.

    The tree is walked depth-first in document order; later leaves of an
    already found type are ignored. Attachments are never body leaves.

    Args:
        message: Parsed message

    Returns:
        Tuple of (text body, html body), each None when not found
    """
    text_body = None
    html_body = None

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == 'attachment':
            continue

        content_type = part.get_content_type()
        if content_type == 'text/plain' and text_body is None:
            text_body = _decode_part(part)
        elif content_type == 'text/html' and html_body is None:
            html_body = _decode_part(part)

        if text_body is not None and html_body is not None:
            break

    return text_body, html_body


def first_address(message: Message, header: str) -> Optional[str]:
    """
    Return the first email address of an address header.

    Args:
        message: Parsed message
        header: Header name (e.g. "From", "Reply-To")

    Returns:
        The bare address ("local@domain"), or None if the header has no address
    """
    values = [str(v) for v in message.get_all(header, [])]
    for _, address in getaddresses(values):
        if address:
            return address
    return None


def decode_header_value(value) -> str:
    """Decode RFC 2047 encoded-words of a header value."""
    if not value:
        return ''
    try:
        return str(make_header(decode_header(str(value)))).strip()
    except Exception as e:
        logger.warning(f"Failed to decode header value {value!r}: {e}")
        return str(value).strip()


def _build_content(
    text_body: Optional[str],
    html_body: Optional[str],
    subject: str,
) -> EmailContent:
    if text_body is not None and html_body is not None:
        return TextAndHtml(text=text_body, html=html_body)
    if html_body is not None:
        return HtmlOnly(html=html_body)
    if text_body is not None:
        return TextOnly(text=text_body)
    raise NoContentError(f"No text/plain nor text/html part found in email \"{subject}\"")


def _decode_part(part: Message) -> str:
    try:
        # get_content() handles quoted-printable, base64 and charsets
        return part.get_content()
    except Exception as e:
        logger.warning(f"Failed to decode {part.get_content_type()} part with get_content(): {e}")

    # Fallback: manual decode with get_payload(decode=True)
    payload = part.get_payload(decode=True) or b''
    charset = part.get_content_charset() or 'utf-8'
    try:
        return payload.decode(charset, errors='replace')
    except LookupError:
        return payload.decode('utf-8', errors='replace')


def _message_date(message: Message, clock: Clock):
    try:
        raw_date = message.get('Date')
        if raw_date:
            return parsedate_to_datetime(str(raw_date)).date()
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid Date header: {e}")
    return clock().date()

"""
HTML helpers for newsletter handlers.

- Allow-list based cleaning of email HTML (BeautifulSoup)
- Inline-style color parsing (HtmlColor)
- Text and URL helpers
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import FrozenSet, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import PreformattedString

logger = logging.getLogger(__name__)

# Elements removed with their content, whatever the allow-list
REMOVED_TAGS = ['script', 'style', 'head', 'title', 'noscript', 'iframe', 'object', 'embed']

# Protocols kept on URL attributes
URL_ATTRIBUTES = frozenset({'href', 'cite', 'src'})
ALLOWED_PROTOCOLS = frozenset({'http', 'https', 'mailto', 'ftp'})


@dataclass(frozen=True)
class Safelist:
    """
    Allow-list of tags and attributes kept by clean_html.

    Attributes:
        tags: Element names kept (other elements are unwrapped)
        attributes: Allowed (tag, attribute) pairs
    """
    tags: FrozenSet[str] = frozenset()
    attributes: FrozenSet[Tuple[str, str]] = frozenset()

    @classmethod
    def basic(cls) -> 'Safelist':
        """Inline formatting, lists, quotes and links."""
        return cls(
            tags=frozenset({
                'a', 'b', 'blockquote', 'br', 'cite', 'code', 'dd', 'dl', 'dt', 'em',
                'i', 'li', 'ol', 'p', 'pre', 'q', 'small', 'span', 'strike', 'strong',
                'sub', 'sup', 'u', 'ul',
            }),
            attributes=frozenset({('a', 'href'), ('blockquote', 'cite'), ('q', 'cite')}),
        )

    def with_attributes(self, tag: str, *attributes: str) -> 'Safelist':
        """Allow attributes on a tag (the tag itself becomes allowed too)."""
        tag = tag.lower()
        return replace(
            self,
            tags=self.tags | {tag},
            attributes=self.attributes | {(tag, a.lower()) for a in attributes},
        )

    def allows_tag(self, tag: str) -> bool:
        return tag in self.tags

    def allows_attribute(self, tag: str, attribute: str) -> bool:
        return (tag, attribute) in self.attributes


def clean_html(html: str, safelist: Safelist) -> str:
    """
    Clean untrusted email HTML down to an allow-list.

    Comments and non-content elements (script, style, head...) are removed
    with their content. Other elements outside the allow-list are unwrapped,
    keeping their children. Attributes outside the allow-list are dropped,
    and URL attributes with a non-web protocol are dropped too.

    Args:
        html: HTML document or fragment
        safelist: Tags and attributes to keep

    Returns:
        str: Cleaned HTML fragment (body content only)

    Example:
        >>> clean_html('<div><p class="x">Hi <a href="https://a.b" onclick="x()">a</a></p></div>', Safelist.basic())
        '<p>Hi <a href="https://a.b">a</a></p>'
    """
    soup = BeautifulSoup(html, 'html.parser')

    for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
        node.extract()
    for tag in soup.find_all(REMOVED_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        if not safelist.allows_tag(tag.name):
            tag.unwrap()
            continue
        for attribute in list(tag.attrs):
            if not safelist.allows_attribute(tag.name, attribute):
                del tag[attribute]
            elif attribute in URL_ATTRIBUTES and not _has_allowed_protocol(tag[attribute]):
                logger.debug(f"Dropping {tag.name}[{attribute}] with unsafe URL: {tag[attribute]!r}")
                del tag[attribute]

    return soup.decode().strip()


def _has_allowed_protocol(value) -> bool:
    scheme = urlparse(str(value).strip()).scheme.lower()
    return scheme in ALLOWED_PROTOCOLS


def to_url_or_none(value: Optional[str]) -> Optional[str]:
    """
    Return value if it is an absolute http(s) URL, None otherwise.

    Example:
        >>> to_url_or_none(' https://example.com/a ')
        'https://example.com/a'
        >>> to_url_or_none('invalid_url') is None
        True
    """
    if not value:
        return None
    candidate = value.strip()
    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in ('http', 'https') or not parsed.netloc:
        return None
    return candidate


# ============================================================================
# Colors
# ============================================================================

COLOR_MAX_VALUE = 255

HEX_COLOR_RE = re.compile(r'#(?:[A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})')
RGB_COLOR_RE = re.compile(r'rgb\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)')
# "color" property only, not "background-color" nor "border-color"
STYLE_COLOR_RE = re.compile(r'(?<![\w-])color\s*:\s*(.+?)\s*(?:;|$)')
STYLE_BACKGROUND_COLOR_RE = re.compile(r'background-color\s*:\s*(.+?)\s*(?:;|$)')


@dataclass(frozen=True)
class HtmlColor:
    """
    RGB color of an inline style.

    Raises:
        ValueError: If a component is outside [0, 255]
    """
    red: int
    green: int
    blue: int

    def __post_init__(self):
        if not all(0 <= c <= COLOR_MAX_VALUE for c in (self.red, self.green, self.blue)):
            raise ValueError(
                f"colors must be between 0 and {COLOR_MAX_VALUE} : ({self.red}, {self.green}, {self.blue})"
            )

    @classmethod
    def of(cls, value: str) -> 'HtmlColor':
        """
        Parse a CSS color: '#rrggbb', '#rgb' or 'rgb(r, g, b)'.

        Raises:
            ValueError: If the format is not supported
        """
        value = value.strip()
        if HEX_COLOR_RE.fullmatch(value):
            digits = value[1:]
            if len(digits) == 3:
                digits = ''.join(d * 2 for d in digits)
            return cls(
                red=int(digits[0:2], 16),
                green=int(digits[2:4], 16),
                blue=int(digits[4:6], 16),
            )

        match = RGB_COLOR_RE.fullmatch(value)
        if match:
            return cls(*(int(g) for g in match.groups()))

        raise ValueError(f"Unsupported color : {value}")

    @classmethod
    def extract_from_style(cls, style: str) -> Optional['HtmlColor']:
        """Text color of an inline style, None if absent or unparsable."""
        return cls._extract(STYLE_COLOR_RE, style)

    @classmethod
    def extract_background_from_style(cls, style: str) -> Optional['HtmlColor']:
        """Background color of an inline style, None if absent or unparsable."""
        return cls._extract(STYLE_BACKGROUND_COLOR_RE, style)

    @classmethod
    def _extract(cls, pattern, style: str) -> Optional['HtmlColor']:
        match = pattern.search(style or '')
        if not match:
            return None
        try:
            return cls.of(match.group(1))
        except ValueError as e:
            logger.warning(str(e))
            return None

    def matches(self, other: 'HtmlColor', tolerance: int = 0) -> bool:
        """
        Compare two colors.

        Args:
            other: Color to compare with
            tolerance: Maximum sum of absolute component deltas (0 for exact match)
        """
        delta = (
            abs(self.red - other.red)
            + abs(self.green - other.green)
            + abs(self.blue - other.blue)
        )
        return delta <= tolerance

    @property
    def is_grayscale(self) -> bool:
        return self.red == self.green == self.blue


def has_grayscale_color(style: str) -> bool:
    """Check whether an inline style sets a gray (or black/white) text color."""
    color = HtmlColor.extract_from_style(style)
    return color is not None and color.is_grayscale

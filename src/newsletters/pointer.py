"""
Pointer newsletter, table-based template.

Pointer changed its template drastically in August 2024; this handler only
accepts issues sent before that change.
"""

import logging
import re
from datetime import date
from typing import List, Optional

from bs4 import BeautifulSoup

from domain.exceptions import NewsletterParsingException
from domain.models import Article, Email, Newsletter
from newsletters.base import SingleFeedHandler
from services.dom import DomTree
from services.html import Safelist, clean_html, to_url_or_none
from services.sections import Section, process

logger = logging.getLogger(__name__)

# First issue with the new template
TEMPLATE_CUTOFF_DATE = date(2024, 8, 14)

LINK_SELECTOR = 'a[href]:has(strong span)'
DESCRIPTION_SELECTOR = 'p:has(strong:-soup-contains("tl;dr"))'
DESCRIPTION_PREFIX = 'tl;dr:'
SPONSOR_PREFIX = 'is presented by'

SEPARATOR_RE = re.compile(r'border-top\s*:\s*2px\s*solid\s*#000000')
SEPARATOR_WIDTH_RE = re.compile(r'border-top-width:\s*2px\b')
SEPARATOR_STYLE_RE = re.compile(r'border-top-style:\s*solid\b')
SEPARATOR_COLOR_RE = re.compile(r'border-top-color:\s*#000000\b')

NEWSLETTER = Newsletter(
    code='pointer',
    name='Pointer',
    website_url='http://www.pointer.io/',
)


def is_separator_style(style: str) -> bool:
    """Check whether an inline style draws the thick black line between articles."""
    if SEPARATOR_RE.search(style):
        return True
    return all(r.search(style) for r in (SEPARATOR_WIDTH_RE, SEPARATOR_STYLE_RE, SEPARATOR_COLOR_RE))


class PointerNewsletterHandler(SingleFeedHandler):

    @property
    def newsletter(self) -> Newsletter:
        return NEWSLETTER

    def can_handle(self, email: Email) -> bool:
        return 'suraj@pointer.io' in email.sender and email.date < TEMPLATE_CUTOFF_DATE

    def extract_articles(self, email: Email) -> List[Article]:
        cleaned = clean_html(
            self._preserve_separators(email.html),
            Safelist.basic().with_attributes('p', 'style'),
        )
        tree = DomTree.from_html(cleaned)

        separator = next(
            (n for n in tree.select('p[style]') if is_separator_style(tree.attr(n, 'style'))),
            None,
        )
        if separator is None:
            raise NewsletterParsingException("Cannot find the first separator in Pointer")

        # The sponsor block comes before the first separator, articles after it
        first_sibling = tree.children(tree.parent(separator))[0]
        articles = []
        if first_sibling != separator:
            sponsor = process(tree, Section('Sponsor', first_sibling, separator), self._find_sponsor)
            if sponsor is not None:
                articles.append(sponsor)
        articles.extend(process(tree, Section('Articles', separator), self._find_articles))
        return articles

    @staticmethod
    def _preserve_separators(html: str) -> str:
        # Separators are styled <td>, which cleaning would unwrap with the table
        soup = BeautifulSoup(html, 'html.parser')
        for td in soup.select('td[style]'):
            style = td['style']
            if is_separator_style(style):
                td.name = 'p'
                td.attrs = {'style': style}
        return soup.decode()

    @staticmethod
    def _find_sponsor(doc: DomTree) -> Optional[Article]:
        subtitle_node = doc.select_first(LINK_SELECTOR)
        if subtitle_node is None:
            return None
        link = to_url_or_none(doc.attr(subtitle_node, 'href'))
        if link is None:
            return None

        name_text = next((t for t in (doc.text_content(p) for p in doc.select('p')) if t), None)
        if name_text is None:
            raise NewsletterParsingException("Cannot find sponsor name in Pointer")
        prefix_index = name_text.find(SPONSOR_PREFIX)
        if prefix_index >= 0:
            name_text = name_text[prefix_index + len(SPONSOR_PREFIX):]
        sponsor_name = name_text.strip()

        subtitle = doc.text_content(subtitle_node)
        full_text = doc.text_content(DomTree.ROOT)
        description = full_text[full_text.find(subtitle) + len(subtitle):].strip()

        return Article(
            title=f"SPONSOR - {sponsor_name}: {subtitle}",
            link=link,
            description=description,
        )

    def _find_articles(self, doc: DomTree) -> List[Article]:
        articles = []
        for link_node in doc.select(LINK_SELECTOR):
            link = to_url_or_none(doc.attr(link_node, 'href'))
            if link is None:
                continue
            articles.append(
                Article(
                    title=doc.text_content(link_node),
                    link=link,
                    description=self._find_description(doc, link_node),
                )
            )
        return articles

    @staticmethod
    def _find_description(doc: DomTree, link_node: int) -> str:
        parent = doc.parent(link_node)
        for sibling in doc.next_element_siblings(parent):
            if doc.matches(sibling, DESCRIPTION_SELECTOR):
                found = sibling
            else:
                found = doc.select_first(DESCRIPTION_SELECTOR, sibling)
            if found is not None:
                text = doc.text_content(found)
                if text.startswith(DESCRIPTION_PREFIX):
                    text = text[len(DESCRIPTION_PREFIX):]
                return text.strip()
        return 'N/A'

"""Kotlin Weekly: articles feed plus a dedicated libraries feed."""

import logging
from functools import partial
from typing import Dict, List, Optional

from domain.exceptions import NewsletterParsingException
from domain.models import Article, Email, Newsletter
from newsletters.base import MultipleFeedsHandler
from services.dom import DomTree
from services.html import Safelist, clean_html, to_url_or_none
from services.sections import Section, extract_sections, process

logger = logging.getLogger(__name__)

LIBRARIES_SECTION_TITLE = 'Libraries'
SPONSORED_SECTION_TITLE = 'Sponsored'
EXCLUDED_SECTIONS = ('Videos', 'Libraries', 'Contribute')
# Sections where an entry without description is dropped instead of failing
OPTIONAL_SECTIONS = ('SPONSORED', 'CONFERENCES')

ARTICLES_NEWSLETTER = Newsletter(
    code='kotlin_weekly',
    name='Kotlin Weekly',
    website_url='https://kotlinweekly.net/',
    notes='Articles',
    feed_title='Kotlin Weekly (Articles)',
)

LIBRARIES_NEWSLETTER = Newsletter(
    code='kotlin_weekly/libraries',
    name='Kotlin Weekly',
    website_url='https://kotlinweekly.net/',
    notes='Libraries',
    feed_title='Kotlin Weekly (Libraries)',
)


class KotlinWeeklyNewsletterHandler(MultipleFeedsHandler):

    @property
    def newsletters(self):
        return (ARTICLES_NEWSLETTER, LIBRARIES_NEWSLETTER)

    def can_handle(self, email: Email) -> bool:
        return 'mailinglist@kotlinweekly.net' in email.sender

    def extract_articles(self, email: Email) -> Dict[Newsletter, List[Article]]:
        tree = DomTree.from_html(clean_html(email.html, Safelist.basic()))
        sections = extract_sections(tree, 'p:has(strong)')

        articles = []
        for section in sections:
            if section.title not in EXCLUDED_SECTIONS:
                articles.extend(process(tree, section, partial(self._parse_section, section)))

        result = {ARTICLES_NEWSLETTER: articles}

        libraries_section = next((s for s in sections if s.title == LIBRARIES_SECTION_TITLE), None)
        if libraries_section is not None:
            result[LIBRARIES_NEWSLETTER] = process(
                tree, libraries_section, partial(self._parse_section, libraries_section)
            )
        return result

    def _parse_section(self, section: Section, doc: DomTree) -> List[Article]:
        articles = []
        for link_node in doc.select('a[href]:has(span)'):
            link = to_url_or_none(doc.attr(link_node, 'href'))
            if link is None:
                continue

            title = doc.text_content(link_node)
            if section.title == SPONSORED_SECTION_TITLE:
                title = f"SPONSORED - {title}"

            description = self._find_description(doc, link_node)
            if description is None:
                if section.title.upper() in OPTIONAL_SECTIONS:
                    logger.info(f"Ignoring \"{title}\" without description in section {section.title}")
                    continue
                raise NewsletterParsingException(
                    f"Cannot find article description for article \"{title}\" in Kotlin Weekly"
                )

            articles.append(Article(title=title.strip(), link=link, description=description))
        return articles

    @staticmethod
    def _find_description(doc: DomTree, link_node: int) -> Optional[str]:
        # First non-blank <span> following the link
        for sibling in doc.next_element_siblings(link_node):
            if doc.tag(sibling) == 'span':
                text = doc.text_content(sibling)
                if text:
                    return text
        return None

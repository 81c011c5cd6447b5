"""Android Weekly: "Articles & Tutorials" and "Libraries & Code" feeds."""

import logging
from functools import partial
from typing import Dict, List

from domain.exceptions import NewsletterParsingException
from domain.models import Article, Email, Newsletter
from newsletters.base import MultipleFeedsHandler
from services.dom import TEXT, DomTree
from services.html import Safelist, clean_html, to_url_or_none
from services.sections import extract_sections, process

logger = logging.getLogger(__name__)

ARTICLES_SECTION_TITLE = 'Articles & Tutorials'
LIBRARIES_SECTION_TITLE = 'Libraries & Code'

ARTICLES_NEWSLETTER = Newsletter(
    code='android_weekly',
    name='Android Weekly',
    website_url='https://androidweekly.net',
    notes='Articles',
    feed_title='Android Weekly (Articles)',
)

LIBRARIES_NEWSLETTER = Newsletter(
    code='android_weekly/libraries',
    name='Android Weekly',
    website_url='https://androidweekly.net',
    notes='Libraries',
    feed_title='Android Weekly (Libraries)',
)

NEWSLETTER_BY_SECTION = {
    ARTICLES_SECTION_TITLE: ARTICLES_NEWSLETTER,
    LIBRARIES_SECTION_TITLE: LIBRARIES_NEWSLETTER,
}


class AndroidWeeklyNewsletterHandler(MultipleFeedsHandler):
    """
    Section headers of Android Weekly are styled <span> elements.

    Their style changes from time to time, so it is read from the
    "Articles & Tutorials" header of each email rather than hard-coded.
    """

    @property
    def newsletters(self):
        return (ARTICLES_NEWSLETTER, LIBRARIES_NEWSLETTER)

    def can_handle(self, email: Email) -> bool:
        return 'contact@androidweekly.net' in email.sender

    def extract_articles(self, email: Email) -> Dict[Newsletter, List[Article]]:
        cleaned = clean_html(email.html, Safelist.basic().with_attributes('span', 'style'))
        tree = DomTree.from_html(cleaned)

        marker = next(
            (n for n in tree.select('span') if tree.own_text(n) == ARTICLES_SECTION_TITLE),
            None,
        )
        if marker is None:
            raise NewsletterParsingException(
                f"Cannot find section \"{ARTICLES_SECTION_TITLE}\" in Android Weekly"
            )
        section_style = tree.attr(marker, 'style')

        sections = extract_sections(
            tree,
            'span[style]',
            filter=lambda n: tree.attr(n, 'style') == section_style,
            title_of=tree.own_text,
        )

        result = {}
        for section in sections:
            newsletter = NEWSLETTER_BY_SECTION.get(section.title)
            if newsletter is None:
                logger.debug(f"Skipping Android Weekly section {section.title}")
                continue
            result[newsletter] = process(tree, section, partial(self._parse_section, section.title))
        return result

    def _parse_section(self, section_title: str, doc: DomTree) -> List[Article]:
        articles = []
        for link_node in doc.select('a[href]'):
            title = doc.text_content(link_node)
            if not title:
                continue
            link = to_url_or_none(doc.attr(link_node, 'href'))
            if link is None:
                logger.debug(f"Ignoring \"{title}\" with invalid link in {section_title}")
                continue

            siblings = doc.next_siblings(link_node)
            if not siblings:
                raise NewsletterParsingException(
                    f"Cannot find article description for article \"{title}\" in Android Weekly"
                )
            description_node = siblings[0]
            if doc.tag(description_node) == TEXT:
                description = doc.raw_text(description_node).strip()
            else:
                description = doc.text_content(description_node)

            articles.append(Article(title=title, link=link, description=description))
        return articles

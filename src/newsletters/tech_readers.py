"""Tech Readers, the reading list of Tech Rocks."""

import re
from typing import List

from domain.models import Article, Email, Newsletter
from newsletters.base import SingleFeedHandler
from services.dom import DomTree
from services.html import HtmlColor, Safelist, clean_html, has_grayscale_color, to_url_or_none
from services.sections import extract_sections, process

EMAIL_SUBJECT_RE = re.compile(r'Tech Readers #\d+.*')
SECTION_BACKGROUND = HtmlColor.of('#ef7a66')
FOOTER_TEXT = 'La Newsletter faite par et pour les Tech Leaders !'

NEWSLETTER = Newsletter(
    code='tech-readers',
    name='Tech Readers',
    website_url='https://share.hsforms.com/1fINml3OxSkaUjbqb9Gy7Ug3b2p9',
    notes='a newsletter by Tech Rocks',
)


class TechReadersNewsletterHandler(SingleFeedHandler):

    @property
    def newsletter(self) -> Newsletter:
        return NEWSLETTER

    def can_handle(self, email: Email) -> bool:
        return email.sender == 'hello@tech.rocks' and EMAIL_SUBJECT_RE.fullmatch(email.subject) is not None

    def extract_articles(self, email: Email) -> List[Article]:
        safelist = Safelist.basic().with_attributes('span', 'style').with_attributes('a', 'href', 'style')
        tree = DomTree.from_html(clean_html(email.html, safelist))

        footer = tree.select_first(lambda n: tree.is_element(n) and FOOTER_TEXT in tree.own_text(n))
        # Section headers are styled spans, the section starts on their paragraph
        sections = extract_sections(
            tree,
            'p:has(span[style])',
            filter=lambda n: any(
                self._is_section_header(tree.attr(span, 'style')) for span in tree.select('span[style]', n)
            ),
            stop_node=footer,
        )

        articles = []
        for section in sections:
            articles.extend(process(tree, section, self._parse_section))
        return articles

    @staticmethod
    def _is_section_header(style: str) -> bool:
        background = HtmlColor.extract_background_from_style(style)
        return background is not None and background.matches(SECTION_BACKGROUND)

    @staticmethod
    def _parse_section(doc: DomTree) -> List[Article]:
        articles = []
        for link_node in doc.select('a[href]'):
            title = doc.text_content(link_node)
            # Gray links are footers and social links, not articles
            if not title or has_grayscale_color(doc.attr(link_node, 'style')):
                continue
            link = to_url_or_none(doc.attr(link_node, 'href'))
            if link is None:
                continue
            articles.append(Article(title=title, link=link, description=''))
        return articles

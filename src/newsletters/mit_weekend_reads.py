"""MIT Technology Review - Weekend Reads."""

from typing import List

from domain.models import Article, Email, Newsletter
from newsletters.base import SingleFeedHandler
from services.dom import DomTree
from services.html import Safelist, clean_html, to_url_or_none

NEWSLETTER = Newsletter(
    code='mit/weekend_reads',
    name='MIT - Weekend Reads',
    website_url='https://forms.technologyreview.com/newsletters/tech-weekend-reads/',
    notes='Most articles are behind a paywall',
)


class MITWeekendReadsNewsletterHandler(SingleFeedHandler):

    @property
    def newsletter(self) -> Newsletter:
        return NEWSLETTER

    def can_handle(self, email: Email) -> bool:
        return 'promotions@technologyreview.com' in email.sender

    def extract_articles(self, email: Email) -> List[Article]:
        safelist = Safelist.basic().with_attributes('h2', 'class')
        tree = DomTree.from_html(clean_html(email.html, safelist))

        articles = []
        for heading in tree.select('h2.article-title'):
            link_node = tree.select_first('a[href]', heading)
            link = to_url_or_none(tree.attr(link_node, 'href')) if link_node is not None else None
            if link is None:
                continue

            # Articles can have no description
            description = ''
            for sibling in tree.next_element_siblings(heading):
                paragraph = sibling if tree.tag(sibling) == 'p' else tree.select_first('p', sibling)
                if paragraph is not None:
                    description = tree.own_text(paragraph)
                    break

            articles.append(Article(title=tree.text_content(heading), link=link, description=description))
        return articles

"""
Newsletter handler contract.

A handler recognizes the emails of one newsletter source and extracts its
articles. Extraction is a pure function of the email: no network call, no
shared state, same output for the same email.

Two shapes exist:
- SingleFeedHandler: one newsletter, one list of articles
- MultipleFeedsHandler: several newsletters (e.g. articles and libraries
  feeds of the same email)

Both build publications through build_publications(), so callers never need
to know which shape they hold.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from domain.models import Article, Email, Newsletter, Publication

logger = logging.getLogger(__name__)


class NewsletterHandler(ABC):
    """Base class of every newsletter handler."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    @abstractmethod
    def newsletters(self) -> Sequence[Newsletter]:
        """Newsletters (feeds) this handler produces publications for."""

    @abstractmethod
    def can_handle(self, email: Email) -> bool:
        """Pure predicate used to select the handler of an email."""

    @abstractmethod
    def build_publications(self, email: Email) -> List[Publication]:
        """
        Extract the email's articles and wrap them into publications.

        Returns:
            One publication per feed, titled after the email subject and dated
            with the email date. Publications may be empty at this stage.

        Raises:
            NewsletterParsingException: If the email does not follow the
                newsletter's template
        """

    def __repr__(self) -> str:
        return f"{self.name}({', '.join(n.code for n in self.newsletters)})"


class SingleFeedHandler(NewsletterHandler):
    """Handler of a newsletter publishing a single feed."""

    @property
    @abstractmethod
    def newsletter(self) -> Newsletter:
        pass

    @property
    def newsletters(self) -> Sequence[Newsletter]:
        return (self.newsletter,)

    @abstractmethod
    def extract_articles(self, email: Email) -> List[Article]:
        pass

    def build_publications(self, email: Email) -> List[Publication]:
        articles = self.extract_articles(email)
        logger.debug(f"{self.name} extracted {len(articles)} article(s) from \"{email.subject}\"")
        return [
            Publication(
                title=email.subject,
                date=email.date,
                newsletter=self.newsletter,
                articles=articles,
            )
        ]


class MultipleFeedsHandler(NewsletterHandler):
    """Handler of a newsletter whose emails feed several newsletters."""

    @abstractmethod
    def extract_articles(self, email: Email) -> Dict[Newsletter, List[Article]]:
        pass

    def build_publications(self, email: Email) -> List[Publication]:
        articles_by_newsletter = self.extract_articles(email)
        publications = []
        for newsletter, articles in articles_by_newsletter.items():
            logger.debug(
                f"{self.name} extracted {len(articles)} article(s) for {newsletter.code} "
                f"from \"{email.subject}\""
            )
            publications.append(
                Publication(
                    title=email.subject,
                    date=email.date,
                    newsletter=newsletter,
                    articles=articles,
                )
            )
        return publications

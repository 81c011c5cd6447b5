"""
Persistence of extracted publications.

Publications without articles are never persisted. S3PublicationSink writes
one JSON document per publication under a key derived from the newsletter,
the date and the title, so saving the same publication twice overwrites it.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from botocore.exceptions import ClientError

from domain.exceptions import TransportError
from domain.models import Publication
from services import s3

logger = logging.getLogger(__name__)


def publication_to_dict(publication: Publication) -> Dict:
    """Serialize a publication to a JSON-compatible dict."""
    newsletter = publication.newsletter
    return {
        'title': publication.title,
        'date': publication.date.isoformat(),
        'newsletter': {
            'code': newsletter.code,
            'name': newsletter.name,
            'websiteUrl': newsletter.website_url,
            'notes': newsletter.notes,
            'feedTitle': newsletter.title,
        },
        'articles': [
            {
                'title': article.title,
                'link': article.link,
                'description': article.description,
            }
            for article in publication.articles
        ],
    }


def publication_key(publication: Publication, prefix: str = '') -> str:
    """
    Deterministic storage key of a publication.

    Example:
        >>> publication_key(publication, 'publications/')
        'publications/kotlin_weekly/2024-03-10/<first 16 hex digits of sha256(title)>.json'
    """
    title_hash = hashlib.sha256(publication.title.encode('utf-8')).hexdigest()[:16]
    return f"{prefix}{publication.newsletter.code}/{publication.date.isoformat()}/{title_hash}.json"


class PublicationSink(ABC):
    """Destination of extracted publications."""

    def save_publications(self, publications: Sequence[Publication]) -> List[Publication]:
        """
        Persist the non-empty publications.

        Returns:
            The publications that were persisted

        Raises:
            TransportError: If the store cannot be written
        """
        to_save = [p for p in publications if p.has_articles]
        skipped = len(publications) - len(to_save)
        if skipped:
            logger.info(f"Ignoring {skipped} publication(s) without articles")
        if to_save:
            self._save(to_save)
        return to_save

    @abstractmethod
    def _save(self, publications: List[Publication]) -> None:
        pass


class S3PublicationSink(PublicationSink):

    def __init__(self, bucket: str, prefix: str = ''):
        self.bucket = bucket
        self.prefix = prefix

    def _save(self, publications: List[Publication]) -> None:
        for publication in publications:
            key = publication_key(publication, self.prefix)
            try:
                s3.upload_json(self.bucket, key, publication_to_dict(publication))
            except ClientError as e:
                raise TransportError(f"Cannot save publication \"{publication.title}\" to {key}: {e}") from e
        logger.info(f"Saved {len(publications)} publication(s) to s3://{self.bucket}/{self.prefix}")


class InMemoryPublicationSink(PublicationSink):
    """Keeps publications in a list (local runs and tests)."""

    def __init__(self):
        self.publications: List[Publication] = []

    def _save(self, publications: List[Publication]) -> None:
        self.publications.extend(publications)
        logger.info(f"Stored {len(publications)} publication(s) in memory")

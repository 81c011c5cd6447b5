"""
Mailbox access for the ingestion pipeline.

An EmailSource fetches the unread messages of some folders and acknowledges
them once processed (mark as read, then optionally move to a "processed"
folder). Connections are scoped to a single operation: every call opens what
it needs and releases it before returning.

Implementations:
- ImapEmailSource: IMAP server (imaplib, UID commands)
- S3EmailSource: raw .eml objects delivered to S3 by SES
- LocalFileEmailSource: directory of .eml files, for local runs
"""

import imaplib
import logging
import posixpath
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from email.message import Message
from pathlib import Path
from typing import Iterator, List, Sequence, Set

from botocore.exceptions import ClientError

from domain.exceptions import TransportError
from domain.models import MessageId
from services import s3
from services.email import parse_raw_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawMessage:
    """A fetched message: its parsed MIME tree and its mailbox handle."""
    message_id: MessageId
    message: Message


class EmailSource(ABC):
    """Mailbox the pipeline reads newsletters from."""

    @abstractmethod
    def fetch_unread(self, folders: Sequence[str]) -> List[RawMessage]:
        """
        Fetch every unread message of the given folders.

        Raises:
            TransportError: If the mailbox cannot be read
        """

    @abstractmethod
    def mark_as_read(self, message_id: MessageId) -> None:
        """
        Raises:
            TransportError: If the mailbox cannot be updated
        """

    @abstractmethod
    def move_to_processed(self, message_id: MessageId) -> None:
        """
        Raises:
            TransportError: If the mailbox cannot be updated
        """


# ============================================================================
# IMAP
# ============================================================================

def quote_folder(name: str) -> str:
    """Quote a mailbox name for IMAP commands."""
    return '"' + name.replace('\\', '\\\\').replace('"', '\\"') + '"'


class ImapEmailSource(EmailSource):
    """
    IMAP mailbox.

    Messages are addressed by UID, which stays valid across expunges.
    Fetching uses BODY.PEEK so it never sets the \\Seen flag itself.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = 993,
        processed_folder: str = 'Processed',
        use_ssl: bool = True,
        timeout: float = 30,
    ):
        self.host = host
        self.user = user
        self.password = password
        self.port = port
        self.processed_folder = processed_folder
        self.use_ssl = use_ssl
        self.timeout = timeout

    @contextmanager
    def _folder(self, folder: str, readonly: bool = False) -> Iterator[imaplib.IMAP4]:
        """Open a connection with folder selected, and close it on exit."""
        try:
            if self.use_ssl:
                connection = imaplib.IMAP4_SSL(self.host, self.port, timeout=self.timeout)
            else:
                connection = imaplib.IMAP4(self.host, self.port, timeout=self.timeout)
        except (imaplib.IMAP4.error, OSError) as e:
            logger.error(f"Cannot connect to IMAP server {self.host}:{self.port}: {e}")
            raise TransportError(f"Cannot connect to IMAP server {self.host}:{self.port}: {e}") from e

        try:
            connection.login(self.user, self.password)
            status, data = connection.select(quote_folder(folder), readonly=readonly)
            _check(status, data, f"select folder {folder}")
            yield connection
        except (imaplib.IMAP4.error, OSError) as e:
            logger.error(f"IMAP operation failed on folder {folder}: {e}")
            raise TransportError(f"IMAP operation failed on folder {folder}: {e}") from e
        finally:
            try:
                if connection.state == 'SELECTED':
                    connection.close()
                connection.logout()
            except (imaplib.IMAP4.error, OSError) as e:
                logger.warning(f"Failed to close IMAP connection cleanly: {e}")

    def fetch_unread(self, folders: Sequence[str]) -> List[RawMessage]:
        messages = []
        for folder in folders:
            with self._folder(folder, readonly=True) as connection:
                status, data = connection.uid('SEARCH', None, 'UNSEEN')
                _check(status, data, f"search unread messages in {folder}")
                uids = data[0].split() if data and data[0] else []
                logger.info(f"Found {len(uids)} unread message(s) in {folder}")

                for uid in uids:
                    status, data = connection.uid('FETCH', uid, '(BODY.PEEK[])')
                    _check(status, data, f"fetch message {uid!r} in {folder}")
                    raw_email = next((part[1] for part in data if isinstance(part, tuple)), None)
                    if raw_email is None:
                        logger.warning(f"Message {uid!r} in {folder} has no body, skipping")
                        continue
                    messages.append(
                        RawMessage(
                            message_id=MessageId(folder=folder, uid=uid.decode()),
                            message=parse_raw_email(raw_email),
                        )
                    )
        return messages

    def mark_as_read(self, message_id: MessageId) -> None:
        with self._folder(message_id.folder) as connection:
            status, data = connection.uid('STORE', message_id.uid, '+FLAGS', '(\\Seen)')
            _check(status, data, f"mark {message_id} as read")
        logger.debug(f"Marked {message_id} as read")

    def move_to_processed(self, message_id: MessageId) -> None:
        target = quote_folder(self.processed_folder)
        with self._folder(message_id.folder) as connection:
            # NO when the folder already exists
            status, _ = connection.create(target)
            if status == 'OK':
                logger.info(f"Created IMAP folder {self.processed_folder}")

            status, data = connection.uid('COPY', message_id.uid, target)
            _check(status, data, f"copy {message_id} to {self.processed_folder}")
            status, data = connection.uid('STORE', message_id.uid, '+FLAGS', '(\\Deleted)')
            _check(status, data, f"delete {message_id}")
            connection.expunge()
        logger.info(f"Moved {message_id} to {self.processed_folder}")


def _check(status: str, data, operation: str) -> None:
    if status != 'OK':
        raise TransportError(f"IMAP server refused to {operation}: {status} {data!r}")


# ============================================================================
# S3
# ============================================================================

READ_TAG = 'n2rss-read'


class S3EmailSource(EmailSource):
    """
    Raw emails stored in S3 (SES receipt rule "S3 action").

    A folder is a key prefix under root_prefix. A message is "read" once it
    carries the object tag n2rss-read=true.

    Every listed key costs one tagging request per fetch, so read messages
    should be moved out of the folder (the default for this source).
    """

    def __init__(self, bucket: str, root_prefix: str = '', processed_folder: str = 'Processed'):
        self.bucket = bucket
        self.root_prefix = root_prefix
        self.processed_folder = processed_folder

    def folder_prefix(self, folder: str) -> str:
        return f"{self.root_prefix}{folder.strip('/')}/"

    def fetch_unread(self, folders: Sequence[str]) -> List[RawMessage]:
        messages = []
        try:
            for folder in folders:
                prefix = self.folder_prefix(folder)
                keys = s3.list_email_keys(self.bucket, prefix)
                unread = [k for k in keys if s3.get_object_tags(self.bucket, k).get(READ_TAG) != 'true']
                logger.info(f"Found {len(unread)} unread message(s) in s3://{self.bucket}/{prefix}")

                for key in unread:
                    messages.append(
                        RawMessage(
                            message_id=MessageId(folder=folder, uid=key),
                            message=parse_raw_email(s3.fetch_email_from_s3(self.bucket, key)),
                        )
                    )
        except (ClientError, ValueError) as e:
            raise TransportError(f"Cannot read emails from s3://{self.bucket}: {e}") from e
        return messages

    def mark_as_read(self, message_id: MessageId) -> None:
        try:
            s3.tag_object(self.bucket, message_id.uid, {READ_TAG: 'true'})
        except ClientError as e:
            raise TransportError(f"Cannot mark {message_id} as read: {e}") from e

    def move_to_processed(self, message_id: MessageId) -> None:
        destination = self.folder_prefix(self.processed_folder) + posixpath.basename(message_id.uid)
        try:
            s3.move_object(self.bucket, message_id.uid, destination)
        except ClientError as e:
            raise TransportError(f"Cannot move {message_id} to {destination}: {e}") from e


# ============================================================================
# Local files
# ============================================================================

class LocalFileEmailSource(EmailSource):
    """
    Directory of .eml files, walked recursively.

    Folder names are ignored: the whole directory is one mailbox. Read state
    is kept in memory, so every file is unread again after a restart.
    Processed files are moved to a sub-directory, which is not walked.
    """

    def __init__(self, directory: str, processed_folder: str = 'Processed'):
        self.directory = Path(directory)
        self.processed_directory = self.directory / processed_folder
        self._read: Set[str] = set()

    def fetch_unread(self, folders: Sequence[str]) -> List[RawMessage]:
        if not self.directory.is_dir():
            raise TransportError(f"{self.directory} does not exist")

        messages = []
        for path in sorted(self.directory.rglob('*.eml')):
            if self.processed_directory in path.parents or str(path) in self._read:
                continue
            try:
                raw_email = path.read_bytes()
            except OSError as e:
                raise TransportError(f"Cannot read {path}: {e}") from e
            messages.append(
                RawMessage(
                    message_id=MessageId(folder=str(self.directory), uid=str(path)),
                    message=parse_raw_email(raw_email),
                )
            )
        logger.info(f"Found {len(messages)} unread message(s) in {self.directory}")
        return messages

    def mark_as_read(self, message_id: MessageId) -> None:
        self._read.add(message_id.uid)

    def move_to_processed(self, message_id: MessageId) -> None:
        source = Path(message_id.uid)
        try:
            self.processed_directory.mkdir(parents=True, exist_ok=True)
            source.replace(self.processed_directory / source.name)
        except OSError as e:
            raise TransportError(f"Cannot move {source} to {self.processed_directory}: {e}") from e
        self._read.discard(message_id.uid)

"""
Entry points of the newsletter ingestion service.

- lambda_handler: AWS Lambda handler, triggered by a schedule (EventBridge).
  Runs one ingestion tick per invocation.
- main: long-running process checking emails every CHECK_INTERVAL_SECONDS.

Thin wiring layer: configuration comes from environment variables, the work
is delegated to IngestionOrchestrator.
"""

import logging
import os
from typing import Any, Dict, Optional

from domain.email_processor import EmailProcessor
from domain.orchestrator import IngestionOrchestrator
from newsletters import build_handlers
from services.mailbox import EmailSource, ImapEmailSource, LocalFileEmailSource, S3EmailSource
from services.monitoring import LoggingMonitoringService
from services.publications import InMemoryPublicationSink, PublicationSink, S3PublicationSink
from services.scheduler import Scheduler


def _env_bool(name: str, default: Optional[bool]) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name: str, default: str = '') -> list:
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


# Environment variables
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'dev')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

EMAIL_SOURCE = os.environ.get('EMAIL_SOURCE', 'imap').lower()
EMAIL_FOLDERS = _env_list('EMAIL_FOLDERS', 'INBOX')
PROCESSED_FOLDER = os.environ.get('PROCESSED_FOLDER', 'Processed')
# Unset: move for the s3 source, leave in place otherwise
MOVE_AFTER_PROCESSING = _env_bool('MOVE_AFTER_PROCESSING', None)

IMAP_HOST = os.environ.get('IMAP_HOST')
IMAP_PORT = int(os.environ.get('IMAP_PORT', '993'))
IMAP_USER = os.environ.get('IMAP_USER')
IMAP_PASSWORD = os.environ.get('IMAP_PASSWORD')

EMAILS_S3_BUCKET = os.environ.get('EMAILS_S3_BUCKET')
EMAILS_S3_PREFIX = os.environ.get('EMAILS_S3_PREFIX', '')
LOCAL_EMAIL_DIR = os.environ.get('LOCAL_EMAIL_DIR', 'emails')

PUBLICATIONS_S3_BUCKET = os.environ.get('PUBLICATIONS_S3_BUCKET')
PUBLICATIONS_S3_PREFIX = os.environ.get('PUBLICATIONS_S3_PREFIX', 'publications/')

DISABLED_NEWSLETTERS = _env_list('DISABLED_NEWSLETTERS')
CHECK_INTERVAL_SECONDS = float(os.environ.get('CHECK_INTERVAL_SECONDS', '600'))
CHECK_ON_START = _env_bool('CHECK_ON_START', True)

# Configure logging
logger = logging.getLogger()
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

# Add console handler for local runs (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Built on first use, then reused across invocations
_orchestrator: Optional[IngestionOrchestrator] = None


def build_email_source() -> EmailSource:
    """
    Build the email source selected by EMAIL_SOURCE.

    Raises:
        ValueError: If the source is unknown or its configuration is incomplete
    """
    if EMAIL_SOURCE == 'imap':
        if not IMAP_HOST or not IMAP_USER or IMAP_PASSWORD is None:
            raise ValueError("IMAP_HOST, IMAP_USER and IMAP_PASSWORD must be set for the imap email source")
        return ImapEmailSource(
            host=IMAP_HOST,
            user=IMAP_USER,
            password=IMAP_PASSWORD,
            port=IMAP_PORT,
            processed_folder=PROCESSED_FOLDER,
        )
    if EMAIL_SOURCE == 's3':
        if not EMAILS_S3_BUCKET:
            raise ValueError("EMAILS_S3_BUCKET must be set for the s3 email source")
        return S3EmailSource(
            bucket=EMAILS_S3_BUCKET,
            root_prefix=EMAILS_S3_PREFIX,
            processed_folder=PROCESSED_FOLDER,
        )
    if EMAIL_SOURCE == 'local':
        return LocalFileEmailSource(directory=LOCAL_EMAIL_DIR, processed_folder=PROCESSED_FOLDER)
    raise ValueError(f"Unknown EMAIL_SOURCE: {EMAIL_SOURCE!r} (expected imap, s3 or local)")


def should_move_after_processing() -> bool:
    """Whether handled emails leave their folder after being marked as read."""
    if MOVE_AFTER_PROCESSING is None:
        return EMAIL_SOURCE == 's3'
    return MOVE_AFTER_PROCESSING


def build_publication_sink() -> PublicationSink:
    if PUBLICATIONS_S3_BUCKET:
        return S3PublicationSink(bucket=PUBLICATIONS_S3_BUCKET, prefix=PUBLICATIONS_S3_PREFIX)
    logger.warning("PUBLICATIONS_S3_BUCKET not set, publications are kept in memory only")
    return InMemoryPublicationSink()


def build_orchestrator() -> IngestionOrchestrator:
    """Wire the pipeline from the environment configuration."""
    email_source = build_email_source()
    monitoring = LoggingMonitoringService()
    move_after_processing = should_move_after_processing()
    processor = EmailProcessor(
        handlers=build_handlers(DISABLED_NEWSLETTERS),
        email_source=email_source,
        publication_sink=build_publication_sink(),
        monitoring=monitoring,
        move_after_processing=move_after_processing,
    )
    logger.info(
        f"Ingestion configured: environment={ENVIRONMENT}, source={EMAIL_SOURCE}, "
        f"folders={EMAIL_FOLDERS}, move_after_processing={move_after_processing}"
    )
    return IngestionOrchestrator(
        email_source=email_source,
        processor=processor,
        monitoring=monitoring,
        folders=EMAIL_FOLDERS,
    )


def get_orchestrator() -> IngestionOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Run one ingestion tick.

    Args:
        event: Lambda event (scheduled event, content ignored)
        context: Lambda context

    Returns:
        Dict summary of the tick (see BatchReport.to_dict)
    """
    logger.info("=" * 70)
    logger.info("Newsletter Ingestion - Started")
    logger.info("=" * 70)

    report = get_orchestrator().run_tick()
    return report.to_dict()


def main() -> None:
    """Check emails periodically until interrupted."""
    scheduler = Scheduler(
        task=get_orchestrator().run_tick,
        interval_seconds=CHECK_INTERVAL_SECONDS,
        run_on_start=CHECK_ON_START,
    )
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping")
        scheduler.stop()


if __name__ == '__main__':
    main()

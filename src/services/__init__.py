"""
Service modules of the ingestion pipeline.

This package contains the technical building blocks: MIME parsing, the
document model and its sectioning, HTML helpers, mailbox access, S3 access,
publication storage, monitoring and scheduling.
"""

__all__ = ['dom', 'email', 'html', 'mailbox', 'monitoring', 'publications', 's3', 'scheduler', 'sections']

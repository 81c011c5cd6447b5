"""
Domain layer for newsletter ingestion.

This layer contains:
- Data models (emails, newsletters, publications)
- Exceptions of the ingestion pipeline
- Business logic (per-email processing, batch orchestration)
- Result types (explicit success/failure handling)
"""

"""Shared table metadata and column helpers."""

from datetime import UTC, datetime

from sqlalchemy import MetaData

# Metadata for all tables
metadata = MetaData()


def utcnow() -> datetime:
    """Timezone-aware current time used for audit column defaults."""
    return datetime.now(UTC)

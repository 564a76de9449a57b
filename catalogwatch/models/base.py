"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- ShopScopedMixin: shop_id for per-shop isolation
- generate_uuid: UUID generation for primary keys
- UTCDateTime: Timezone-aware datetime that round-trips as UTC on every backend
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, ForeignKey, func, TypeDecorator
from sqlalchemy.orm import declared_attr

from catalogwatch.db_base import Base


class UTCDateTime(TypeDecorator):
    """
    Platform-independent timezone-aware datetime.

    SQLite drops tzinfo on storage, PostgreSQL keeps it. Values are normalized
    to UTC on the way in and always come back as aware UTC datetimes, so
    comparisons against datetime.now(timezone.utc) never mix naive and aware.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        comment="Timestamp when record was last updated"
    )


class ShopScopedMixin:
    """
    Mixin that adds shop_id column for per-shop isolation.

    Every compliance record belongs to exactly one installed shop and is
    removed with it.
    """

    @declared_attr
    def shop_id(cls):
        return Column(
            String(36),
            ForeignKey("shops.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
            comment="Owning shop (shops.id)"
        )


__all__ = [
    "Base",
    "UTCDateTime",
    "TimestampMixin",
    "ShopScopedMixin",
    "generate_uuid",
    "utcnow",
]

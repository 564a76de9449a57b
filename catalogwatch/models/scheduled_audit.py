"""
ScheduledAudit model: one recurring compliance audit schedule per shop.

Lifecycle:
    disabled -> enabled (pending) -> running -> success | failed -> pending

next_run_at is recomputed from frequency after every successful run and on
every settings change while enabled. Disabling clears it. A failed run leaves
next_run_at untouched so the schedule stays due and is retried.
"""

from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Boolean, Enum as SAEnum, ForeignKey, Index
)
from sqlalchemy.orm import relationship

from catalogwatch.models.base import Base, TimestampMixin, UTCDateTime, generate_uuid


class AuditFrequency(str, Enum):
    """Schedule frequencies."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RunStatus(str, Enum):
    """Outcome of the last scheduled run."""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class ScheduledAudit(Base, TimestampMixin):
    """Recurring audit settings and last-run bookkeeping for a shop."""

    __tablename__ = "scheduled_audits"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    shop_id = Column(
        String(36),
        ForeignKey("shops.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
        comment="One schedule per shop"
    )

    # Schedule
    frequency = Column(
        SAEnum("daily", "weekly", "monthly", name="audit_frequency"),
        nullable=False,
        default=AuditFrequency.WEEKLY.value,
        server_default=AuditFrequency.WEEKLY.value,
    )
    hour = Column(Integer, nullable=False, default=3, server_default="3")
    day_of_week = Column(Integer, nullable=True, comment="0=Monday .. 6=Sunday")
    day_of_month = Column(Integer, nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC", server_default="UTC")
    is_enabled = Column(Boolean, nullable=False, default=True, server_default="1")

    # Notification preferences
    email_on_drift = Column(Boolean, nullable=False, default=True, server_default="1")
    email_only_if_issues = Column(Boolean, nullable=False, default=True, server_default="1")
    notification_email = Column(String(255), nullable=True)

    # Last run
    last_run_at = Column(UTCDateTime, nullable=True)
    last_run_status = Column(
        SAEnum("success", "failed", "partial", name="audit_run_status"),
        nullable=True,
    )
    last_run_product_count = Column(Integer, nullable=True)
    last_run_drift_count = Column(Integer, nullable=True)
    next_run_at = Column(UTCDateTime, nullable=True)

    shop = relationship("Shop", back_populates="scheduled_audit")

    __table_args__ = (
        Index("ix_scheduled_audits_due", "is_enabled", "next_run_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduledAudit(id={self.id}, shop_id={self.shop_id}, "
            f"frequency={self.frequency}, next_run_at={self.next_run_at})>"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "frequency": self.frequency,
            "hour": self.hour,
            "day_of_week": self.day_of_week,
            "day_of_month": self.day_of_month,
            "timezone": self.timezone,
            "is_enabled": self.is_enabled,
            "email_on_drift": self.email_on_drift,
            "email_only_if_issues": self.email_only_if_issues,
            "notification_email": self.notification_email,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_product_count": self.last_run_product_count,
            "last_run_drift_count": self.last_run_drift_count,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
        }

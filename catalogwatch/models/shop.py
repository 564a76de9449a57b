"""
Shop model: installed store identity plus its billing and usage state.

CRITICAL DESIGN DECISIONS:
- shop_domain is the canonical Shopify identifier (mystore.myshopify.com)
- Billing state lives on the shop row (one subscription per store)
- ai_credits_used / audits_this_month are mutated ONLY through atomic
  conditional UPDATEs in BillingGate, never read-modify-write
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Boolean, Enum as SAEnum,
    CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from catalogwatch.models.base import Base, TimestampMixin, UTCDateTime, generate_uuid


class PlanType(str, Enum):
    """Billing plan tiers."""
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    """Shopify AppSubscription status values (lower-cased)."""
    ACTIVE = "active"
    PENDING = "pending"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FROZEN = "frozen"


class Shop(Base, TimestampMixin):
    """
    An installed Shopify store.

    Carries the shop-level billing state used by the billing gate:
    plan, trial window, dev-store flag and the two monthly usage ledgers.
    """

    __tablename__ = "shops"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )

    shop_domain = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Shopify store domain (mystore.myshopify.com)"
    )

    # Billing
    plan = Column(
        SAEnum("free", "starter", "pro", name="shop_plan"),
        nullable=False,
        default=PlanType.FREE.value,
        server_default=PlanType.FREE.value,
        comment="Persisted plan; authoritative unless overridden"
    )
    subscription_id = Column(
        String(100),
        nullable=True,
        comment="Shopify AppSubscription GID"
    )
    subscription_status = Column(
        SAEnum(
            "active", "pending", "cancelled", "expired", "frozen",
            name="shop_subscription_status"
        ),
        nullable=True,
    )
    trial_ends_at = Column(UTCDateTime, nullable=True)
    current_period_end = Column(UTCDateTime, nullable=True)
    is_dev_store = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="0",
        comment="Partner development store: billing bypassed"
    )

    # AI credit ledger
    ai_credits_used = Column(Integer, nullable=False, default=0, server_default="0")
    ai_credits_reset_at = Column(
        UTCDateTime,
        nullable=True,
        comment="First day of next month when ai_credits_used resets"
    )

    # Audit ledger (free tier)
    audits_this_month = Column(Integer, nullable=False, default=0, server_default="0")
    audits_reset_at = Column(UTCDateTime, nullable=True)

    # Relationships
    catalog_rules = relationship(
        "CatalogRule",
        back_populates="shop",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    scheduled_audit = relationship(
        "ScheduledAudit",
        back_populates="shop",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("ai_credits_used >= 0", name="ck_shops_ai_credits_non_negative"),
        CheckConstraint("audits_this_month >= 0", name="ck_shops_audits_non_negative"),
        Index("ix_shops_plan", "plan"),
    )

    def __repr__(self) -> str:
        return f"<Shop(id={self.id}, shop_domain={self.shop_domain}, plan={self.plan})>"

    def is_in_trial(self, now: datetime) -> bool:
        """Check if the shop is inside its trial window at `now`."""
        if not self.trial_ends_at:
            return False
        return now < self.trial_ends_at

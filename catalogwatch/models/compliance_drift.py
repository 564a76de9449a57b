"""
ComplianceDrift model: detected regressions in a product's catalog quality.

Drift records are append-only. Only the resolution fields (is_resolved,
resolved_at, resolved_by) may change after insert; a changed underlying
problem produces a new record.
"""

from enum import Enum

from sqlalchemy import (
    Column, String, Boolean, JSON, Enum as SAEnum, ForeignKey, Index
)

from catalogwatch.models.base import Base, ShopScopedMixin, UTCDateTime, generate_uuid, utcnow


class DriftKind(str, Enum):
    """Kinds of drift the detector emits."""
    SEO_TITLE_REMOVED = "seo_title_removed"
    SEO_TITLE_TOO_LONG = "seo_title_too_long"
    SEO_TITLE_TOO_SHORT = "seo_title_too_short"
    DESCRIPTION_REMOVED = "description_removed"
    DESCRIPTION_SHORTENED = "description_shortened"
    IMAGES_REMOVED = "images_removed"
    IMAGES_LOW_COUNT = "images_low_count"
    ALT_TEXT_MISSING = "alt_text_missing"
    TAGS_REMOVED = "tags_removed"
    COLLECTION_REMOVED = "collection_removed"
    CUSTOM_RULE_VIOLATED = "custom_rule_violated"


class ResolvedBy(str, Enum):
    """Who closed a drift."""
    USER = "user"
    AUTO = "auto"
    IGNORED = "ignored"


class ComplianceDrift(Base, ShopScopedMixin):
    """
    A single detected drift event.

    NOTE: Does not include TimestampMixin; records are never updated except
    for resolution, which has its own timestamp.
    """

    __tablename__ = "compliance_drifts"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    product_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Shopify product GID"
    )
    product_title = Column(String(512), nullable=False)

    drift_kind = Column(String(50), nullable=False)
    severity = Column(
        SAEnum("low", "medium", "high", name="drift_severity"),
        nullable=False,
        default="medium",
    )

    previous_value = Column(JSON, nullable=True, comment="Snapshot fragment before the change")
    current_value = Column(JSON, nullable=True, comment="Snapshot fragment after the change")

    source_rule_id = Column(
        String(36),
        ForeignKey("catalog_rules.id", ondelete="SET NULL"),
        nullable=True,
        comment="Set only for custom_rule_violated drifts"
    )

    # Resolution
    is_resolved = Column(Boolean, nullable=False, default=False, server_default="0")
    resolved_at = Column(UTCDateTime, nullable=True)
    resolved_by = Column(
        SAEnum("user", "auto", "ignored", name="drift_resolved_by"),
        nullable=True,
    )

    detected_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_compliance_drifts_shop_unresolved", "shop_id", "is_resolved"),
        Index("ix_compliance_drifts_shop_product", "shop_id", "product_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ComplianceDrift(id={self.id}, product_id={self.product_id}, "
            f"kind={self.drift_kind}, resolved={self.is_resolved})>"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "product_title": self.product_title,
            "drift_kind": self.drift_kind,
            "severity": self.severity,
            "previous_value": self.previous_value,
            "current_value": self.current_value,
            "source_rule_id": self.source_rule_id,
            "is_resolved": self.is_resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "detected_at": self.detected_at.isoformat() if self.detected_at else None,
        }

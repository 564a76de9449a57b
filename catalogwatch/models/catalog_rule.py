"""
CatalogRule model: merchant-defined catalog standards.

A rule is a rule kind from the rule catalog plus a kind-specific
configuration, a severity and an enabled flag. Configuration is validated
against the catalog schema before it is stored (see CatalogRulesService).
"""

from enum import Enum

from sqlalchemy import (
    Column, String, Text, Boolean, JSON, Enum as SAEnum, Index
)
from sqlalchemy.orm import relationship

from catalogwatch.models.base import Base, TimestampMixin, ShopScopedMixin, generate_uuid


class Severity(str, Enum):
    """Severity shared by rules and drift records."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CatalogRule(Base, TimestampMixin, ShopScopedMixin):
    """Per-shop custom catalog rule."""

    __tablename__ = "catalog_rules"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    rule_kind = Column(
        String(50),
        nullable=False,
        comment="RuleKind value from the rule catalog"
    )
    configuration = Column(
        JSON,
        nullable=False,
        default=dict,
        comment="Kind-specific configuration, normalized with catalog defaults"
    )
    severity = Column(
        SAEnum("low", "medium", "high", name="rule_severity"),
        nullable=False,
        default=Severity.MEDIUM.value,
        server_default=Severity.MEDIUM.value,
    )

    is_enabled = Column(Boolean, nullable=False, default=True, server_default="1")
    applies_to_all = Column(Boolean, nullable=False, default=True, server_default="1")
    product_filter = Column(
        JSON,
        nullable=True,
        comment="Optional product filter; stored for the UI, not evaluated"
    )

    shop = relationship("Shop", back_populates="catalog_rules")

    __table_args__ = (
        Index("ix_catalog_rules_shop_enabled", "shop_id", "is_enabled"),
    )

    def __repr__(self) -> str:
        return f"<CatalogRule(id={self.id}, kind={self.rule_kind}, enabled={self.is_enabled})>"

"""
ProductAudit model: latest checklist result per product.

Rows are written by the checklist/scoring engine (external to this package);
the compliance core only reads them for audited-product counts and reports.
"""

from sqlalchemy import Column, String, Integer, Enum as SAEnum, UniqueConstraint

from catalogwatch.models.base import Base, TimestampMixin, ShopScopedMixin, generate_uuid


class ProductAudit(Base, TimestampMixin, ShopScopedMixin):
    """Checklist score for one product."""

    __tablename__ = "product_audits"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    product_id = Column(String(255), nullable=False, comment="Shopify product GID")
    product_title = Column(String(512), nullable=False)
    status = Column(
        SAEnum("ready", "incomplete", name="product_audit_status"),
        nullable=False,
        default="incomplete",
    )
    score = Column(Integer, nullable=False, default=0, comment="Weighted score 0-100")
    passed_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    total_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("shop_id", "product_id", name="uq_product_audits_shop_product"),
    )

    def __repr__(self) -> str:
        return f"<ProductAudit(product_id={self.product_id}, score={self.score}, status={self.status})>"

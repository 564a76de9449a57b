"""
CatalogReport model: weekly/monthly catalog health report.
"""

from sqlalchemy import Column, String, Integer, Float, JSON, Enum as SAEnum, Index

from catalogwatch.models.base import Base, ShopScopedMixin, UTCDateTime, generate_uuid, utcnow


class CatalogReport(Base, ShopScopedMixin):
    """
    Snapshot of catalog health for a reporting period.

    Generated by CatalogReportService during scheduled audits.
    """

    __tablename__ = "catalog_reports"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    period_start = Column(UTCDateTime, nullable=False)
    period_end = Column(UTCDateTime, nullable=False)

    total_products = Column(Integer, nullable=False, default=0)
    ready_products = Column(Integer, nullable=False, default=0)
    incomplete_products = Column(Integer, nullable=False, default=0)
    average_score = Column(Float, nullable=False, default=0.0)
    previous_average_score = Column(Float, nullable=True)

    top_issues = Column(JSON, nullable=True)
    products_at_risk = Column(JSON, nullable=True)
    suggestions = Column(JSON, nullable=True)

    drifts_detected = Column(Integer, nullable=False, default=0)
    drifts_resolved = Column(Integer, nullable=False, default=0)
    drifts_unresolved = Column(Integer, nullable=False, default=0)

    status = Column(
        SAEnum("generating", "completed", "failed", name="catalog_report_status"),
        nullable=False,
        default="completed",
    )

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_catalog_reports_shop_period", "shop_id", "period_end"),
    )

    def __repr__(self) -> str:
        return f"<CatalogReport(id={self.id}, shop_id={self.shop_id}, period_end={self.period_end})>"

"""
Catalog health reports.

Default report generator for the audit scheduler. Computes readiness and
score metrics from stored product audits, drift counts for the period and
plain-language suggestions, then stores a CatalogReport.

Periods (UTC):
    weekly  [today - 7 days 00:00, today 23:59:59.999999]
    monthly [today - 1 month 00:00, today 23:59:59.999999]
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalogwatch.models.catalog_report import CatalogReport
from catalogwatch.models.compliance_drift import ComplianceDrift
from catalogwatch.models.product_audit import ProductAudit
from catalogwatch.models.shop import Shop

logger = logging.getLogger(__name__)

TOP_ISSUES_LIMIT = 5
PRODUCTS_AT_RISK_LIMIT = 5
REPORT_HISTORY_LIMIT = 12

# (upper bound exclusive, label) for incomplete products
SCORE_BANDS: Tuple[Tuple[int, str], ...] = (
    (25, "Critical (0-25%)"),
    (50, "Poor (25-50%)"),
    (75, "Fair (50-75%)"),
    (101, "Good (75-99%)"),
)


def report_period(now: datetime, period: str) -> Tuple[datetime, datetime]:
    """Start and end of the reporting window ending today."""
    now = now.astimezone(timezone.utc)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    end = day_start + timedelta(days=1) - timedelta(microseconds=1)
    if period == "monthly":
        start = day_start - relativedelta(months=1)
    else:
        start = day_start - timedelta(days=7)
    return start, end


def _score_band(score: int) -> str:
    for upper, label in SCORE_BANDS:
        if score < upper:
            return label
    return SCORE_BANDS[-1][1]


def build_suggestions(
    total_products: int,
    ready_products: int,
    average_score: float,
    previous_average_score: Optional[float],
    top_issues: List[Dict[str, Any]],
    drifts_unresolved: int,
) -> List[str]:
    suggestions = []

    readiness = (ready_products / total_products) * 100 if total_products else 0
    if readiness < 50:
        suggestions.append(
            f"Only {round(readiness)}% of products are launch-ready. "
            "Consider using bulk autofix to improve multiple products at once."
        )
    elif readiness < 80:
        focus = top_issues[0]["issue"] if top_issues else "lowest scoring"
        suggestions.append(
            f"{round(readiness)}% readiness is good, but there's room for improvement. "
            f"Focus on the {focus} products."
        )

    if previous_average_score is not None:
        diff = average_score - previous_average_score
        if diff < -5:
            suggestions.append(
                f"Average score dropped by {abs(round(diff))}% since last report. "
                "Review recent product changes to identify issues."
            )
        elif diff > 5:
            suggestions.append(f"Great progress! Average score improved by {round(diff)}% since last report.")

    if drifts_unresolved > 0:
        plural = "s" if drifts_unresolved != 1 else ""
        suggestions.append(
            f"You have {drifts_unresolved} unresolved compliance drift{plural}. "
            "Review and resolve them to maintain catalog health."
        )

    critical = next((i for i in top_issues if i["issue"].startswith("Critical")), None)
    if critical and critical["count"] > 0:
        plural = "s" if critical["count"] != 1 else ""
        suggestions.append(
            f"{critical['count']} product{plural} have critical issues (score below 25%). "
            "These should be prioritized."
        )

    if not suggestions:
        suggestions.append("Your catalog is in great shape! Keep monitoring for any changes.")
    return suggestions


class CatalogReportService:
    """
    Generates and reads catalog health reports.

    The build is synchronous database work, so generate_catalog_report runs
    it on the default executor. That keeps the event loop free and lets the
    scheduler's timeout fire while a build is still running.

    With a session_factory each build uses its own session and the returned
    report is detached. A build abandoned by a timeout then finishes on that
    session and never touches the caller's. Without one the build shares
    db_session.
    """

    def __init__(self, db_session: Session, session_factory: Optional[Callable[[], Session]] = None):
        self.db = db_session
        self.session_factory = session_factory

    def get_latest_report(self, shop_id: str) -> Optional[CatalogReport]:
        return _latest_report(self.db, shop_id)

    def get_report(self, shop_id: str, report_id: str) -> Optional[CatalogReport]:
        return (
            self.db.query(CatalogReport)
            .filter(CatalogReport.shop_id == shop_id, CatalogReport.id == report_id)
            .first()
        )

    def get_report_history(self, shop_id: str, limit: int = REPORT_HISTORY_LIMIT) -> List[CatalogReport]:
        """Most recent reports for a shop, newest first."""
        return (
            self.db.query(CatalogReport)
            .filter(CatalogReport.shop_id == shop_id)
            .order_by(CatalogReport.period_end.desc(), CatalogReport.created_at.desc())
            .limit(max(0, limit))
            .all()
        )

    async def generate_catalog_report(
        self,
        shop: Shop,
        period: str = "weekly",
        now: Optional[datetime] = None,
    ) -> CatalogReport:
        """Compute and store a report for `shop` covering `period`."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self.build_report, shop.id, period, now))

    def build_report(self, shop_id: str, period: str = "weekly", now: Optional[datetime] = None) -> CatalogReport:
        """Blocking report build. Runs on a worker thread when called through generate_catalog_report."""
        if self.session_factory is None:
            return _build_report(self.db, shop_id, period, now)

        session = self.session_factory()
        try:
            report = _build_report(session, shop_id, period, now)
            session.refresh(report)
            session.expunge(report)
            return report
        finally:
            session.close()


def _latest_report(db: Session, shop_id: str) -> Optional[CatalogReport]:
    return (
        db.query(CatalogReport)
        .filter(CatalogReport.shop_id == shop_id)
        .order_by(CatalogReport.period_end.desc(), CatalogReport.created_at.desc())
        .first()
    )


def _build_report(db: Session, shop_id: str, period: str, now: Optional[datetime]) -> CatalogReport:
    now = now or datetime.now(timezone.utc)
    period_start, period_end = report_period(now, period)

    audits = db.query(ProductAudit).filter(ProductAudit.shop_id == shop_id).all()
    total_products = len(audits)
    ready_products = sum(1 for a in audits if a.status == "ready")
    incomplete = [a for a in audits if a.status != "ready"]
    average_score = (
        sum(a.score for a in audits) / total_products if total_products else 0.0
    )

    previous = _latest_report(db, shop_id)
    previous_average_score = previous.average_score if previous else None

    band_counts: Dict[str, int] = {}
    for audit in incomplete:
        label = _score_band(audit.score)
        band_counts[label] = band_counts.get(label, 0) + 1
    top_issues = sorted(
        ({"issue": issue, "count": count} for issue, count in band_counts.items()),
        key=lambda item: -item["count"],
    )[:TOP_ISSUES_LIMIT]

    products_at_risk = [
        {
            "product_id": a.product_id,
            "title": a.product_title,
            "score": a.score,
            "issues": a.failed_count,
        }
        for a in sorted(incomplete, key=lambda a: a.score)[:PRODUCTS_AT_RISK_LIMIT]
    ]

    drifts = (
        db.query(ComplianceDrift.is_resolved)
        .filter(
            ComplianceDrift.shop_id == shop_id,
            ComplianceDrift.detected_at >= period_start,
            ComplianceDrift.detected_at <= period_end,
        )
        .all()
    )
    drifts_detected = len(drifts)
    drifts_resolved = sum(1 for row in drifts if row.is_resolved)
    drifts_unresolved = drifts_detected - drifts_resolved

    report = CatalogReport(
        shop_id=shop_id,
        period_start=period_start,
        period_end=period_end,
        total_products=total_products,
        ready_products=ready_products,
        incomplete_products=total_products - ready_products,
        average_score=average_score,
        previous_average_score=previous_average_score,
        top_issues=top_issues,
        products_at_risk=products_at_risk,
        suggestions=build_suggestions(
            total_products,
            ready_products,
            average_score,
            previous_average_score,
            top_issues,
            drifts_unresolved,
        ),
        drifts_detected=drifts_detected,
        drifts_resolved=drifts_resolved,
        drifts_unresolved=drifts_unresolved,
        status="completed",
        created_at=now,
    )

    try:
        db.add(report)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to store catalog report",
            extra={"shop_id": shop_id, "period": period, "error": str(e)},
        )
        raise

    logger.info(
        "Catalog report generated",
        extra={
            "shop_id": shop_id,
            "report_id": report.id,
            "period": period,
            "total_products": total_products,
            "drifts_detected": drifts_detected,
        },
    )
    return report

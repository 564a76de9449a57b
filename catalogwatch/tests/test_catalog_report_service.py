"""
Tests for catalog health report generation and history.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect
from sqlalchemy.orm import sessionmaker

from catalogwatch.models.catalog_report import CatalogReport
from catalogwatch.models.compliance_drift import ComplianceDrift
from catalogwatch.models.product_audit import ProductAudit
from catalogwatch.services.catalog_report_service import (
    CatalogReportService,
    build_suggestions,
    report_period,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def seeded_shop(db_session, pro_shop, now):
    audits = [
        ("p1", "ready", 95, 0),
        ("p2", "ready", 85, 0),
        ("p3", "ready", 80, 0),
        ("p4", "incomplete", 10, 5),
        ("p5", "incomplete", 20, 4),
        ("p6", "incomplete", 60, 2),
    ]
    for product_id, status, score, failed in audits:
        db_session.add(ProductAudit(
            shop_id=pro_shop.id,
            product_id=product_id,
            product_title=f"Product {product_id}",
            status=status,
            score=score,
            failed_count=failed,
        ))

    for detected_at, resolved in (
        (now - timedelta(days=1), False),
        (now - timedelta(days=2), True),
        (now - timedelta(days=10), False),
    ):
        db_session.add(ComplianceDrift(
            shop_id=pro_shop.id,
            product_id="p4",
            product_title="Product p4",
            drift_kind="images_removed",
            severity="high",
            is_resolved=resolved,
            detected_at=detected_at,
            created_at=detected_at,
        ))
    db_session.commit()
    return pro_shop


class TestReportPeriod:

    def test_weekly(self):
        start, end = report_period(_utc(2024, 6, 15, 12), "weekly")
        assert start == _utc(2024, 6, 8)
        assert end == _utc(2024, 6, 15, 23, 59, 59, 999999)

    def test_monthly_clamps(self):
        start, _ = report_period(_utc(2024, 3, 31, 8), "monthly")
        assert start == _utc(2024, 2, 29)


class TestSuggestions:

    def test_low_readiness(self):
        suggestions = build_suggestions(10, 2, 40.0, None, [], 0)
        assert suggestions == [
            "Only 20% of products are launch-ready. "
            "Consider using bulk autofix to improve multiple products at once."
        ]

    def test_great_shape(self):
        suggestions = build_suggestions(10, 9, 90.0, 88.0, [], 0)
        assert suggestions == ["Your catalog is in great shape! Keep monitoring for any changes."]

    def test_score_drop(self):
        suggestions = build_suggestions(10, 9, 70.0, 80.0, [], 0)
        assert suggestions[0].startswith("Average score dropped by 10%")

    def test_score_improved(self):
        suggestions = build_suggestions(10, 9, 70.0, 60.0, [], 0)
        assert suggestions == ["Great progress! Average score improved by 10% since last report."]

    def test_single_drift_is_singular(self):
        suggestions = build_suggestions(10, 9, 90.0, None, [], 1)
        assert suggestions[0].startswith("You have 1 unresolved compliance drift. ")


class TestGenerateReport:

    @pytest.mark.asyncio
    async def test_metrics(self, db_session, seeded_shop, now):
        report = await CatalogReportService(db_session).generate_catalog_report(seeded_shop, "weekly", now=now)

        assert report.status == "completed"
        assert report.period_start == _utc(2024, 6, 8)
        assert report.total_products == 6
        assert report.ready_products == 3
        assert report.incomplete_products == 3
        assert report.average_score == pytest.approx(350 / 6)
        assert report.previous_average_score is None
        assert report.top_issues == [
            {"issue": "Critical (0-25%)", "count": 2},
            {"issue": "Fair (50-75%)", "count": 1},
        ]
        assert [p["product_id"] for p in report.products_at_risk] == ["p4", "p5", "p6"]
        assert report.products_at_risk[0]["issues"] == 5
        assert report.drifts_detected == 2
        assert report.drifts_resolved == 1
        assert report.drifts_unresolved == 1
        assert report.suggestions == [
            "50% readiness is good, but there's room for improvement. "
            "Focus on the Critical (0-25%) products.",
            "You have 1 unresolved compliance drift. "
            "Review and resolve them to maintain catalog health.",
            "2 products have critical issues (score below 25%). These should be prioritized.",
        ]

    @pytest.mark.asyncio
    async def test_monthly_window_includes_older_drifts(self, db_session, seeded_shop, now):
        report = await CatalogReportService(db_session).generate_catalog_report(seeded_shop, "monthly", now=now)
        assert report.drifts_detected == 3

    @pytest.mark.asyncio
    async def test_previous_average_carried_forward(self, db_session, seeded_shop, now):
        service = CatalogReportService(db_session)
        first = await service.generate_catalog_report(seeded_shop, "weekly", now=now)
        second = await service.generate_catalog_report(seeded_shop, "weekly", now=now + timedelta(days=7))

        assert second.previous_average_score == pytest.approx(first.average_score)
        assert service.get_latest_report(seeded_shop.id).id == second.id

    @pytest.mark.asyncio
    async def test_empty_catalog(self, db_session, pro_shop, now):
        report = await CatalogReportService(db_session).generate_catalog_report(pro_shop, now=now)
        assert report.total_products == 0
        assert report.average_score == 0.0
        assert report.top_issues == []

    @pytest.mark.asyncio
    async def test_get_report_is_shop_scoped(self, db_session, seeded_shop, make_shop, now):
        other = make_shop("other-store.myshopify.com")
        service = CatalogReportService(db_session)
        report = await service.generate_catalog_report(seeded_shop, now=now)

        assert service.get_report(seeded_shop.id, report.id).id == report.id
        assert service.get_report(other.id, report.id) is None
        assert db_session.query(CatalogReport).count() == 1

    @pytest.mark.asyncio
    async def test_own_session_returns_detached_report(self, db_session, seeded_shop, now):
        factory = sessionmaker(autocommit=False, autoflush=False, bind=db_session.connection())
        service = CatalogReportService(db_session, session_factory=factory)

        report = await service.generate_catalog_report(seeded_shop, "weekly", now=now)

        assert inspect(report).detached
        assert report.total_products == 6
        assert report.drifts_detected == 2
        assert service.get_report(seeded_shop.id, report.id) is not None


class TestReportHistory:

    @pytest.mark.asyncio
    async def test_newest_first(self, db_session, seeded_shop, now):
        service = CatalogReportService(db_session)
        reports = [
            await service.generate_catalog_report(seeded_shop, "weekly", now=now + timedelta(days=7 * i))
            for i in range(3)
        ]

        history = service.get_report_history(seeded_shop.id)

        assert [r.id for r in history] == [r.id for r in reversed(reports)]

    @pytest.mark.asyncio
    async def test_limit(self, db_session, seeded_shop, now):
        service = CatalogReportService(db_session)
        for i in range(3):
            await service.generate_catalog_report(seeded_shop, "weekly", now=now + timedelta(days=7 * i))

        history = service.get_report_history(seeded_shop.id, limit=2)

        assert [r.period_end.date() for r in history] == [
            (now + timedelta(days=14)).date(),
            (now + timedelta(days=7)).date(),
        ]

    @pytest.mark.asyncio
    async def test_shop_scoped(self, db_session, seeded_shop, make_shop, now):
        other = make_shop("other-store.myshopify.com")
        service = CatalogReportService(db_session)
        await service.generate_catalog_report(seeded_shop, now=now)

        assert len(service.get_report_history(seeded_shop.id)) == 1
        assert service.get_report_history(other.id) == []

    def test_default_limit_is_twelve(self, db_session, pro_shop, now):
        service = CatalogReportService(db_session)
        for i in range(13):
            service.build_report(pro_shop.id, "weekly", now=now + timedelta(days=7 * i))

        assert len(service.get_report_history(pro_shop.id)) == 12

"""
Tests for the audit scheduler.

Tests cover:
- Schedule advancement (daily, weekly, monthly with month-end clamping)
- Due selection
- Run outcomes: success, failure, timeout (including a blocking report build), missing shop
- Settings upsert and validation
"""

import asyncio
import threading
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from catalogwatch.exceptions import ScheduleSettingsError
from catalogwatch.models.product_audit import ProductAudit
from catalogwatch.models.scheduled_audit import ScheduledAudit
from catalogwatch.services.audit_scheduler import AuditScheduler, advance_schedule
from catalogwatch.services.catalog_report_service import CatalogReportService


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def add_schedule(db_session):
    def _add(shop_id, next_run_at, frequency="weekly", is_enabled=True, **fields):
        audit = ScheduledAudit(
            shop_id=shop_id,
            frequency=frequency,
            is_enabled=is_enabled,
            next_run_at=next_run_at,
            **fields,
        )
        db_session.add(audit)
        db_session.commit()
        return audit
    return _add


def _generator(report=None, side_effect=None):
    generator = SimpleNamespace()
    generator.generate_catalog_report = AsyncMock(return_value=report, side_effect=side_effect)
    return generator


class _SlowGenerator:
    async def generate_catalog_report(self, shop, period):
        await asyncio.sleep(5)


class _BlockingReportService(CatalogReportService):
    """Report build that holds its worker thread until released."""

    def __init__(self, db_session):
        super().__init__(db_session)
        self.release = threading.Event()
        self.finished = threading.Event()

    def build_report(self, shop_id, period="weekly", now=None):
        try:
            self.release.wait(timeout=5)
            return super().build_report(shop_id, period, now)
        finally:
            self.finished.set()


# =============================================================================
# Schedule Advancement
# =============================================================================


class TestAdvanceSchedule:

    def test_daily(self):
        assert advance_schedule("daily", _utc(2024, 6, 15, 3)) == _utc(2024, 6, 16, 3)

    def test_weekly(self):
        assert advance_schedule("weekly", _utc(2024, 6, 15, 3)) == _utc(2024, 6, 22, 3)

    def test_monthly(self):
        assert advance_schedule("monthly", _utc(2024, 6, 15, 3)) == _utc(2024, 7, 15, 3)

    def test_monthly_clamps_to_end_of_february(self):
        assert advance_schedule("monthly", _utc(2023, 1, 31, 3)) == _utc(2023, 2, 28, 3)

    def test_monthly_clamps_to_leap_day(self):
        assert advance_schedule("monthly", _utc(2024, 1, 31, 3)) == _utc(2024, 2, 29, 3)

    def test_unknown_frequency_advances_weekly(self):
        assert advance_schedule(None, _utc(2024, 6, 15)) == _utc(2024, 6, 22)


# =============================================================================
# Due Selection
# =============================================================================


class TestDueSelection:

    def test_only_enabled_past_due(self, db_session, make_shop, add_schedule, now):
        due_shop = make_shop("due.myshopify.com")
        future_shop = make_shop("future.myshopify.com")
        disabled_shop = make_shop("disabled.myshopify.com")
        due = add_schedule(due_shop.id, now - timedelta(minutes=1))
        add_schedule(future_shop.id, now + timedelta(minutes=1))
        add_schedule(disabled_shop.id, now - timedelta(days=1), is_enabled=False)

        result = AuditScheduler(db_session).get_due_audits(now)

        assert [d.id for d in result] == [due.id]
        assert result[0].shop_domain == "due.myshopify.com"

    def test_exactly_now_is_due(self, db_session, pro_shop, add_schedule, now):
        add_schedule(pro_shop.id, now)
        assert len(AuditScheduler(db_session).get_due_audits(now)) == 1

    def test_schedule_without_shop_is_skipped(self, db_session, add_schedule, now):
        add_schedule("00000000-0000-0000-0000-000000000000", now - timedelta(hours=1))
        assert AuditScheduler(db_session).get_due_audits(now) == []


# =============================================================================
# Runs
# =============================================================================


class TestRunOne:

    @pytest.mark.asyncio
    async def test_success_advances_schedule(self, db_session, pro_shop, add_schedule, now):
        audit = add_schedule(pro_shop.id, now - timedelta(hours=1), notification_email="owner@example.com")
        db_session.add(ProductAudit(shop_id=pro_shop.id, product_id="p1", product_title="Shirt"))
        db_session.add(ProductAudit(shop_id=pro_shop.id, product_id="p2", product_title="Hat"))
        db_session.commit()
        generator = _generator(report=SimpleNamespace(id="report-1", drifts_detected=4))

        result = await AuditScheduler(db_session, generator).run_one(audit.id, now)

        assert result.success is True
        assert result.products_audited == 2
        assert result.drifts_detected == 4
        assert result.report_id == "report-1"
        assert result.notification_email == "owner@example.com"
        generator.generate_catalog_report.assert_awaited_once()
        assert generator.generate_catalog_report.await_args.args[1] == "weekly"

        db_session.refresh(audit)
        assert audit.last_run_status == "success"
        assert audit.last_run_at == now
        assert audit.last_run_product_count == 2
        assert audit.last_run_drift_count == 4
        assert audit.next_run_at == now + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_monthly_schedule_requests_monthly_report(self, db_session, pro_shop, add_schedule, now):
        audit = add_schedule(pro_shop.id, now, frequency="monthly")
        generator = _generator(report=None)

        await AuditScheduler(db_session, generator).run_one(audit.id, now)

        assert generator.generate_catalog_report.await_args.args[1] == "monthly"
        db_session.refresh(audit)
        assert audit.next_run_at == _utc(2024, 7, 15, 12)

    @pytest.mark.asyncio
    async def test_failure_keeps_next_run_at(self, db_session, pro_shop, add_schedule, now):
        original_next = now - timedelta(hours=1)
        audit = add_schedule(pro_shop.id, original_next)
        generator = _generator(side_effect=RuntimeError("report exploded"))

        result = await AuditScheduler(db_session, generator).run_one(audit.id, now)

        assert result.success is False
        assert result.error == "report exploded"
        db_session.refresh(audit)
        assert audit.last_run_status == "failed"
        assert audit.last_run_at == now
        assert audit.next_run_at == original_next

    @pytest.mark.asyncio
    async def test_timeout_is_a_failure(self, db_session, pro_shop, add_schedule, now):
        original_next = now - timedelta(hours=1)
        audit = add_schedule(pro_shop.id, original_next)

        scheduler = AuditScheduler(db_session, _SlowGenerator(), timeout_seconds=0.01)
        result = await scheduler.run_one(audit.id, now)

        assert result.success is False
        assert "timed out" in result.error
        db_session.refresh(audit)
        assert audit.last_run_status == "failed"
        assert audit.next_run_at == original_next

    @pytest.mark.asyncio
    async def test_blocking_report_build_times_out(self, db_session, pro_shop, add_schedule, now):
        original_next = now - timedelta(hours=1)
        audit = add_schedule(pro_shop.id, original_next)
        service = _BlockingReportService(db_session)

        try:
            result = await AuditScheduler(db_session, service, timeout_seconds=0.05).run_one(audit.id, now)
        finally:
            service.release.set()
            assert service.finished.wait(timeout=5)

        assert result.success is False
        assert "timed out" in result.error
        assert result.report_id is None
        db_session.refresh(audit)
        assert audit.last_run_status == "failed"
        assert audit.next_run_at == original_next

    @pytest.mark.asyncio
    async def test_report_service_success(self, db_session, pro_shop, add_schedule, now):
        audit = add_schedule(pro_shop.id, now - timedelta(hours=1))

        scheduler = AuditScheduler(db_session, CatalogReportService(db_session), timeout_seconds=5)
        result = await scheduler.run_one(audit.id, now)

        assert result.success is True
        assert result.report_id is not None
        db_session.refresh(audit)
        assert audit.next_run_at == now + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_missing_schedule(self, db_session):
        result = await AuditScheduler(db_session).run_one("missing")
        assert result.success is False
        assert result.error == "Scheduled audit config not found"

    @pytest.mark.asyncio
    async def test_missing_shop_touches_nothing(self, db_session, add_schedule, now):
        audit = add_schedule("00000000-0000-0000-0000-000000000000", now - timedelta(hours=1))

        result = await AuditScheduler(db_session).run_one(audit.id, now)

        assert result.success is False
        assert result.error == "Shop not found"
        db_session.refresh(audit)
        assert audit.last_run_status is None

    @pytest.mark.asyncio
    async def test_run_all_due_continues_after_failure(self, db_session, make_shop, add_schedule, now):
        first = make_shop("first.myshopify.com")
        second = make_shop("second.myshopify.com")
        add_schedule(first.id, now - timedelta(hours=2))
        add_schedule(second.id, now - timedelta(hours=1))
        generator = _generator(side_effect=[RuntimeError("first failed"), SimpleNamespace(id="r2", drifts_detected=0)])

        results = await AuditScheduler(db_session, generator).run_all_due(now)

        assert [r.shop_domain for r in results] == ["first.myshopify.com", "second.myshopify.com"]
        assert [r.success for r in results] == [False, True]


# =============================================================================
# Settings
# =============================================================================


class TestScheduleSettings:

    def test_create_with_defaults(self, db_session, pro_shop, now):
        audit = AuditScheduler(db_session).upsert_schedule(pro_shop.shop_domain, {}, now=now)
        assert audit.frequency == "weekly"
        assert audit.hour == 3
        assert audit.is_enabled is True
        assert audit.next_run_at == now + timedelta(days=7)

    def test_update_recomputes_next_run(self, db_session, pro_shop, now):
        scheduler = AuditScheduler(db_session)
        scheduler.upsert_schedule(pro_shop.shop_domain, {}, now=now)
        audit = scheduler.upsert_schedule(pro_shop.shop_domain, {"frequency": "daily"}, now=now)
        assert audit.next_run_at == now + timedelta(days=1)
        assert db_session.query(ScheduledAudit).count() == 1

    def test_disable_clears_next_run(self, db_session, pro_shop, now):
        audit = AuditScheduler(db_session).upsert_schedule(pro_shop.shop_domain, {"is_enabled": False}, now=now)
        assert audit.next_run_at is None

    def test_unknown_shop(self, db_session):
        assert AuditScheduler(db_session).upsert_schedule("ghost.myshopify.com", {}) is None
        assert AuditScheduler(db_session).get_schedule("ghost.myshopify.com") is None

    @pytest.mark.parametrize("settings,field", [
        ({"frequency": "hourly"}, "frequency"),
        ({"hour": 24}, "hour"),
        ({"hour": None}, "hour"),
        ({"day_of_week": 7}, "day_of_week"),
        ({"day_of_month": 0}, "day_of_month"),
        ({"timezone": "Mars/Olympus_Mons"}, "timezone"),
        ({"is_enabled": "yes"}, "is_enabled"),
        ({"cron": "* * * * *"}, "cron"),
    ])
    def test_invalid_settings(self, db_session, pro_shop, settings, field):
        with pytest.raises(ScheduleSettingsError) as exc_info:
            AuditScheduler(db_session).upsert_schedule(pro_shop.shop_domain, settings)
        assert exc_info.value.field == field

    def test_timezone_and_notifications_stored(self, db_session, pro_shop, now):
        audit = AuditScheduler(db_session).upsert_schedule(
            pro_shop.shop_domain,
            {"timezone": "America/New_York", "notification_email": "owner@example.com", "day_of_week": 0},
            now=now,
        )
        assert audit.timezone == "America/New_York"
        assert audit.notification_email == "owner@example.com"
        assert audit.day_of_week == 0

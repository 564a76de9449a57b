"""
Audit scheduler: recurring per-shop compliance audits.

State machine per ScheduledAudit:
    disabled -> enabled (pending) -> running -> success | failed -> pending

A run generates the shop's catalog report (with a per-shop timeout),
records the outcome and, on success only, advances next_run_at from the
run time:
    daily   +1 day
    weekly  +7 days
    monthly +1 calendar month, clamped to the month's last day (Jan 31 -> Feb 28/29)
A failed run keeps next_run_at, so the schedule stays due and is retried
on the next scheduler invocation.

run_all_due processes shops strictly one after another; one shop's failure
never stops the loop.

Usage:
    scheduler = AuditScheduler(db_session=session, report_generator=CatalogReportService(session))
    results = await scheduler.run_all_due()
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

from dateutil import tz
from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalogwatch.config.settings import DEFAULT_SCHEDULED_AUDIT_TIMEOUT_SECONDS
from catalogwatch.exceptions import ScheduleSettingsError
from catalogwatch.models.product_audit import ProductAudit
from catalogwatch.models.scheduled_audit import ScheduledAudit, AuditFrequency, RunStatus
from catalogwatch.models.shop import Shop
from catalogwatch.repositories.base_repo import get_shop_by_domain

logger = logging.getLogger(__name__)


class ReportGenerator(Protocol):
    """
    Collaborator that builds a catalog health report for a shop.

    The run timeout can only interrupt an implementation that awaits, so
    blocking work belongs on an executor.
    """

    async def generate_catalog_report(self, shop: Shop, period: str) -> Any:
        """Return an object with `id` and `drifts_detected`, or None."""
        ...


def advance_schedule(frequency: Optional[str], from_time: datetime) -> datetime:
    """Next run time for a frequency. Unknown frequencies advance weekly."""
    if frequency == AuditFrequency.DAILY.value:
        return from_time + timedelta(days=1)
    if frequency == AuditFrequency.MONTHLY.value:
        return from_time + relativedelta(months=1)
    return from_time + timedelta(days=7)


@dataclass
class DueAudit:
    """An enabled schedule whose next_run_at has passed, joined with its shop."""
    id: str
    shop_id: str
    shop_domain: str
    frequency: str
    email_on_drift: bool
    email_only_if_issues: bool
    notification_email: Optional[str]


@dataclass
class ScheduledAuditResult:
    scheduled_audit_id: str
    shop_domain: str
    success: bool
    products_audited: int = 0
    drifts_detected: int = 0
    report_id: Optional[str] = None
    error: Optional[str] = None
    email_on_drift: bool = True
    email_only_if_issues: bool = True
    notification_email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scheduled_audit_id": self.scheduled_audit_id,
            "shop_domain": self.shop_domain,
            "success": self.success,
            "products_audited": self.products_audited,
            "drifts_detected": self.drifts_detected,
            "report_id": self.report_id,
            "error": self.error,
        }


# =============================================================================
# Schedule settings validation
# =============================================================================

_SETTING_FIELDS = (
    "frequency",
    "is_enabled",
    "hour",
    "day_of_week",
    "day_of_month",
    "timezone",
    "email_on_drift",
    "email_only_if_issues",
    "notification_email",
)


def _validate_int(settings: Dict[str, Any], key: str, low: int, high: int, nullable: bool) -> None:
    if key not in settings:
        return
    value = settings[key]
    if value is None:
        if nullable:
            return
        raise ScheduleSettingsError(f"'{key}' is required", field=key)
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ScheduleSettingsError(f"'{key}' must be an integer between {low} and {high}", field=key)


def validate_schedule_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a partial settings dict.

    Raises:
        ScheduleSettingsError: Unknown key or out-of-range value
    """
    unknown = sorted(set(settings) - set(_SETTING_FIELDS))
    if unknown:
        raise ScheduleSettingsError(f"Unknown schedule settings: {', '.join(unknown)}", field=unknown[0])

    if "frequency" in settings:
        try:
            settings["frequency"] = AuditFrequency(settings["frequency"]).value
        except ValueError:
            raise ScheduleSettingsError(
                f"Invalid frequency: {settings['frequency']}", field="frequency"
            )

    _validate_int(settings, "hour", 0, 23, nullable=False)
    _validate_int(settings, "day_of_week", 0, 6, nullable=True)
    _validate_int(settings, "day_of_month", 1, 31, nullable=True)

    if "timezone" in settings:
        name = settings["timezone"]
        if not isinstance(name, str) or not name.strip() or tz.gettz(name.strip()) is None:
            raise ScheduleSettingsError(f"Unknown timezone: {name}", field="timezone")
        settings["timezone"] = name.strip()

    for key in ("is_enabled", "email_on_drift", "email_only_if_issues"):
        if key in settings and not isinstance(settings[key], bool):
            raise ScheduleSettingsError(f"'{key}' must be a boolean", field=key)

    return settings


class AuditScheduler:
    """Selects due scheduled audits, runs them and advances their schedules."""

    def __init__(
        self,
        db_session: Session,
        report_generator: Optional[ReportGenerator] = None,
        timeout_seconds: float = DEFAULT_SCHEDULED_AUDIT_TIMEOUT_SECONDS,
    ):
        self.db = db_session
        self.report_generator = report_generator
        self.timeout_seconds = timeout_seconds

    # -------------------------------------------------------------------------
    # Due selection and runs
    # -------------------------------------------------------------------------

    def get_due_audits(self, now: Optional[datetime] = None) -> List[DueAudit]:
        """Enabled schedules with next_run_at <= now. Schedules without a shop are skipped."""
        now = now or datetime.now(timezone.utc)

        rows = (
            self.db.query(ScheduledAudit, Shop.shop_domain)
            .outerjoin(Shop, Shop.id == ScheduledAudit.shop_id)
            .filter(
                ScheduledAudit.is_enabled.is_(True),
                ScheduledAudit.next_run_at.isnot(None),
                ScheduledAudit.next_run_at <= now,
            )
            .order_by(ScheduledAudit.next_run_at.asc(), ScheduledAudit.id)
            .all()
        )

        due = []
        for audit, shop_domain in rows:
            if shop_domain is None:
                logger.warning(
                    "Skipping scheduled audit with missing shop",
                    extra={"scheduled_audit_id": audit.id, "shop_id": audit.shop_id},
                )
                continue
            due.append(DueAudit(
                id=audit.id,
                shop_id=audit.shop_id,
                shop_domain=shop_domain,
                frequency=audit.frequency,
                email_on_drift=audit.email_on_drift,
                email_only_if_issues=audit.email_only_if_issues,
                notification_email=audit.notification_email,
            ))
        return due

    async def run_one(self, scheduled_audit_id: str, now: Optional[datetime] = None) -> ScheduledAuditResult:
        """
        Run one scheduled audit.

        Missing schedule or shop returns a failure result without touching
        any state. Any error during the run (including the report timeout)
        records last_run_status=failed and keeps next_run_at.
        """
        now = now or datetime.now(timezone.utc)

        audit = self.db.get(ScheduledAudit, scheduled_audit_id)
        if not audit:
            return ScheduledAuditResult(
                scheduled_audit_id=scheduled_audit_id,
                shop_domain="",
                success=False,
                error="Scheduled audit config not found",
            )

        shop = self.db.get(Shop, audit.shop_id)
        if not shop:
            return ScheduledAuditResult(
                scheduled_audit_id=scheduled_audit_id,
                shop_domain="",
                success=False,
                error="Shop not found",
            )

        shop_domain = shop.shop_domain
        prefs = {
            "email_on_drift": audit.email_on_drift,
            "email_only_if_issues": audit.email_only_if_issues,
            "notification_email": audit.notification_email,
        }

        try:
            products_audited = (
                self.db.query(ProductAudit)
                .filter(ProductAudit.shop_id == shop.id)
                .count()
            )

            period = "monthly" if audit.frequency == AuditFrequency.MONTHLY.value else "weekly"
            report = await self._generate_report(shop, period)
            drifts_detected = int(getattr(report, "drifts_detected", 0) or 0) if report else 0
            report_id = getattr(report, "id", None) if report else None

            audit.last_run_at = now
            audit.last_run_status = RunStatus.SUCCESS.value
            audit.last_run_product_count = products_audited
            audit.last_run_drift_count = drifts_detected
            audit.next_run_at = advance_schedule(audit.frequency, now)
            self.db.commit()
        except Exception as e:
            error = self._describe_error(e)
            logger.error(
                "Scheduled audit failed",
                extra={
                    "scheduled_audit_id": scheduled_audit_id,
                    "shop_domain": shop_domain,
                    "error": error,
                },
                exc_info=not isinstance(e, asyncio.TimeoutError),
            )
            if isinstance(e, SQLAlchemyError):
                self.db.rollback()
            self._record_failure(scheduled_audit_id, now)
            return ScheduledAuditResult(
                scheduled_audit_id=scheduled_audit_id,
                shop_domain=shop_domain,
                success=False,
                error=error,
                **prefs,
            )

        logger.info(
            "Scheduled audit completed",
            extra={
                "scheduled_audit_id": scheduled_audit_id,
                "shop_domain": shop_domain,
                "products_audited": products_audited,
                "drifts_detected": drifts_detected,
            },
        )
        return ScheduledAuditResult(
            scheduled_audit_id=scheduled_audit_id,
            shop_domain=shop_domain,
            success=True,
            products_audited=products_audited,
            drifts_detected=drifts_detected,
            report_id=report_id,
            **prefs,
        )

    async def run_all_due(self, now: Optional[datetime] = None) -> List[ScheduledAuditResult]:
        """Run every due audit sequentially and collect results in order."""
        now = now or datetime.now(timezone.utc)
        due = self.get_due_audits(now)
        logger.info("Found due scheduled audits", extra={"count": len(due)})

        results = []
        for item in due:
            try:
                result = await self.run_one(item.id, now)
            except Exception as e:
                logger.error(
                    "Scheduled audit crashed",
                    extra={"scheduled_audit_id": item.id, "shop_domain": item.shop_domain, "error": str(e)},
                    exc_info=True,
                )
                result = ScheduledAuditResult(
                    scheduled_audit_id=item.id,
                    shop_domain=item.shop_domain,
                    success=False,
                    error=str(e) or type(e).__name__,
                    email_on_drift=item.email_on_drift,
                    email_only_if_issues=item.email_only_if_issues,
                    notification_email=item.notification_email,
                )
            results.append(result)
        return results

    async def _generate_report(self, shop: Shop, period: str) -> Any:
        if self.report_generator is None:
            return None
        return await asyncio.wait_for(
            self.report_generator.generate_catalog_report(shop, period),
            timeout=self.timeout_seconds,
        )

    def _describe_error(self, error: Exception) -> str:
        if isinstance(error, asyncio.TimeoutError):
            return f"Report generation timed out after {self.timeout_seconds:g}s"
        return str(error) or type(error).__name__

    def _record_failure(self, scheduled_audit_id: str, now: datetime) -> None:
        audit = self.db.get(ScheduledAudit, scheduled_audit_id)
        if not audit:
            return
        audit.last_run_at = now
        audit.last_run_status = RunStatus.FAILED.value
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to record scheduled audit failure",
                extra={"scheduled_audit_id": scheduled_audit_id, "error": str(e)},
            )
            raise

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def get_schedule(self, shop_domain: str) -> Optional[ScheduledAudit]:
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return None
        return (
            self.db.query(ScheduledAudit)
            .filter(ScheduledAudit.shop_id == shop.id)
            .first()
        )

    def upsert_schedule(
        self,
        shop_domain: str,
        settings: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[ScheduledAudit]:
        """
        Create or update the shop's schedule.

        next_run_at is recomputed from now when the resulting schedule is
        enabled and cleared when it is disabled.

        Returns:
            The schedule, or None for an unknown shop

        Raises:
            ScheduleSettingsError: Invalid settings
        """
        settings = validate_schedule_settings(dict(settings))
        now = now or datetime.now(timezone.utc)

        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return None

        audit = (
            self.db.query(ScheduledAudit)
            .filter(ScheduledAudit.shop_id == shop.id)
            .first()
        )
        created = audit is None
        if created:
            audit = ScheduledAudit(
                shop_id=shop.id,
                frequency=AuditFrequency.WEEKLY.value,
                hour=3,
                timezone="UTC",
                is_enabled=True,
                email_on_drift=True,
                email_only_if_issues=True,
            )
            self.db.add(audit)

        for key, value in settings.items():
            setattr(audit, key, value)

        audit.next_run_at = advance_schedule(audit.frequency, now) if audit.is_enabled else None

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to save schedule",
                extra={"shop_id": shop.id, "error": str(e)},
            )
            raise
        self.db.refresh(audit)

        logger.info(
            "Schedule created" if created else "Schedule updated",
            extra={
                "shop_id": shop.id,
                "frequency": audit.frequency,
                "is_enabled": audit.is_enabled,
                "next_run_at": audit.next_run_at.isoformat() if audit.next_run_at else None,
            },
        )
        return audit

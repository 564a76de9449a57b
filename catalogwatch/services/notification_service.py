"""
Notification dispatch after scheduled audit runs.

For every successful run:
- drift alert when drifts were detected and the schedule has email_on_drift
- report email when a report was generated, unless email_only_if_issues is
  set and the run found no drifts

The recipient is the schedule's notification_email; runs without one are
skipped. Delivery failures are logged and never retried or raised.
"""

import logging
from html import escape
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from catalogwatch.config.settings import get_app_base_url
from catalogwatch.models.catalog_report import CatalogReport
from catalogwatch.services.audit_scheduler import ScheduledAuditResult
from catalogwatch.services.email_sender import EmailMessage, EmailSender, get_email_sender

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "[CatalogWatch]"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def build_drift_alert(result: ScheduledAuditResult, app_url: str) -> EmailMessage:
    drifts = _plural(result.drifts_detected, "compliance drift")
    shop = escape(result.shop_domain)
    html = (
        f"<h2>Compliance drifts detected</h2>"
        f"<p>{drifts} detected in the catalog of <strong>{shop}</strong> "
        f"across {_plural(result.products_audited, 'audited product')}.</p>"
        f'<p><a href="{escape(app_url)}/monitoring?shop={shop}">Review drifts</a></p>'
    )
    return EmailMessage(
        to_email=result.notification_email,
        subject=f"{SUBJECT_PREFIX} {drifts} detected",
        html_body=html,
        text_body=f"{drifts} detected in your catalog. Log in to review and resolve them.",
        tags=["drift-alert"],
    )


def build_report_email(result: ScheduledAuditResult, report: CatalogReport, app_url: str) -> EmailMessage:
    average = round(report.average_score or 0)
    summary = (
        f"Average score: {average}%. "
        f"{report.ready_products} of {report.total_products} products are launch-ready."
    )
    suggestions = "".join(f"<li>{escape(s)}</li>" for s in (report.suggestions or []))
    html = (
        f"<h2>Your catalog health report</h2>"
        f"<p>{escape(summary)}</p>"
        f"<p>Drifts this period: {report.drifts_detected} detected, "
        f"{report.drifts_unresolved} unresolved.</p>"
        f"<ul>{suggestions}</ul>"
        f'<p><a href="{escape(app_url)}/reports/{escape(report.id)}">Open the full report</a></p>'
    )
    return EmailMessage(
        to_email=result.notification_email,
        subject=f"{SUBJECT_PREFIX} Your Catalog Health Report",
        html_body=html,
        text_body=f"Your catalog health report is ready. {summary}",
        tags=["catalog-report"],
    )


class NotificationDispatcher:
    """Sends post-run emails according to each schedule's preferences."""

    def __init__(
        self,
        db_session: Session,
        sender: Optional[EmailSender] = None,
        app_url: Optional[str] = None,
    ):
        self.db = db_session
        self.sender = sender or get_email_sender()
        self.app_url = (app_url or get_app_base_url()).rstrip("/")

    async def send_drift_alert_email(self, result: ScheduledAuditResult) -> bool:
        if not result.success or result.drifts_detected <= 0 or not result.email_on_drift:
            return False
        if not result.notification_email:
            logger.info(
                "Skipping drift alert, no notification email configured",
                extra={"shop_domain": result.shop_domain},
            )
            return False
        return await self.sender.send(build_drift_alert(result, self.app_url))

    async def send_report_email(self, result: ScheduledAuditResult) -> bool:
        if not result.success or not result.report_id:
            return False
        if result.email_only_if_issues and result.drifts_detected == 0:
            return False
        if not result.notification_email:
            logger.info(
                "Skipping report email, no notification email configured",
                extra={"shop_domain": result.shop_domain},
            )
            return False

        report = self.db.get(CatalogReport, result.report_id)
        if not report:
            logger.error(
                "Report not found for notification",
                extra={"shop_domain": result.shop_domain, "report_id": result.report_id},
            )
            return False
        return await self.sender.send(build_report_email(result, report, self.app_url))

    async def dispatch(self, results: List[ScheduledAuditResult]) -> Dict[str, int]:
        """Send all notifications for a scheduler run. Never raises."""
        stats = {"drift_alerts_sent": 0, "reports_sent": 0, "failures": 0}

        for result in results:
            for kind, send in (
                ("drift_alerts_sent", self.send_drift_alert_email),
                ("reports_sent", self.send_report_email),
            ):
                try:
                    if await send(result):
                        stats[kind] += 1
                except Exception as e:
                    stats["failures"] += 1
                    logger.error(
                        "Failed to send notification",
                        extra={"shop_domain": result.shop_domain, "kind": kind, "error": str(e)},
                        exc_info=True,
                    )
        return stats

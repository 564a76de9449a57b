"""
One scheduler cycle: run every due audit, then dispatch notifications.

Shared by the cron endpoint and the command-line job.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from catalogwatch.config.settings import get_scheduled_audit_timeout
from catalogwatch.services.audit_scheduler import AuditScheduler
from catalogwatch.services.catalog_report_service import CatalogReportService
from catalogwatch.services.email_sender import EmailSender
from catalogwatch.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)


async def run_scheduled_audit_cycle(
    db_session: Session,
    email_sender: Optional[EmailSender] = None,
    timeout_seconds: Optional[float] = None,
    now: Optional[datetime] = None,
    report_session_factory: Optional[Callable[[], Session]] = None,
) -> Dict[str, Any]:
    """
    Reports are built on their own sessions from report_session_factory when
    given, otherwise on db_session.

    Returns a run summary:
        audits_run, successful, failed, total_drifts_detected,
        notifications (sent/failed counts), duration_ms, results
    """
    started = time.monotonic()

    scheduler = AuditScheduler(
        db_session=db_session,
        report_generator=CatalogReportService(db_session, session_factory=report_session_factory),
        timeout_seconds=timeout_seconds or get_scheduled_audit_timeout(),
    )
    results = await scheduler.run_all_due(now)

    dispatcher = NotificationDispatcher(db_session, sender=email_sender)
    notifications = await dispatcher.dispatch(results)

    summary = {
        "success": True,
        "audits_run": len(results),
        "successful": sum(1 for r in results if r.success),
        "failed": sum(1 for r in results if not r.success),
        "total_drifts_detected": sum(r.drifts_detected for r in results),
        "notifications": notifications,
        "duration_ms": int((time.monotonic() - started) * 1000),
        "results": [r.to_dict() for r in results],
    }

    logger.info(
        "Scheduled audit cycle completed",
        extra={k: v for k, v in summary.items() if k != "results"},
    )
    return summary

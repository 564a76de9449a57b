"""
Cron endpoint for scheduled audits.

Called by an external scheduler. Protected by a bearer secret
(CRON_SECRET); when no secret is configured the endpoint is open outside
production and always refused in production.
"""

import hmac
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from catalogwatch.config.settings import get_cron_secret, is_production
from catalogwatch.database.session import get_db_session, get_report_session_factory
from catalogwatch.services.scheduled_audit_runner import run_scheduled_audit_cycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


class CronRunResponse(BaseModel):
    success: bool
    audits_run: int
    successful: int
    failed: int
    total_drifts_detected: int
    notifications: Dict[str, int]
    duration_ms: int
    results: List[Dict[str, Any]]


def verify_cron_secret(authorization: Optional[str]) -> bool:
    secret = get_cron_secret()
    if not secret:
        if is_production():
            logger.error("CRON_SECRET not configured")
            return False
        return True

    if not authorization:
        return False
    # Constant-time comparison
    return hmac.compare_digest(authorization.encode("utf-8"), f"Bearer {secret}".encode("utf-8"))


@router.api_route("/scheduled-audits", methods=["GET", "POST"], response_model=CronRunResponse)
async def run_scheduled_audits(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db_session),
    report_sessions: sessionmaker = Depends(get_report_session_factory),
):
    """Run all due scheduled audits and send their notifications."""
    if not verify_cron_secret(authorization):
        logger.warning("Unauthorized cron invocation")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    logger.info("Starting scheduled audit run")
    try:
        return await run_scheduled_audit_cycle(db, report_session_factory=report_sessions)
    except Exception as e:
        logger.error(
            "Error running scheduled audits",
            extra={"error": str(e), "error_type": type(e).__name__},
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e) or "Unknown error"},
        )

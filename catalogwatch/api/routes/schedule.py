"""
Scheduled audit settings routes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from catalogwatch.api.dependencies import get_shop_domain
from catalogwatch.database.session import get_db_session
from catalogwatch.exceptions import ScheduleSettingsError
from catalogwatch.services.audit_scheduler import AuditScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/schedule", tags=["schedule"])


class ScheduleSettingsRequest(BaseModel):
    """Partial settings. Ranges are checked by the scheduler."""
    model_config = ConfigDict(extra="forbid")

    frequency: Optional[str] = None
    is_enabled: Optional[bool] = None
    hour: Optional[int] = None
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    timezone: Optional[str] = None
    email_on_drift: Optional[bool] = None
    email_only_if_issues: Optional[bool] = None
    notification_email: Optional[str] = None


@router.get("")
def get_schedule(
    shop_domain: str = Depends(get_shop_domain),
    db: Session = Depends(get_db_session),
):
    audit = AuditScheduler(db).get_schedule(shop_domain)
    return {"schedule": audit.to_dict() if audit else None}


@router.put("")
def upsert_schedule(
    body: ScheduleSettingsRequest,
    shop_domain: str = Depends(get_shop_domain),
    db: Session = Depends(get_db_session),
):
    try:
        audit = AuditScheduler(db).upsert_schedule(shop_domain, body.model_dump(exclude_unset=True))
    except ScheduleSettingsError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_schedule_settings", "message": str(e), "field": e.field},
        )
    if audit is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")
    return {"schedule": audit.to_dict()}

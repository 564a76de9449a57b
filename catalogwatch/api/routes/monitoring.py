"""
Compliance drift monitoring routes.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from catalogwatch.api.dependencies import get_shop_domain
from catalogwatch.database.session import get_db_session
from catalogwatch.models.compliance_drift import ResolvedBy
from catalogwatch.services.drift_service import DriftService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])


class DriftListResponse(BaseModel):
    drifts: List[Dict[str, Any]]
    count: int


class DriftSummaryResponse(BaseModel):
    total: int
    unresolved: int
    products_affected: int
    by_kind: Dict[str, int]
    recent_drifts: List[Dict[str, Any]]


class ResolveDriftRequest(BaseModel):
    resolved_by: ResolvedBy = ResolvedBy.USER


class ResolveProductRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    resolved_by: ResolvedBy = ResolvedBy.USER


@router.get("/drifts", response_model=DriftListResponse)
def list_unresolved_drifts(
    limit: int = Query(50, ge=1, le=250),
    shop_domain: str = Depends(get_shop_domain),
    db: Session = Depends(get_db_session),
):
    drifts = DriftService(db).get_unresolved_drifts(shop_domain, limit=limit)
    return DriftListResponse(drifts=[d.to_dict() for d in drifts], count=len(drifts))


@router.get("/drifts/summary", response_model=DriftSummaryResponse)
def get_drift_summary(
    days: int = Query(7, ge=1, le=365),
    shop_domain: str = Depends(get_shop_domain),
    db: Session = Depends(get_db_session),
):
    return DriftService(db).get_drift_summary(shop_domain, days=days)


@router.post("/drifts/{drift_id}/resolve")
def resolve_drift(
    drift_id: str,
    body: Optional[ResolveDriftRequest] = None,
    shop_domain: str = Depends(get_shop_domain),
    db: Session = Depends(get_db_session),
):
    resolved_by = (body or ResolveDriftRequest()).resolved_by.value
    if not DriftService(db).resolve_drift(drift_id, resolved_by=resolved_by, shop_domain=shop_domain):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Drift not found or already resolved",
        )
    return {"resolved": True, "drift_id": drift_id}


@router.post("/products/resolve")
def resolve_product_drifts(
    body: ResolveProductRequest,
    shop_domain: str = Depends(get_shop_domain),
    db: Session = Depends(get_db_session),
):
    count = DriftService(db).resolve_product_drifts(
        shop_domain,
        body.product_id,
        resolved_by=body.resolved_by.value,
    )
    return {"resolved": count, "product_id": body.product_id}

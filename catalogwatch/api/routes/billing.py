"""
Billing gate routes: AI credit status and feature enforcement checks.

Enforcement denials are returned as 403 with the GateResult body so the
embedded app can show the matching upgrade prompt.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from catalogwatch.api.dependencies import get_billing_gate, get_shop_domain
from catalogwatch.constants.billing import GatedFeature
from catalogwatch.exceptions import ShopNotFoundError
from catalogwatch.services.billing_gate import BillingGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("/ai-credits")
def get_ai_credits(
    shop_domain: str = Depends(get_shop_domain),
    gate: BillingGate = Depends(get_billing_gate),
):
    return gate.get_ai_credit_status(shop_domain)


@router.get("/audits")
def get_audit_allowance(
    shop_domain: str = Depends(get_shop_domain),
    gate: BillingGate = Depends(get_billing_gate),
):
    """Free-tier audit cap check. Nothing is counted."""
    result = gate.check_audit_limit(shop_domain)
    if not result.allowed:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=result.to_dict())
    return result.to_dict()


@router.post("/enforce/{feature}")
def enforce_feature(
    feature: str,
    credits_needed: int = Query(1, ge=1, le=100),
    shop_domain: str = Depends(get_shop_domain),
    gate: BillingGate = Depends(get_billing_gate),
):
    try:
        gated = GatedFeature(feature)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown feature: {feature}")

    result = gate.enforce(gated, shop_domain, credits_needed=credits_needed)
    if not result.allowed:
        logger.info(
            "Feature denied",
            extra={"shop_domain": shop_domain, "feature": gated.value, "error_code": result.error_code},
        )
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=result.to_dict())
    return result.to_dict()


@router.post("/ai-credits/consume")
def consume_ai_credit(
    shop_domain: str = Depends(get_shop_domain),
    gate: BillingGate = Depends(get_billing_gate),
):
    """Record one credit after an AI generation succeeded."""
    try:
        usage = gate.consume_credit(shop_domain)
    except ShopNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return usage.to_dict()

"""
Shopify webhook handlers.

SECURITY: All webhooks MUST verify the HMAC signature before processing.
Shopify signs webhooks with the app's API secret.

Topics:
    products/update            drift detection for pro and development stores
    app_subscriptions/update   plan and subscription state sync
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalogwatch.api.dependencies import get_billing_config
from catalogwatch.config.settings import BillingConfig, get_shopify_api_secret
from catalogwatch.database.session import get_db_session
from catalogwatch.integrations.shopify import (
    parse_subscription_payload,
    product_gid_from_payload,
    snapshot_from_webhook_payload,
)
from catalogwatch.models.shop import PlanType
from catalogwatch.services.billing_gate import BillingGate
from catalogwatch.services.drift_detector import DriftDetector

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/shopify", tags=["webhooks"])


class WebhookResponse(BaseModel):
    received: bool = True
    message: str = "Webhook processed"


def verify_shopify_webhook(data: bytes, hmac_header: str, api_secret: str) -> bool:
    """
    Verify a Shopify webhook signature.

    The X-Shopify-Hmac-Sha256 header is the base64 HMAC-SHA256 of the raw
    body keyed with the app's API secret.
    """
    if not hmac_header or not api_secret:
        return False

    digest = hmac.new(api_secret.encode("utf-8"), data, hashlib.sha256).digest()
    computed = base64.b64encode(digest)
    return hmac.compare_digest(computed, hmac_header.encode("utf-8"))


async def get_verified_webhook_body(request: Request) -> tuple:
    """
    Read, verify and parse a webhook body.

    Returns:
        Tuple of (parsed body dict, shop domain)

    Raises:
        HTTPException: If verification fails
    """
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256")
    if not hmac_header:
        logger.warning("Missing HMAC header in webhook")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing HMAC signature")

    shop_domain = (request.headers.get("X-Shopify-Shop-Domain") or "").strip().lower()
    if not shop_domain:
        logger.warning("Missing shop domain header in webhook")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing shop domain")

    api_secret = get_shopify_api_secret()
    if not api_secret:
        logger.error("SHOPIFY_API_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured",
        )

    body = await request.body()
    if not verify_shopify_webhook(body, hmac_header, api_secret):
        logger.warning("Invalid webhook HMAC", extra={"shop_domain": shop_domain})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid HMAC signature")

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        logger.error("Invalid JSON in webhook body", extra={"shop_domain": shop_domain})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    return data, shop_domain


@router.post("/products-update", response_model=WebhookResponse)
async def handle_products_update(
    request: Request,
    x_shopify_topic: Optional[str] = Header(None, alias="X-Shopify-Topic"),
    db: Session = Depends(get_db_session),
    config: BillingConfig = Depends(get_billing_config),
):
    """
    Run drift detection for an updated product.

    Detection errors never fail the webhook; Shopify would retry it.
    """
    data, shop_domain = await get_verified_webhook_body(request)
    logger.info("Product update webhook received", extra={"shop_domain": shop_domain, "topic": x_shopify_topic})

    plan_status = BillingGate(db, config=config).get_plan_status(shop_domain)
    if not plan_status.shop:
        logger.warning("Shop not found for webhook", extra={"shop_domain": shop_domain})
        return WebhookResponse(message="Shop not found")
    if plan_status.plan != PlanType.PRO.value and not plan_status.is_dev_store:
        return WebhookResponse(message="Drift monitoring not enabled")

    try:
        product_id = product_gid_from_payload(data)
        result = DriftDetector(db).detect_drifts(
            shop_domain,
            product_id,
            data.get("title") or "",
            snapshot_from_webhook_payload(data),
        )
    except Exception as e:
        logger.error(
            "Error checking for drifts",
            extra={"shop_domain": shop_domain, "error": str(e)},
            exc_info=True,
        )
        return WebhookResponse(message="Drift detection failed")

    if result.detected:
        logger.info(
            "Compliance drifts detected",
            extra={"shop_domain": shop_domain, "product_id": product_id, "count": len(result.drifts)},
        )
    return WebhookResponse(message=f"Drifts detected: {len(result.drifts)}")


@router.post("/app-subscriptions-update", response_model=WebhookResponse)
async def handle_subscription_update(
    request: Request,
    x_shopify_topic: Optional[str] = Header(None, alias="X-Shopify-Topic"),
    db: Session = Depends(get_db_session),
    config: BillingConfig = Depends(get_billing_config),
):
    """
    Sync plan state from an app_subscriptions/update webhook.

    CANCELLED, EXPIRED and DECLINED downgrade the shop to free; any other
    status stores the plan detected from the subscription name.
    """
    data, shop_domain = await get_verified_webhook_body(request)
    update = parse_subscription_payload(data)

    logger.info(
        "Subscription update webhook received",
        extra={
            "shop_domain": shop_domain,
            "topic": x_shopify_topic,
            "status": update.shopify_status,
            "plan": update.plan,
        },
    )

    gate = BillingGate(db, config=config)
    try:
        if update.is_cancellation:
            found = gate.handle_subscription_cancelled(shop_domain)
        else:
            found = gate.apply_subscription_update(
                shop_domain,
                plan=update.plan,
                subscription_id=update.subscription_id,
                subscription_status=update.subscription_status,
                current_period_end=update.current_period_end,
            ) is not None
    except SQLAlchemyError as e:
        logger.error(
            "Failed to sync plan from subscription webhook",
            extra={"shop_domain": shop_domain, "error": str(e)},
        )
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to sync plan")

    if not found:
        logger.warning("Shop not found for webhook", extra={"shop_domain": shop_domain})
        return WebhookResponse(message="Shop not found")
    return WebhookResponse(message=f"Processed status: {update.shopify_status or 'unknown'}")

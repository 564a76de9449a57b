"""
Shared FastAPI dependencies.

Shop identity comes from the X-Shopify-Shop-Domain header; embedded-app
session verification happens in front of this service.
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from catalogwatch.config.settings import BillingConfig
from catalogwatch.constants.billing import GatedFeature
from catalogwatch.database.session import get_db_session
from catalogwatch.services.billing_gate import BillingGate

logger = logging.getLogger(__name__)


def get_shop_domain(
    x_shopify_shop_domain: Optional[str] = Header(None, alias="X-Shopify-Shop-Domain"),
) -> str:
    domain = (x_shopify_shop_domain or "").strip().lower()
    if not domain:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Shopify-Shop-Domain header",
        )
    return domain


def get_billing_config() -> BillingConfig:
    return BillingConfig.from_env()


def get_billing_gate(
    db: Session = Depends(get_db_session),
    config: BillingConfig = Depends(get_billing_config),
) -> BillingGate:
    return BillingGate(db_session=db, config=config)


def create_feature_gate(feature: GatedFeature) -> Callable:
    """
    Dependency factory that rejects the request with 403 when the shop's
    plan does not include `feature`. The denial body is the GateResult.
    """

    def check_feature(
        shop_domain: str = Depends(get_shop_domain),
        gate: BillingGate = Depends(get_billing_gate),
    ) -> str:
        result = gate.enforce(feature, shop_domain)
        if not result.allowed:
            logger.warning(
                "Feature access denied",
                extra={
                    "shop_domain": shop_domain,
                    "feature": feature.value,
                    "error_code": result.error_code,
                },
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=result.to_dict())
        return shop_domain

    return check_feature


require_custom_rules = create_feature_gate(GatedFeature.CUSTOM_RULES)

"""
Parsing of `app_subscriptions/update` webhook payloads.

Plan detection follows the managed-pricing plan names: a name containing
"pro" maps to pro, "starter" to starter, anything else to free.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

from catalogwatch.models.shop import PlanType, SubscriptionStatus

logger = logging.getLogger(__name__)

# Shopify statuses that end the subscription
CANCELLING_STATUSES = frozenset({"CANCELLED", "EXPIRED", "DECLINED"})

_STATUS_MAP = {
    "ACTIVE": SubscriptionStatus.ACTIVE.value,
    "ACCEPTED": SubscriptionStatus.ACTIVE.value,
    "PENDING": SubscriptionStatus.PENDING.value,
    "FROZEN": SubscriptionStatus.FROZEN.value,
    "CANCELLED": SubscriptionStatus.CANCELLED.value,
    "DECLINED": SubscriptionStatus.CANCELLED.value,
    "EXPIRED": SubscriptionStatus.EXPIRED.value,
}


@dataclass
class SubscriptionUpdate:
    subscription_id: Optional[str]
    name: str
    shopify_status: str
    plan: str
    subscription_status: Optional[str]
    current_period_end: Optional[datetime] = None

    @property
    def is_cancellation(self) -> bool:
        return self.shopify_status in CANCELLING_STATUSES


def detect_plan(name: Optional[str]) -> str:
    lowered = (name or "").lower()
    if "pro" in lowered:
        return PlanType.PRO.value
    if "starter" in lowered:
        return PlanType.STARTER.value
    return PlanType.FREE.value


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return date_parser.isoparse(str(raw))
    except ValueError:
        logger.warning("Unparseable subscription date", extra={"value": raw})
        return None


def parse_subscription_payload(payload: Dict[str, Any]) -> SubscriptionUpdate:
    data = payload.get("app_subscription") or {}
    shopify_status = str(data.get("status") or "").upper()
    return SubscriptionUpdate(
        subscription_id=data.get("admin_graphql_api_id"),
        name=data.get("name") or "",
        shopify_status=shopify_status,
        plan=detect_plan(data.get("name")),
        subscription_status=_STATUS_MAP.get(shopify_status),
        current_period_end=_parse_datetime(data.get("current_period_end")),
    )

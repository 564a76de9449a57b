"""
Environment-backed settings read at the application edges.

Services never call os.getenv themselves; they receive these objects
(BillingConfig) or plain values (timeouts) from routes and jobs.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULED_AUDIT_TIMEOUT_SECONDS = 300.0

_VALID_DEV_PLANS = ("free", "starter", "pro")


def get_environment() -> str:
    """Deployment environment: development, test or production."""
    return os.getenv("ENV", "development").strip().lower()


def is_production() -> bool:
    return get_environment() == "production"


def get_cron_secret() -> Optional[str]:
    return os.getenv("CRON_SECRET") or None


def get_shopify_api_secret() -> Optional[str]:
    return os.getenv("SHOPIFY_API_SECRET") or None


def get_app_base_url() -> str:
    return os.getenv("APP_BASE_URL", "http://localhost:8000").rstrip("/")


def get_scheduled_audit_timeout() -> float:
    """Per-shop report generation timeout in seconds."""
    raw = os.getenv("SCHEDULED_AUDIT_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_SCHEDULED_AUDIT_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        logger.warning(
            "Invalid SCHEDULED_AUDIT_TIMEOUT_SECONDS, using default",
            extra={"value": raw},
        )
        return DEFAULT_SCHEDULED_AUDIT_TIMEOUT_SECONDS
    return value if value > 0 else DEFAULT_SCHEDULED_AUDIT_TIMEOUT_SECONDS


def _parse_domains(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(d.strip().lower() for d in raw.split(",") if d.strip())


@dataclass(frozen=True)
class BillingConfig:
    """
    Plan resolution overrides for the billing gate.

    dev_plan: forced plan for local development (BILLING_DEV_PLAN). Ignored
        in production.
    pro_store_domains: shops treated as pro in production (PRO_STORE_DOMAINS,
        comma separated).
    """
    environment: str = "development"
    dev_plan: Optional[str] = None
    pro_store_domains: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def effective_dev_plan(self) -> Optional[str]:
        """The developer override if it is honoured in this environment."""
        if self.is_production or not self.dev_plan:
            return None
        return self.dev_plan

    def is_pro_store(self, shop_domain: str) -> bool:
        if not self.is_production:
            return False
        return shop_domain.strip().lower() in self.pro_store_domains

    @classmethod
    def from_env(cls) -> "BillingConfig":
        environment = get_environment()
        dev_plan = (os.getenv("BILLING_DEV_PLAN") or "").strip().lower() or None
        if dev_plan and dev_plan not in _VALID_DEV_PLANS:
            logger.warning("Ignoring invalid BILLING_DEV_PLAN", extra={"value": dev_plan})
            dev_plan = None
        if dev_plan and environment == "production":
            logger.warning("BILLING_DEV_PLAN is set in production and will be ignored")

        return cls(
            environment=environment,
            dev_plan=dev_plan,
            pro_store_domains=_parse_domains(os.getenv("PRO_STORE_DOMAINS")),
        )

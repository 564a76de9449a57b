"""
Billing / credit gate: plan tiers, feature gates and monthly usage ledgers.

Plan resolution order:
    1. Developer override (BillingConfig.dev_plan), never honoured in production
    2. PRO_STORE_DOMAINS allowlist, production only
    3. Persisted Shop.plan
A partner development store is treated as pro with no trial and is never
metered, unless a developer override is active.

Ledgers (ai_credits_used, audits_this_month) are only changed through
conditional UPDATE statements:
    reset:     SET used = 0, reset_at = <1st of next month>  WHERE reset_at < now
    increment: SET used = used + 1                          WHERE used < limit
so concurrent consumers cannot lose updates or push usage past the limit.

Denials are returned as GateResult values, never raised.

Usage:
    gate = BillingGate(db_session=session, config=BillingConfig.from_env())
    result = gate.enforce_ai_with_credits("mystore.myshopify.com")
    if not result.allowed:
        return result.to_dict()
    ...  # run the AI generation
    usage = gate.consume_credit("mystore.myshopify.com")
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import update, func, literal
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalogwatch.config.plan_limits import PlanLimits, get_plan_limits
from catalogwatch.config.settings import BillingConfig
from catalogwatch.constants.billing import (
    BillingErrorCode,
    GatedFeature,
    REQUIRED_PLAN_FOR_ERROR,
    DEFAULT_ERROR_MESSAGES,
)
from catalogwatch.exceptions import ShopNotFoundError
from catalogwatch.models.base import UTCDateTime
from catalogwatch.models.shop import Shop, PlanType, SubscriptionStatus
from catalogwatch.repositories.base_repo import get_shop_by_domain

logger = logging.getLogger(__name__)


def next_month_reset(now: datetime) -> datetime:
    """First day of the month after `now`, 00:00 UTC."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc) + relativedelta(months=1)


@dataclass
class PlanStatus:
    """Effective plan of a shop at a point in time."""
    shop: Optional[Shop]
    plan: str
    in_trial: bool
    is_dev_store: bool


@dataclass
class GateResult:
    """Outcome of a gate check. Denials carry an error code and upgrade hint."""
    allowed: bool
    plan: str
    in_trial: bool = False
    is_dev_store: bool = False
    error_code: Optional[str] = None
    message: Optional[str] = None
    required_plan: Optional[str] = None
    credits_remaining: Optional[int] = None
    credits_limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "plan": self.plan,
            "in_trial": self.in_trial,
            "is_dev_store": self.is_dev_store,
            "error_code": self.error_code,
            "message": self.message,
            "required_plan": self.required_plan,
            "credits_remaining": self.credits_remaining,
            "credits_limit": self.credits_limit,
        }


@dataclass
class LedgerUsage:
    """
    Counter state after a consume/increment.

    remaining and limit are None when the shop is unmetered.
    """
    used: int
    remaining: Optional[int]
    limit: Optional[int]
    incremented: bool = False

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "used": self.used,
            "remaining": self.remaining,
            "limit": self.limit,
            "unlimited": self.unlimited,
            "incremented": self.incremented,
        }


class BillingGate:
    """Enforces plan features and meters AI credits and free-tier audits."""

    def __init__(
        self,
        db_session: Session,
        config: Optional[BillingConfig] = None,
        plan_limits: Optional[PlanLimits] = None,
    ):
        self.db = db_session
        self.config = config or BillingConfig()
        self.plan_limits = plan_limits or get_plan_limits()

    # -------------------------------------------------------------------------
    # Plan resolution
    # -------------------------------------------------------------------------

    def get_plan_status(self, shop_domain: str, now: Optional[datetime] = None) -> PlanStatus:
        now = now or datetime.now(timezone.utc)
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return PlanStatus(shop=None, plan=PlanType.FREE.value, in_trial=False, is_dev_store=False)

        forced_plan = self.config.effective_dev_plan
        if forced_plan:
            plan = forced_plan
        elif self.config.is_pro_store(shop.shop_domain):
            plan = PlanType.PRO.value
        else:
            plan = shop.plan

        is_dev_store = bool(shop.is_dev_store) and not forced_plan
        if is_dev_store:
            return PlanStatus(shop=shop, plan=PlanType.PRO.value, in_trial=False, is_dev_store=True)

        return PlanStatus(shop=shop, plan=plan, in_trial=shop.is_in_trial(now), is_dev_store=False)

    def _deny(
        self,
        status: PlanStatus,
        error_code: BillingErrorCode,
        message: Optional[str] = None,
        credits_remaining: Optional[int] = None,
        credits_limit: Optional[int] = None,
    ) -> GateResult:
        return GateResult(
            allowed=False,
            plan=status.plan,
            in_trial=status.in_trial,
            is_dev_store=status.is_dev_store,
            error_code=error_code.value,
            message=message or DEFAULT_ERROR_MESSAGES[error_code],
            required_plan=REQUIRED_PLAN_FOR_ERROR[error_code],
            credits_remaining=credits_remaining,
            credits_limit=credits_limit,
        )

    @staticmethod
    def _allow(status: PlanStatus, **kwargs) -> GateResult:
        return GateResult(
            allowed=True,
            plan=status.plan,
            in_trial=status.in_trial,
            is_dev_store=status.is_dev_store,
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Feature gates
    # -------------------------------------------------------------------------

    def enforce(
        self,
        feature: Any,
        shop_domain: str,
        credits_needed: int = 1,
        now: Optional[datetime] = None,
    ) -> GateResult:
        """Dispatch to the gate for a GatedFeature (or its string value)."""
        feature = GatedFeature(feature)
        if feature == GatedFeature.AUTOFIX:
            return self.enforce_autofix(shop_domain, now=now)
        if feature == GatedFeature.AI:
            return self.enforce_ai(shop_domain, now=now)
        if feature == GatedFeature.CUSTOM_RULES:
            return self.enforce_custom_rules(shop_domain, now=now)
        return self.enforce_ai_with_credits(shop_domain, credits_needed=credits_needed, now=now)

    def enforce_autofix(self, shop_domain: str, now: Optional[datetime] = None) -> GateResult:
        """Allowed on any paid plan."""
        status = self.get_plan_status(shop_domain, now)
        if not status.shop:
            return self._deny(status, BillingErrorCode.SUBSCRIPTION_REQUIRED)
        if status.is_dev_store or self.plan_limits.for_plan(status.plan).autofix:
            return self._allow(status)
        return self._deny(status, BillingErrorCode.AUTOFIX_LOCKED)

    def enforce_ai(self, shop_domain: str, now: Optional[datetime] = None) -> GateResult:
        """Allowed on pro only."""
        status = self.get_plan_status(shop_domain, now)
        return self._enforce_ai_status(status)

    def _enforce_ai_status(self, status: PlanStatus) -> GateResult:
        if not status.shop:
            return self._deny(status, BillingErrorCode.SUBSCRIPTION_REQUIRED)
        if status.is_dev_store or self.plan_limits.for_plan(status.plan).ai_features:
            return self._allow(status)
        return self._deny(status, BillingErrorCode.AI_FEATURE_LOCKED)

    def enforce_custom_rules(self, shop_domain: str, now: Optional[datetime] = None) -> GateResult:
        status = self.get_plan_status(shop_domain, now)
        if not status.shop:
            return self._deny(status, BillingErrorCode.SUBSCRIPTION_REQUIRED)
        if status.is_dev_store or self.plan_limits.for_plan(status.plan).custom_rules:
            return self._allow(status)
        return self._deny(status, BillingErrorCode.CUSTOM_RULES_LOCKED)

    def enforce_ai_with_credits(
        self,
        shop_domain: str,
        credits_needed: int = 1,
        now: Optional[datetime] = None,
    ) -> GateResult:
        """
        AI gate plus a credit check for `credits_needed` credits.

        A due monthly reset is materialized here, and the check is evaluated
        against the fresh counter. Nothing is consumed.
        """
        now = now or datetime.now(timezone.utc)
        status = self.get_plan_status(shop_domain, now)
        result = self._enforce_ai_status(status)
        if not result.allowed or status.is_dev_store:
            return result

        shop = status.shop
        limit = self.plan_limits.for_plan(status.plan).ai_credit_limit(status.in_trial)
        self._reset_ai_credits_if_due(shop, now)

        remaining = max(0, limit - shop.ai_credits_used)
        if remaining < credits_needed:
            return self._deny(
                status,
                BillingErrorCode.AI_LIMIT_REACHED,
                message=f"AI credit limit reached ({shop.ai_credits_used}/{limit}).",
                credits_remaining=remaining,
                credits_limit=limit,
            )
        return self._allow(status, credits_remaining=remaining, credits_limit=limit)

    # -------------------------------------------------------------------------
    # AI credit ledger
    # -------------------------------------------------------------------------

    def consume_credit(self, shop_domain: str, now: Optional[datetime] = None) -> LedgerUsage:
        """
        Record one AI credit after a gated generation succeeded.

        Raises:
            ShopNotFoundError: If the shop is not installed
        """
        now = now or datetime.now(timezone.utc)
        status = self.get_plan_status(shop_domain, now)
        shop = status.shop
        if not shop:
            raise ShopNotFoundError(shop_domain)

        if status.is_dev_store:
            return LedgerUsage(used=shop.ai_credits_used, remaining=None, limit=None)

        plan_config = self.plan_limits.for_plan(status.plan)
        if not plan_config.ai_features:
            return LedgerUsage(used=0, remaining=0, limit=0)

        limit = plan_config.ai_credit_limit(status.in_trial)
        self._reset_ai_credits_if_due(shop, now)

        incremented = self._increment_with_ceiling(
            shop,
            Shop.ai_credits_used,
            Shop.ai_credits_reset_at,
            limit,
            now,
        )
        if not incremented:
            logger.warning(
                "AI credit not recorded: limit already reached",
                extra={"shop_id": shop.id, "used": shop.ai_credits_used, "limit": limit},
            )

        return LedgerUsage(
            used=shop.ai_credits_used,
            remaining=max(0, limit - shop.ai_credits_used),
            limit=limit,
            incremented=incremented,
        )

    def get_ai_credit_status(self, shop_domain: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Read-only credit status for display. A due reset is reported, not written."""
        now = now or datetime.now(timezone.utc)
        status = self.get_plan_status(shop_domain, now)
        shop = status.shop
        if not shop:
            return {
                "allowed": False,
                "plan": status.plan,
                "in_trial": False,
                "is_dev_store": False,
                "used": 0,
                "limit": 0,
                "remaining": 0,
                "resets_at": None,
            }

        if status.is_dev_store:
            return {
                "allowed": True,
                "plan": status.plan,
                "in_trial": False,
                "is_dev_store": True,
                "used": shop.ai_credits_used,
                "limit": None,
                "remaining": None,
                "resets_at": None,
            }

        plan_config = self.plan_limits.for_plan(status.plan)
        limit = plan_config.ai_credit_limit(status.in_trial) if plan_config.ai_features else 0
        used = shop.ai_credits_used
        resets_at = shop.ai_credits_reset_at
        if resets_at and resets_at < now:
            used = 0
            resets_at = next_month_reset(now)
        remaining = max(0, limit - used)

        return {
            "allowed": plan_config.ai_features and remaining > 0,
            "plan": status.plan,
            "in_trial": status.in_trial,
            "is_dev_store": False,
            "used": used,
            "limit": limit,
            "remaining": remaining,
            "resets_at": resets_at.isoformat() if resets_at else None,
        }

    # -------------------------------------------------------------------------
    # Audit ledger (free tier)
    # -------------------------------------------------------------------------

    def check_audit_limit(self, shop_domain: str, now: Optional[datetime] = None) -> GateResult:
        """Free tier monthly audit cap. Paid plans and dev stores are unlimited."""
        now = now or datetime.now(timezone.utc)
        status = self.get_plan_status(shop_domain, now)
        shop = status.shop
        if not shop:
            return self._deny(status, BillingErrorCode.SUBSCRIPTION_REQUIRED)

        cap = self.plan_limits.for_plan(status.plan).audits_per_month
        if status.is_dev_store or cap is None:
            return self._allow(status)

        self._reset_audits_if_due(shop, now)
        if shop.audits_this_month >= cap:
            return self._deny(
                status,
                BillingErrorCode.AUDIT_LIMIT_REACHED,
                message=f"Monthly audit limit reached ({shop.audits_this_month}/{cap}).",
            )
        return self._allow(status)

    def increment_audit_count(self, shop_domain: str, now: Optional[datetime] = None) -> LedgerUsage:
        """
        Record one audit run.

        Capped plans increment with a ceiling; unlimited plans are still
        counted for reporting. Dev stores are not tracked.

        Raises:
            ShopNotFoundError: If the shop is not installed
        """
        now = now or datetime.now(timezone.utc)
        status = self.get_plan_status(shop_domain, now)
        shop = status.shop
        if not shop:
            raise ShopNotFoundError(shop_domain)

        if status.is_dev_store:
            return LedgerUsage(used=shop.audits_this_month, remaining=None, limit=None)

        cap = self.plan_limits.for_plan(status.plan).audits_per_month
        self._reset_audits_if_due(shop, now)
        incremented = self._increment_with_ceiling(
            shop,
            Shop.audits_this_month,
            Shop.audits_reset_at,
            cap,
            now,
        )

        return LedgerUsage(
            used=shop.audits_this_month,
            remaining=None if cap is None else max(0, cap - shop.audits_this_month),
            limit=cap,
            incremented=incremented,
        )

    # -------------------------------------------------------------------------
    # Subscription state
    # -------------------------------------------------------------------------

    def apply_subscription_update(
        self,
        shop_domain: str,
        plan: str,
        subscription_id: Optional[str] = None,
        subscription_status: Optional[str] = None,
        trial_ends_at: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        is_dev_store: Optional[bool] = None,
    ) -> Optional[Shop]:
        """Persist plan and subscription fields. Returns None for an unknown shop."""
        plan = PlanType(plan).value
        if subscription_status is not None:
            subscription_status = SubscriptionStatus(subscription_status.lower()).value

        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return None

        previous_plan = shop.plan
        shop.plan = plan
        shop.subscription_id = subscription_id
        shop.subscription_status = subscription_status
        if trial_ends_at is not None:
            shop.trial_ends_at = trial_ends_at
        if current_period_end is not None:
            shop.current_period_end = current_period_end
        if is_dev_store is not None:
            shop.is_dev_store = is_dev_store

        self._commit("apply_subscription_update", shop)
        logger.info(
            "Subscription updated",
            extra={
                "shop_id": shop.id,
                "previous_plan": previous_plan,
                "plan": plan,
                "subscription_status": subscription_status,
            },
        )
        return shop

    def handle_subscription_cancelled(self, shop_domain: str) -> bool:
        """Downgrade to free and clear AI usage. Returns False for an unknown shop."""
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return False

        shop.plan = PlanType.FREE.value
        shop.subscription_id = None
        shop.subscription_status = SubscriptionStatus.CANCELLED.value
        shop.ai_credits_used = 0

        self._commit("handle_subscription_cancelled", shop)
        logger.info("Subscription cancelled, shop downgraded to free", extra={"shop_id": shop.id})
        return True

    # -------------------------------------------------------------------------
    # Atomic ledger statements
    # -------------------------------------------------------------------------

    def _reset_ai_credits_if_due(self, shop: Shop, now: datetime) -> bool:
        return self._reset_if_due(shop, Shop.ai_credits_used, Shop.ai_credits_reset_at, now)

    def _reset_audits_if_due(self, shop: Shop, now: datetime) -> bool:
        return self._reset_if_due(shop, Shop.audits_this_month, Shop.audits_reset_at, now)

    def _reset_if_due(self, shop: Shop, used_column, reset_column, now: datetime) -> bool:
        """Zero a counter whose reset time has passed. Only one caller wins."""
        stmt = (
            update(Shop)
            .where(
                Shop.id == shop.id,
                reset_column.isnot(None),
                reset_column < now,
            )
            .values({
                used_column: 0,
                reset_column: next_month_reset(now),
                Shop.updated_at: now,
            })
            .execution_options(synchronize_session=False)
        )
        rowcount = self._execute(stmt, shop)
        if rowcount:
            logger.info(
                "Monthly usage counter reset",
                extra={"shop_id": shop.id, "counter": used_column.key},
            )
        return rowcount > 0

    def _increment_with_ceiling(
        self,
        shop: Shop,
        used_column,
        reset_column,
        limit: Optional[int],
        now: datetime,
    ) -> bool:
        """used = used + 1, only while used < limit (no ceiling when limit is None)."""
        conditions = [Shop.id == shop.id]
        if limit is not None:
            conditions.append(used_column < limit)

        stmt = (
            update(Shop)
            .where(*conditions)
            .values({
                used_column: used_column + 1,
                reset_column: func.coalesce(reset_column, literal(next_month_reset(now), UTCDateTime)),
                Shop.updated_at: now,
            })
            .execution_options(synchronize_session=False)
        )
        return self._execute(stmt, shop) > 0

    def _execute(self, stmt, shop: Shop) -> int:
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Billing ledger update failed",
                extra={"shop_id": shop.id, "error": str(e)},
            )
            raise
        self.db.refresh(shop)
        return result.rowcount

    def _commit(self, operation: str, shop: Shop) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Billing state update failed",
                extra={"shop_id": shop.id, "operation": operation, "error": str(e)},
            )
            raise
        self.db.refresh(shop)

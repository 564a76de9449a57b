"""
Plan limits configuration loader.

Loads per-plan feature flags and monthly allowances from
catalogwatch/config/plans.yml.

Consumers:
  - BillingGate: feature gates, AI credit limits, free-tier audit cap

Usage:
    from catalogwatch.config.plan_limits import get_plan_limits

    limits = get_plan_limits()
    limits.for_plan("pro").ai_credits         # 100
    limits.for_plan("free").audits_per_month  # 20
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanConfig:
    """Limits and feature flags for one plan. None means unlimited."""
    key: str
    name: str
    price: float = 0
    trial_days: int = 0
    audits_per_month: Optional[int] = None
    autofix: bool = False
    ai_features: bool = False
    custom_rules: bool = False
    ai_credits: int = 0
    trial_ai_credits: int = 0

    def ai_credit_limit(self, in_trial: bool) -> int:
        return self.trial_ai_credits if in_trial else self.ai_credits

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "price": self.price,
            "trial_days": self.trial_days,
            "audits_per_month": self.audits_per_month,
            "autofix": self.autofix,
            "ai_features": self.ai_features,
            "custom_rules": self.custom_rules,
            "ai_credits": self.ai_credits,
            "trial_ai_credits": self.trial_ai_credits,
        }


# Used when plans.yml is missing or a plan is absent from it
_FALLBACK_PLANS: Dict[str, PlanConfig] = {
    "free": PlanConfig(
        key="free", name="Free", audits_per_month=20,
    ),
    "starter": PlanConfig(
        key="starter", name="Starter", price=12, trial_days=7, autofix=True,
    ),
    "pro": PlanConfig(
        key="pro", name="Pro", price=39, trial_days=7, autofix=True,
        ai_features=True, custom_rules=True, ai_credits=100, trial_ai_credits=15,
    ),
}


@dataclass
class PlanLimits:
    """
    Resolved plan table.

    Pass an instance to BillingGate to override the YAML values (tests do).
    """
    plans: Dict[str, PlanConfig] = field(default_factory=lambda: dict(_FALLBACK_PLANS))
    default_plan: str = "free"

    def for_plan(self, plan: Optional[str]) -> PlanConfig:
        """Return config for a plan key, falling back to the default plan."""
        if plan and plan in self.plans:
            return self.plans[plan]
        return self.plans.get(self.default_plan, _FALLBACK_PLANS["free"])

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PlanLimits":
        plans = dict(_FALLBACK_PLANS)
        for key, values in (raw.get("plans") or {}).items():
            values = values or {}
            fallback = _FALLBACK_PLANS.get(key, PlanConfig(key=key, name=key.title()))
            plans[key] = PlanConfig(
                key=key,
                name=values.get("name", fallback.name),
                price=values.get("price", fallback.price),
                trial_days=int(values.get("trial_days", fallback.trial_days)),
                audits_per_month=values.get("audits_per_month", fallback.audits_per_month),
                autofix=bool(values.get("autofix", fallback.autofix)),
                ai_features=bool(values.get("ai_features", fallback.ai_features)),
                custom_rules=bool(values.get("custom_rules", fallback.custom_rules)),
                ai_credits=int(values.get("ai_credits", fallback.ai_credits) or 0),
                trial_ai_credits=int(values.get("trial_ai_credits", fallback.trial_ai_credits) or 0),
            )
        return cls(plans=plans, default_plan=raw.get("default_plan", "free"))


class PlanLimitsLoader:
    """
    Thread-safe singleton loader for config/plans.yml.
    """

    _instance: Optional["PlanLimitsLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path
        self._limits = PlanLimits()
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        candidates = [
            Path(os.getenv("PLAN_LIMITS_PATH", "")) if os.getenv("PLAN_LIMITS_PATH") else None,
            Path(__file__).parent / "plans.yml",
            Path(os.getcwd()) / "config" / "plans.yml",
        ]

        for p in candidates:
            if p is None:
                continue
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"plans.yml not found in: {[str(p) for p in candidates if p is not None]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            try:
                path = self._resolve_path()
                logger.info("Loading plan limits from %s", path)

                with open(path, "r") as f:
                    raw = yaml.safe_load(f) or {}

                self._limits = PlanLimits.from_dict(raw)
                logger.info("Loaded plan limits: plans=%s", sorted(self._limits.plans))
            except FileNotFoundError:
                logger.warning("plans.yml not found, using fallback plan limits")
                self._limits = PlanLimits()

    @property
    def limits(self) -> PlanLimits:
        return self._limits


def get_plan_limits(config_path: Optional[str] = None) -> PlanLimits:
    """Return plan limits from the singleton loader."""
    return PlanLimitsLoader(config_path).limits


def reset_plan_limits_loader() -> None:
    """Reset singleton (for tests only)."""
    PlanLimitsLoader._instance = None

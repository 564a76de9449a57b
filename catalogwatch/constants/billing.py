"""
Billing gate constants.

Error codes are part of the HTTP contract: the embedded app keys its
upgrade prompts on them.
"""

from enum import Enum


class GatedFeature(str, Enum):
    """Features guarded by the billing gate."""
    AUTOFIX = "autofix"
    AI = "ai"
    AI_WITH_CREDITS = "ai_with_credits"
    CUSTOM_RULES = "custom_rules"


class BillingErrorCode(str, Enum):
    """Machine-readable denial codes."""
    AI_FEATURE_LOCKED = "AI_FEATURE_LOCKED"
    AI_LIMIT_REACHED = "AI_LIMIT_REACHED"
    AUTOFIX_LOCKED = "AUTOFIX_LOCKED"
    CUSTOM_RULES_LOCKED = "CUSTOM_RULES_LOCKED"
    AUDIT_LIMIT_REACHED = "AUDIT_LIMIT_REACHED"
    SUBSCRIPTION_REQUIRED = "SUBSCRIPTION_REQUIRED"


# Cheapest plan that unlocks each denial
REQUIRED_PLAN_FOR_ERROR = {
    BillingErrorCode.AUTOFIX_LOCKED: "starter",
    BillingErrorCode.AUDIT_LIMIT_REACHED: "starter",
    BillingErrorCode.AI_FEATURE_LOCKED: "pro",
    BillingErrorCode.AI_LIMIT_REACHED: "pro",
    BillingErrorCode.CUSTOM_RULES_LOCKED: "pro",
    BillingErrorCode.SUBSCRIPTION_REQUIRED: "starter",
}

DEFAULT_ERROR_MESSAGES = {
    BillingErrorCode.AUTOFIX_LOCKED: "Auto-fix requires the Starter plan or higher.",
    BillingErrorCode.AUDIT_LIMIT_REACHED: "Monthly audit limit reached. Upgrade for unlimited audits.",
    BillingErrorCode.AI_FEATURE_LOCKED: "AI features require the Pro plan.",
    BillingErrorCode.AI_LIMIT_REACHED: "AI credit limit reached for this month.",
    BillingErrorCode.CUSTOM_RULES_LOCKED: "Custom rules require the Pro plan.",
    BillingErrorCode.SUBSCRIPTION_REQUIRED: "Shop not found or no active subscription.",
}

"""
Structured error classes for the compliance core.

Policy denials from the billing gate are NOT exceptions; they are
returned as GateResult values.
"""

from typing import Any, Dict, Optional


class CatalogWatchError(Exception):
    """Base exception for compliance core errors."""
    pass


class ShopNotFoundError(CatalogWatchError):
    """Raised when an operation requires an installed shop that does not exist."""

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain
        super().__init__(f"Shop not found: {shop_domain}")


class RuleConfigError(CatalogWatchError):
    """
    Raised when a rule configuration does not match its kind's schema,
    or the rule kind is not in the rule catalog.
    """

    def __init__(self, message: str, rule_kind: Optional[str] = None, field: Optional[str] = None):
        self.rule_kind = rule_kind
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "invalid_rule_config",
            "message": str(self),
            "rule_kind": self.rule_kind,
            "field": self.field,
        }


class UnknownTemplateError(CatalogWatchError):
    """Raised when applying a rule template key that does not exist."""

    def __init__(self, template_key: str):
        self.template_key = template_key
        super().__init__(f"Unknown rule template: {template_key}")


class ScheduleSettingsError(CatalogWatchError):
    """Raised for out-of-range or unknown schedule settings."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

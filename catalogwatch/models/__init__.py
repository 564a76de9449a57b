"""
Database models for the catalog compliance core.

All compliance records are shop-scoped and inherit ShopScopedMixin,
except ScheduledAudit which carries its own unique shop_id.
"""

from catalogwatch.models.base import Base, TimestampMixin, ShopScopedMixin, UTCDateTime
from catalogwatch.models.shop import Shop, PlanType, SubscriptionStatus
from catalogwatch.models.catalog_rule import CatalogRule, Severity
from catalogwatch.models.compliance_drift import ComplianceDrift, DriftKind, ResolvedBy
from catalogwatch.models.scheduled_audit import ScheduledAudit, AuditFrequency, RunStatus
from catalogwatch.models.product_audit import ProductAudit
from catalogwatch.models.catalog_report import CatalogReport

__all__ = [
    "Base",
    "TimestampMixin",
    "ShopScopedMixin",
    "UTCDateTime",
    "Shop",
    "PlanType",
    "SubscriptionStatus",
    "CatalogRule",
    "Severity",
    "ComplianceDrift",
    "DriftKind",
    "ResolvedBy",
    "ScheduledAudit",
    "AuditFrequency",
    "RunStatus",
    "ProductAudit",
    "CatalogReport",
]

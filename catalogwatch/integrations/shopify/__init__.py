"""
Shopify integration: webhook payload parsing and the catalog client interface.
"""

from catalogwatch.integrations.shopify.catalog_client import CatalogClient
from catalogwatch.integrations.shopify.product_payload import (
    product_gid_from_payload,
    snapshot_from_webhook_payload,
)
from catalogwatch.integrations.shopify.subscription_payload import (
    SubscriptionUpdate,
    parse_subscription_payload,
)

__all__ = [
    "CatalogClient",
    "product_gid_from_payload",
    "snapshot_from_webhook_payload",
    "SubscriptionUpdate",
    "parse_subscription_payload",
]

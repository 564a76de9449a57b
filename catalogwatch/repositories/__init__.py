from catalogwatch.repositories.base_repo import ShopScopedRepository, ShopIsolationError, get_shop_by_domain
from catalogwatch.repositories.catalog_rules import CatalogRuleRepository

__all__ = [
    "ShopScopedRepository",
    "ShopIsolationError",
    "get_shop_by_domain",
    "CatalogRuleRepository",
]

"""
Repository for per-shop catalog rules.
"""

from typing import List

from catalogwatch.models.catalog_rule import CatalogRule
from catalogwatch.repositories.base_repo import ShopScopedRepository


class CatalogRuleRepository(ShopScopedRepository[CatalogRule]):
    """Shop-scoped access to CatalogRule rows."""

    def _get_model_class(self) -> type:
        return CatalogRule

    def list_newest_first(self) -> List[CatalogRule]:
        return (
            self._scoped_query()
            .order_by(CatalogRule.created_at.desc(), CatalogRule.id)
            .all()
        )

    def list_enabled(self) -> List[CatalogRule]:
        """Enabled rules in creation order, the order they are evaluated in."""
        return (
            self._scoped_query()
            .filter(CatalogRule.is_enabled.is_(True))
            .order_by(CatalogRule.created_at.asc(), CatalogRule.id)
            .all()
        )

    def count_enabled(self) -> int:
        return self._scoped_query().filter(CatalogRule.is_enabled.is_(True)).count()

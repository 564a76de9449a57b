"""
Catalog client interface.

The product-data source is an external collaborator; anything that can return
a ProductSnapshot for a product GID satisfies it.
"""

from typing import Optional, Protocol

from catalogwatch.rules.snapshot import ProductSnapshot


class CatalogClient(Protocol):

    async def fetch_product_snapshot(self, shop_domain: str, product_id: str) -> Optional[ProductSnapshot]:
        """Current snapshot of a product, or None if it no longer exists."""
        ...

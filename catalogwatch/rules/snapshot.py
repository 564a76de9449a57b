"""
Product snapshot: the ephemeral view of a product that drift detection reads.

Snapshots are built from webhook payloads or the catalog client and are
never persisted.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


def clean_text(value: Optional[str]) -> str:
    """Trim a possibly-missing string; None becomes ''."""
    return (value or "").strip()


@dataclass(frozen=True)
class ProductImage:
    url: str
    alt_text: Optional[str] = None

    @property
    def has_alt_text(self) -> bool:
        return bool(clean_text(self.alt_text))


@dataclass(frozen=True)
class ProductCollection:
    id: str
    title: str


@dataclass(frozen=True)
class ProductSnapshot:
    """Point-in-time product fields relevant to catalog compliance."""
    title: Optional[str] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    description: Optional[str] = None
    images: List[ProductImage] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    collections: List[ProductCollection] = field(default_factory=list)
    metafields: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def image_count(self) -> int:
        return len(self.images)

    @property
    def clean_tags(self) -> List[str]:
        return [t for t in (clean_text(tag) for tag in self.tags) if t]

    @property
    def missing_alt_text_count(self) -> int:
        return sum(1 for image in self.images if not image.has_alt_text)

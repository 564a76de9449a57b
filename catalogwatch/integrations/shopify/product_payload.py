"""
Conversion of Shopify `products/update` webhook payloads into snapshots.

The REST-shaped webhook body carries no SEO fields, collections or
metafields; the product title stands in for the SEO title.
"""

from typing import Any, Dict, List

from catalogwatch.rules.snapshot import ProductImage, ProductSnapshot

PRODUCT_GID_PREFIX = "gid://shopify/Product/"


def product_gid_from_payload(payload: Dict[str, Any]) -> str:
    """
    Product GID from admin_graphql_api_id, falling back to the numeric id.

    Raises:
        ValueError: Payload has neither identifier
    """
    gid = payload.get("admin_graphql_api_id")
    if gid:
        return f"{PRODUCT_GID_PREFIX}{str(gid).rsplit('/', 1)[-1]}"
    if payload.get("id") is not None:
        return f"{PRODUCT_GID_PREFIX}{payload['id']}"
    raise ValueError("Product payload has no id")


def _parse_tags(raw: Any) -> List[str]:
    if not raw:
        return []
    if isinstance(raw, list):
        return [str(tag).strip() for tag in raw if str(tag).strip()]
    return [tag.strip() for tag in str(raw).split(",") if tag.strip()]


def _parse_images(raw: Any) -> List[ProductImage]:
    images = []
    for image in raw or []:
        if not isinstance(image, dict) or not image.get("src"):
            continue
        images.append(ProductImage(url=image["src"], alt_text=image.get("alt")))
    return images


def snapshot_from_webhook_payload(payload: Dict[str, Any]) -> ProductSnapshot:
    title = payload.get("title")
    return ProductSnapshot(
        title=title,
        seo_title=title,
        description=payload.get("body_html"),
        images=_parse_images(payload.get("images")),
        tags=_parse_tags(payload.get("tags")),
    )

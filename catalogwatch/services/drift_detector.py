"""
Drift detector: finds catalog-quality regressions on product updates.

Built-in checks run in a fixed order, then every enabled custom rule of the
shop is evaluated against the current snapshot. All events from one call
are persisted in a single commit, so readers never see a partial set.

Checks (strings are trimmed before measuring):
    1. SEO title        removed (high) | too long >60 (medium) | too short <30 (low)
    2. Description      removed (high) | shortened below 50% (medium)
    3. Images           removed (high) | fewer than 3 (medium)
    4. Alt text         any image without alt text (medium)
    5. Tags             removed (medium)
    6. Collections      removed (medium)
    7. Custom rules     custom_rule_violated at the rule's severity

Detection does not deduplicate against existing unresolved drifts; every
call inserts what it finds.

Usage:
    detector = DriftDetector(db_session=session)
    result = detector.detect_drifts(
        shop_domain="mystore.myshopify.com",
        product_id="gid://shopify/Product/1",
        product_title="Linen Shirt",
        current=snapshot,
        previous=None,
    )
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalogwatch.exceptions import RuleConfigError
from catalogwatch.integrations.shopify.catalog_client import CatalogClient
from catalogwatch.models.catalog_rule import CatalogRule
from catalogwatch.models.compliance_drift import ComplianceDrift, DriftKind
from catalogwatch.repositories.base_repo import get_shop_by_domain
from catalogwatch.repositories.catalog_rules import CatalogRuleRepository
from catalogwatch.rules.evaluators import evaluate_rule
from catalogwatch.rules.snapshot import ProductSnapshot, clean_text

logger = logging.getLogger(__name__)

SEO_TITLE_MIN_LENGTH = 30
SEO_TITLE_MAX_LENGTH = 60
MIN_IMAGE_COUNT = 3
DESCRIPTION_SHORTENED_RATIO = 0.5
REMOVED_DESCRIPTION_MAX_CHARS = 500


@dataclass(frozen=True)
class DriftEvent:
    """A drift found by a check, before it is persisted."""
    kind: DriftKind
    severity: str
    previous_value: Any = None
    current_value: Any = None
    source_rule_id: Optional[str] = None


@dataclass
class DriftResult:
    """Outcome of one detection pass."""
    detected: bool
    drifts: List[ComplianceDrift] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected": self.detected,
            "drifts": [d.to_dict() for d in self.drifts],
        }


# =============================================================================
# Built-in checks
# =============================================================================

def _check_seo_title(current: ProductSnapshot, previous: ProductSnapshot) -> List[DriftEvent]:
    seo_title = clean_text(current.seo_title)
    prev_seo_title = clean_text(previous.seo_title)

    if prev_seo_title and not seo_title:
        return [DriftEvent(DriftKind.SEO_TITLE_REMOVED, "high", prev_seo_title, seo_title)]
    if seo_title and len(seo_title) > SEO_TITLE_MAX_LENGTH:
        return [DriftEvent(DriftKind.SEO_TITLE_TOO_LONG, "medium", prev_seo_title or None, seo_title)]
    if seo_title and len(seo_title) < SEO_TITLE_MIN_LENGTH:
        return [DriftEvent(DriftKind.SEO_TITLE_TOO_SHORT, "low", prev_seo_title or None, seo_title)]
    return []


def _check_description(current: ProductSnapshot, previous: ProductSnapshot) -> List[DriftEvent]:
    description = clean_text(current.description)
    prev_description = clean_text(previous.description)

    if prev_description and not description:
        return [DriftEvent(
            DriftKind.DESCRIPTION_REMOVED,
            "high",
            prev_description[:REMOVED_DESCRIPTION_MAX_CHARS],
            "",
        )]
    # Strict less-than: exactly half the previous length is not a drift
    if (
        prev_description
        and description
        and len(description) < len(prev_description) * DESCRIPTION_SHORTENED_RATIO
    ):
        return [DriftEvent(
            DriftKind.DESCRIPTION_SHORTENED,
            "medium",
            {"length": len(prev_description)},
            {"length": len(description)},
        )]
    return []


def _check_images(current: ProductSnapshot, previous: ProductSnapshot) -> List[DriftEvent]:
    image_count = current.image_count
    prev_image_count = previous.image_count

    if prev_image_count > 0 and image_count == 0:
        return [DriftEvent(DriftKind.IMAGES_REMOVED, "high", prev_image_count, image_count)]
    if 0 < image_count < MIN_IMAGE_COUNT:
        return [DriftEvent(DriftKind.IMAGES_LOW_COUNT, "medium", prev_image_count or None, image_count)]
    return []


def _check_alt_text(current: ProductSnapshot, previous: ProductSnapshot) -> List[DriftEvent]:
    missing = current.missing_alt_text_count
    if missing > 0:
        return [DriftEvent(
            DriftKind.ALT_TEXT_MISSING,
            "medium",
            None,
            {"missing": missing, "total": current.image_count},
        )]
    return []


def _check_tags(current: ProductSnapshot, previous: ProductSnapshot) -> List[DriftEvent]:
    tags = current.clean_tags
    prev_tags = previous.clean_tags
    if prev_tags and not tags:
        return [DriftEvent(DriftKind.TAGS_REMOVED, "medium", prev_tags, tags)]
    return []


def _check_collections(current: ProductSnapshot, previous: ProductSnapshot) -> List[DriftEvent]:
    if previous.collections and not current.collections:
        return [DriftEvent(
            DriftKind.COLLECTION_REMOVED,
            "medium",
            [c.title for c in previous.collections],
            [],
        )]
    return []


BUILTIN_CHECKS = (
    _check_seo_title,
    _check_description,
    _check_images,
    _check_alt_text,
    _check_tags,
    _check_collections,
)


def run_builtin_checks(
    current: ProductSnapshot,
    previous: Optional[ProductSnapshot] = None,
) -> List[DriftEvent]:
    """
    Run the built-in checks in order. Pure: no database access.

    A missing previous snapshot is treated as an empty product, so only
    the current-state checks (too long/short, low count, alt text) can fire.
    """
    previous = previous or ProductSnapshot()
    events: List[DriftEvent] = []
    for check in BUILTIN_CHECKS:
        events.extend(check(current, previous))
    return events


def run_custom_rules(rules: List[CatalogRule], current: ProductSnapshot) -> List[DriftEvent]:
    """
    Evaluate custom rules against the current snapshot.

    Rules with an unknown kind or unusable configuration are skipped.
    """
    events: List[DriftEvent] = []
    for rule in rules:
        try:
            details = evaluate_rule(rule.rule_kind, rule.configuration, current)
        except RuleConfigError as e:
            logger.warning(
                "Skipping custom rule that cannot be evaluated",
                extra={
                    "rule_id": rule.id,
                    "rule_kind": rule.rule_kind,
                    "error": str(e),
                },
            )
            continue

        if details is not None:
            events.append(DriftEvent(
                kind=DriftKind.CUSTOM_RULE_VIOLATED,
                severity=rule.severity,
                previous_value=None,
                current_value={"rule": rule.name, **details},
                source_rule_id=rule.id,
            ))
    return events


class DriftDetector:
    """Runs drift detection for a product and persists the results."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def detect_drifts(
        self,
        shop_domain: str,
        product_id: str,
        product_title: str,
        current: ProductSnapshot,
        previous: Optional[ProductSnapshot] = None,
        now: Optional[datetime] = None,
    ) -> DriftResult:
        """
        Detect and persist drifts for one product.

        Args:
            shop_domain: Shop the product belongs to
            product_id: Shopify product GID
            product_title: Title stored on each drift for display
            current: Snapshot after the change
            previous: Snapshot before the change, when known
            now: Detection time (defaults to current UTC time)

        Returns:
            DriftResult; detected=False with no drifts for an unknown shop

        Raises:
            SQLAlchemyError: If the batch insert fails (after rollback)
        """
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            logger.info(
                "Drift detection skipped for unknown shop",
                extra={"shop_domain": shop_domain, "product_id": product_id},
            )
            return DriftResult(detected=False, drifts=[])

        now = now or datetime.now(timezone.utc)

        events = run_builtin_checks(current, previous)
        rules = CatalogRuleRepository(self.db, shop.id).list_enabled()
        events.extend(run_custom_rules(rules, current))

        if not events:
            return DriftResult(detected=False, drifts=[])

        drifts = [
            ComplianceDrift(
                shop_id=shop.id,
                product_id=product_id,
                product_title=product_title,
                drift_kind=event.kind.value,
                severity=event.severity,
                previous_value=event.previous_value,
                current_value=event.current_value,
                source_rule_id=event.source_rule_id,
                is_resolved=False,
                detected_at=now,
                created_at=now,
            )
            for event in events
        ]

        try:
            self.db.add_all(drifts)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to persist drifts",
                extra={
                    "shop_id": shop.id,
                    "product_id": product_id,
                    "drift_count": len(drifts),
                    "error": str(e),
                },
            )
            raise

        logger.info(
            "Compliance drifts detected",
            extra={
                "shop_id": shop.id,
                "product_id": product_id,
                "drift_count": len(drifts),
                "kinds": [d.drift_kind for d in drifts],
            },
        )
        return DriftResult(detected=True, drifts=drifts)

    async def detect_from_catalog(
        self,
        catalog_client: CatalogClient,
        shop_domain: str,
        product_id: str,
        product_title: str,
        previous: Optional[ProductSnapshot] = None,
        now: Optional[datetime] = None,
    ) -> DriftResult:
        """Fetch the current snapshot from the catalog, then detect. A deleted product detects nothing."""
        current = await catalog_client.fetch_product_snapshot(shop_domain, product_id)
        if current is None:
            logger.info(
                "Product no longer in catalog, skipping drift detection",
                extra={"shop_domain": shop_domain, "product_id": product_id},
            )
            return DriftResult(detected=False, drifts=[])
        return self.detect_drifts(shop_domain, product_id, product_title, current, previous, now)

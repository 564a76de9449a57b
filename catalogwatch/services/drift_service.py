"""
Drift queries and resolution for the monitoring dashboard.

Resolution is the only mutation allowed on a drift record; resolving an
already-resolved drift is a no-op.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalogwatch.models.compliance_drift import ComplianceDrift, ResolvedBy
from catalogwatch.repositories.base_repo import get_shop_by_domain

logger = logging.getLogger(__name__)

DEFAULT_UNRESOLVED_LIMIT = 50
DEFAULT_SUMMARY_DAYS = 7
SUMMARY_RECENT_LIMIT = 10


def _parse_resolved_by(resolved_by: Any) -> str:
    try:
        return ResolvedBy(resolved_by).value
    except ValueError:
        raise ValueError(f"Invalid resolved_by: {resolved_by}")


class DriftService:
    """Read and resolve compliance drifts for one database session."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_unresolved_drifts(
        self,
        shop_domain: str,
        limit: int = DEFAULT_UNRESOLVED_LIMIT,
    ) -> List[ComplianceDrift]:
        """Unresolved drifts, newest first. Unknown shop returns []."""
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return []

        return (
            self.db.query(ComplianceDrift)
            .filter(
                ComplianceDrift.shop_id == shop.id,
                ComplianceDrift.is_resolved.is_(False),
            )
            .order_by(ComplianceDrift.detected_at.desc())
            .limit(limit)
            .all()
        )

    def get_drift_summary(
        self,
        shop_domain: str,
        days: int = DEFAULT_SUMMARY_DAYS,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Dashboard summary.

        Returns:
            {
                "total": drifts detected in the window,
                "unresolved": all unresolved drifts,
                "products_affected": distinct products with unresolved drifts,
                "by_kind": {drift_kind: count in the window},
                "recent_drifts": up to 10 most recent drifts in the window,
            }
        """
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return {
                "total": 0,
                "unresolved": 0,
                "products_affected": 0,
                "by_kind": {},
                "recent_drifts": [],
            }

        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=days)

        recent = (
            self.db.query(ComplianceDrift)
            .filter(
                ComplianceDrift.shop_id == shop.id,
                ComplianceDrift.detected_at >= since,
            )
            .order_by(ComplianceDrift.detected_at.desc())
            .all()
        )
        unresolved = (
            self.db.query(ComplianceDrift.product_id)
            .filter(
                ComplianceDrift.shop_id == shop.id,
                ComplianceDrift.is_resolved.is_(False),
            )
            .all()
        )

        by_kind: Dict[str, int] = {}
        for drift in recent:
            by_kind[drift.drift_kind] = by_kind.get(drift.drift_kind, 0) + 1

        return {
            "total": len(recent),
            "unresolved": len(unresolved),
            "products_affected": len({row.product_id for row in unresolved}),
            "by_kind": by_kind,
            "recent_drifts": [d.to_dict() for d in recent[:SUMMARY_RECENT_LIMIT]],
        }

    def resolve_drift(
        self,
        drift_id: str,
        resolved_by: str = ResolvedBy.USER.value,
        shop_domain: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Mark one unresolved drift as resolved.

        When shop_domain is given the drift must belong to that shop.

        Returns:
            True if a drift was resolved, False if not found or already resolved
        """
        resolved_by = _parse_resolved_by(resolved_by)
        now = now or datetime.now(timezone.utc)

        query = self.db.query(ComplianceDrift).filter(
            ComplianceDrift.id == drift_id,
            ComplianceDrift.is_resolved.is_(False),
        )
        if shop_domain is not None:
            shop = get_shop_by_domain(self.db, shop_domain)
            if not shop:
                return False
            query = query.filter(ComplianceDrift.shop_id == shop.id)

        updated = self._resolve(query, resolved_by, now)
        if updated:
            logger.info(
                "Drift resolved",
                extra={"drift_id": drift_id, "resolved_by": resolved_by},
            )
        return updated > 0

    def resolve_product_drifts(
        self,
        shop_domain: str,
        product_id: str,
        resolved_by: str = ResolvedBy.AUTO.value,
        now: Optional[datetime] = None,
    ) -> int:
        """Resolve every unresolved drift of a product. Returns the count."""
        resolved_by = _parse_resolved_by(resolved_by)
        shop = get_shop_by_domain(self.db, shop_domain)
        if not shop:
            return 0

        now = now or datetime.now(timezone.utc)
        query = self.db.query(ComplianceDrift).filter(
            ComplianceDrift.shop_id == shop.id,
            ComplianceDrift.product_id == product_id,
            ComplianceDrift.is_resolved.is_(False),
        )
        updated = self._resolve(query, resolved_by, now)

        logger.info(
            "Product drifts resolved",
            extra={
                "shop_id": shop.id,
                "product_id": product_id,
                "resolved_count": updated,
                "resolved_by": resolved_by,
            },
        )
        return updated

    def _resolve(self, query, resolved_by: str, now: datetime) -> int:
        try:
            updated = query.update(
                {
                    ComplianceDrift.is_resolved: True,
                    ComplianceDrift.resolved_at: now,
                    ComplianceDrift.resolved_by: resolved_by,
                },
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to resolve drifts", extra={"error": str(e)})
            raise
        return updated

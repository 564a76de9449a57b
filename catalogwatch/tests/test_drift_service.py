"""
Tests for drift queries and resolution.
"""

from datetime import timedelta

import pytest

from catalogwatch.models.compliance_drift import ComplianceDrift
from catalogwatch.services.drift_service import DriftService


@pytest.fixture
def service(db_session):
    return DriftService(db_session)


@pytest.fixture
def add_drift(db_session):
    def _add(shop, product_id="gid://shopify/Product/1", kind="images_removed", detected_at=None, **fields):
        drift = ComplianceDrift(
            shop_id=shop.id,
            product_id=product_id,
            product_title="Shirt",
            drift_kind=kind,
            severity=fields.pop("severity", "high"),
            detected_at=detected_at,
            created_at=detected_at,
            **fields,
        )
        db_session.add(drift)
        db_session.commit()
        return drift
    return _add


class TestQueries:

    def test_unresolved_newest_first(self, service, pro_shop, add_drift, now):
        older = add_drift(pro_shop, detected_at=now - timedelta(hours=2))
        newer = add_drift(pro_shop, detected_at=now - timedelta(hours=1))
        add_drift(pro_shop, detected_at=now, is_resolved=True)

        drifts = service.get_unresolved_drifts(pro_shop.shop_domain)
        assert [d.id for d in drifts] == [newer.id, older.id]

    def test_unresolved_limit(self, service, pro_shop, add_drift, now):
        for i in range(3):
            add_drift(pro_shop, detected_at=now - timedelta(minutes=i))
        assert len(service.get_unresolved_drifts(pro_shop.shop_domain, limit=2)) == 2

    def test_unknown_shop(self, service):
        assert service.get_unresolved_drifts("ghost.myshopify.com") == []
        summary = service.get_drift_summary("ghost.myshopify.com")
        assert summary["total"] == 0
        assert summary["recent_drifts"] == []

    def test_summary_window(self, service, pro_shop, add_drift, now):
        add_drift(pro_shop, product_id="p1", kind="images_removed", detected_at=now - timedelta(days=1))
        add_drift(pro_shop, product_id="p1", kind="tags_removed", detected_at=now - timedelta(days=2))
        add_drift(pro_shop, product_id="p2", kind="images_removed", detected_at=now - timedelta(days=3))
        add_drift(pro_shop, product_id="p3", kind="images_removed", detected_at=now - timedelta(days=30))
        add_drift(pro_shop, product_id="p4", kind="tags_removed", detected_at=now - timedelta(days=1), is_resolved=True)

        summary = service.get_drift_summary(pro_shop.shop_domain, days=7, now=now)

        assert summary["total"] == 4
        assert summary["by_kind"] == {"images_removed": 2, "tags_removed": 2}
        # Unresolved counts ignore the window
        assert summary["unresolved"] == 4
        assert summary["products_affected"] == 3
        assert len(summary["recent_drifts"]) == 4


class TestResolution:

    def test_resolve_drift(self, service, pro_shop, add_drift, db_session, now):
        drift = add_drift(pro_shop, detected_at=now)
        assert service.resolve_drift(drift.id, "user", now=now) is True

        db_session.refresh(drift)
        assert drift.is_resolved is True
        assert drift.resolved_by == "user"
        assert drift.resolved_at == now

    def test_resolve_twice_is_noop(self, service, pro_shop, add_drift, now):
        drift = add_drift(pro_shop, detected_at=now)
        assert service.resolve_drift(drift.id, now=now) is True
        assert service.resolve_drift(drift.id, now=now) is False

    def test_resolve_missing(self, service):
        assert service.resolve_drift("missing") is False

    def test_resolve_scoped_to_shop(self, service, pro_shop, make_shop, add_drift, now):
        other = make_shop("other-store.myshopify.com", plan="pro")
        drift = add_drift(other, detected_at=now)
        assert service.resolve_drift(drift.id, shop_domain=pro_shop.shop_domain) is False
        assert service.resolve_drift(drift.id, shop_domain=other.shop_domain) is True

    def test_invalid_resolved_by(self, service, pro_shop, add_drift, now):
        drift = add_drift(pro_shop, detected_at=now)
        with pytest.raises(ValueError):
            service.resolve_drift(drift.id, "robot")

    def test_resolve_product_drifts(self, service, pro_shop, add_drift, db_session, now):
        add_drift(pro_shop, product_id="p1", detected_at=now)
        add_drift(pro_shop, product_id="p1", kind="tags_removed", detected_at=now)
        add_drift(pro_shop, product_id="p2", detected_at=now)

        assert service.resolve_product_drifts(pro_shop.shop_domain, "p1", now=now) == 2

        remaining = service.get_unresolved_drifts(pro_shop.shop_domain)
        assert [d.product_id for d in remaining] == ["p2"]
        resolved = db_session.query(ComplianceDrift).filter(ComplianceDrift.product_id == "p1").all()
        assert {d.resolved_by for d in resolved} == {"auto"}

    def test_resolve_product_drifts_unknown_shop(self, service):
        assert service.resolve_product_drifts("ghost.myshopify.com", "p1") == 0

"""
Tests for Shopify webhook payload parsing.
"""

from datetime import datetime, timezone

import pytest

from catalogwatch.integrations.shopify import (
    parse_subscription_payload,
    product_gid_from_payload,
    snapshot_from_webhook_payload,
)
from catalogwatch.integrations.shopify.subscription_payload import detect_plan


class TestProductPayload:

    def test_gid_from_graphql_id(self):
        payload = {"id": 1, "admin_graphql_api_id": "gid://shopify/Product/788032119674292922"}
        assert product_gid_from_payload(payload) == "gid://shopify/Product/788032119674292922"

    def test_gid_from_numeric_id(self):
        assert product_gid_from_payload({"id": 42}) == "gid://shopify/Product/42"

    def test_gid_missing(self):
        with pytest.raises(ValueError):
            product_gid_from_payload({"title": "No id"})

    def test_snapshot(self):
        snapshot = snapshot_from_webhook_payload({
            "id": 42,
            "title": "Linen Shirt",
            "body_html": "<p>Breathable linen.</p>",
            "tags": "summer, linen, ,sale",
            "images": [
                {"src": "https://cdn.example.com/1.jpg", "alt": "Front"},
                {"src": "https://cdn.example.com/2.jpg", "alt": None},
                {"alt": "No source"},
            ],
        })

        assert snapshot.title == "Linen Shirt"
        assert snapshot.seo_title == "Linen Shirt"
        assert snapshot.description == "<p>Breathable linen.</p>"
        assert snapshot.tags == ["summer", "linen", "sale"]
        assert snapshot.image_count == 2
        assert snapshot.missing_alt_text_count == 1
        assert snapshot.collections == []

    def test_tag_list_accepted(self):
        snapshot = snapshot_from_webhook_payload({"tags": ["a", " b ", ""]})
        assert snapshot.tags == ["a", "b"]

    def test_empty_payload(self):
        snapshot = snapshot_from_webhook_payload({})
        assert snapshot.title is None
        assert snapshot.images == []
        assert snapshot.tags == []


class TestSubscriptionPayload:

    @pytest.mark.parametrize("name,plan", [
        ("CatalogWatch Pro", "pro"),
        ("Starter Monthly", "starter"),
        ("Legacy", "free"),
        (None, "free"),
    ])
    def test_detect_plan(self, name, plan):
        assert detect_plan(name) == plan

    def test_active_subscription(self):
        update = parse_subscription_payload({
            "app_subscription": {
                "admin_graphql_api_id": "gid://shopify/AppSubscription/1029266947",
                "name": "Pro Plan",
                "status": "ACTIVE",
                "current_period_end": "2024-07-15T12:00:00Z",
            }
        })
        assert update.subscription_id == "gid://shopify/AppSubscription/1029266947"
        assert update.plan == "pro"
        assert update.subscription_status == "active"
        assert update.current_period_end == datetime(2024, 7, 15, 12, tzinfo=timezone.utc)
        assert update.is_cancellation is False

    @pytest.mark.parametrize("status,stored", [
        ("CANCELLED", "cancelled"),
        ("EXPIRED", "expired"),
        ("declined", "cancelled"),
    ])
    def test_cancelling_statuses(self, status, stored):
        update = parse_subscription_payload({"app_subscription": {"name": "Pro", "status": status}})
        assert update.is_cancellation is True
        assert update.subscription_status == stored

    def test_accepted_maps_to_active(self):
        update = parse_subscription_payload({"app_subscription": {"name": "Starter", "status": "ACCEPTED"}})
        assert update.subscription_status == "active"
        assert update.plan == "starter"

    def test_bad_date_ignored(self):
        update = parse_subscription_payload({
            "app_subscription": {"name": "Pro", "status": "ACTIVE", "current_period_end": "next tuesday"}
        })
        assert update.current_period_end is None

    def test_missing_body(self):
        update = parse_subscription_payload({})
        assert update.plan == "free"
        assert update.subscription_status is None
        assert update.is_cancellation is False

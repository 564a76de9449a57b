"""
Tests for email senders and post-run notification dispatch.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from catalogwatch.models.catalog_report import CatalogReport
from catalogwatch.services.audit_scheduler import ScheduledAuditResult
from catalogwatch.services.email_sender import (
    EmailMessage,
    MockEmailSender,
    SendGridEmailSender,
    get_email_sender,
)
from catalogwatch.services.notification_service import NotificationDispatcher

APP_URL = "https://app.example.com"


def _result(**overrides):
    values = dict(
        scheduled_audit_id="audit-1",
        shop_domain="pro-store.myshopify.com",
        success=True,
        products_audited=12,
        drifts_detected=3,
        report_id=None,
        email_on_drift=True,
        email_only_if_issues=True,
        notification_email="owner@example.com",
    )
    values.update(overrides)
    return ScheduledAuditResult(**values)


@pytest.fixture
def sender():
    return MockEmailSender()


@pytest.fixture
def dispatcher(db_session, sender):
    return NotificationDispatcher(db_session, sender=sender, app_url=APP_URL + "/")


@pytest.fixture
def report(db_session, pro_shop, now):
    report = CatalogReport(
        shop_id=pro_shop.id,
        period_start=now,
        period_end=now,
        total_products=10,
        ready_products=7,
        incomplete_products=3,
        average_score=71.6,
        suggestions=["Fix <images> first"],
        drifts_detected=3,
        drifts_unresolved=2,
        created_at=now,
    )
    db_session.add(report)
    db_session.commit()
    return report


# =============================================================================
# Senders
# =============================================================================


class TestSendGridSender:

    def test_payload(self):
        sender = SendGridEmailSender(api_key="key", from_email="from@example.com", from_name="Alerts")
        payload = sender.build_payload(EmailMessage(
            to_email="to@example.com",
            subject="Hello",
            html_body="<p>Hi</p>",
            text_body="Hi",
            tags=["drift-alert"],
        ))
        assert payload["personalizations"] == [{"to": [{"email": "to@example.com"}]}]
        assert payload["from"] == {"email": "from@example.com", "name": "Alerts"}
        assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]
        assert payload["categories"] == ["drift-alert"]

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("SENDGRID_API_KEY", raising=False)
        sender = SendGridEmailSender()
        assert await sender.send(EmailMessage("to@example.com", "s", "<p>b</p>")) is False

    @pytest.mark.asyncio
    async def test_accepted(self):
        sender = SendGridEmailSender(api_key="key")
        post = AsyncMock(return_value=httpx.Response(202))
        with patch.object(httpx.AsyncClient, "post", post):
            assert await sender.send(EmailMessage("to@example.com", "s", "<p>b</p>")) is True
        assert post.await_args.kwargs["headers"] == {"Authorization": "Bearer key"}

    @pytest.mark.asyncio
    async def test_rejected(self):
        sender = SendGridEmailSender(api_key="key")
        with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=httpx.Response(401, text="bad key"))):
            assert await sender.send(EmailMessage("to@example.com", "s", "<p>b</p>")) is False

    @pytest.mark.asyncio
    async def test_transport_error(self):
        sender = SendGridEmailSender(api_key="key")
        with patch.object(httpx.AsyncClient, "post", AsyncMock(side_effect=httpx.ConnectError("down"))):
            assert await sender.send(EmailMessage("to@example.com", "s", "<p>b</p>")) is False

    def test_provider_selection(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_EMAIL_PROVIDER", "mock")
        assert isinstance(get_email_sender(), MockEmailSender)
        monkeypatch.setenv("NOTIFICATION_EMAIL_PROVIDER", "sendgrid")
        assert isinstance(get_email_sender(), SendGridEmailSender)


# =============================================================================
# Dispatch
# =============================================================================


class TestDriftAlerts:

    @pytest.mark.asyncio
    async def test_sent_when_drifts_detected(self, dispatcher, sender):
        assert await dispatcher.send_drift_alert_email(_result()) is True

        message = sender.sent_messages[0]
        assert message.to_email == "owner@example.com"
        assert message.subject == "[CatalogWatch] 3 compliance drifts detected"
        assert "https://app.example.com/monitoring?shop=pro-store.myshopify.com" in message.html_body

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"drifts_detected": 0},
        {"success": False},
        {"email_on_drift": False},
        {"notification_email": None},
    ])
    async def test_skipped(self, dispatcher, sender, overrides):
        assert await dispatcher.send_drift_alert_email(_result(**overrides)) is False
        assert sender.sent_messages == []

    @pytest.mark.asyncio
    async def test_singular_subject(self, dispatcher, sender):
        await dispatcher.send_drift_alert_email(_result(drifts_detected=1))
        assert sender.sent_messages[0].subject == "[CatalogWatch] 1 compliance drift detected"


class TestReportEmails:

    @pytest.mark.asyncio
    async def test_sent_with_report_details(self, dispatcher, sender, report):
        assert await dispatcher.send_report_email(_result(report_id=report.id)) is True

        message = sender.sent_messages[0]
        assert message.subject == "[CatalogWatch] Your Catalog Health Report"
        assert "Average score: 72%" in message.html_body
        assert "Fix &lt;images&gt; first" in message.html_body
        assert f"https://app.example.com/reports/{report.id}" in message.html_body

    @pytest.mark.asyncio
    async def test_only_if_issues(self, dispatcher, sender, report):
        result = _result(report_id=report.id, drifts_detected=0)
        assert await dispatcher.send_report_email(result) is False

        result.email_only_if_issues = False
        assert await dispatcher.send_report_email(result) is True

    @pytest.mark.asyncio
    async def test_missing_report(self, dispatcher, sender):
        assert await dispatcher.send_report_email(_result(report_id="missing")) is False
        assert sender.sent_messages == []


class TestDispatch:

    @pytest.mark.asyncio
    async def test_counts(self, dispatcher, sender, report):
        results = [
            _result(report_id=report.id),
            _result(shop_domain="quiet.myshopify.com", drifts_detected=0),
            _result(success=False, error="boom"),
        ]
        stats = await dispatcher.dispatch(results)
        assert stats == {"drift_alerts_sent": 1, "reports_sent": 1, "failures": 0}
        assert len(sender.sent_messages) == 2

    @pytest.mark.asyncio
    async def test_sender_errors_are_counted_not_raised(self, db_session):
        failing = MockEmailSender()
        failing.send = AsyncMock(side_effect=RuntimeError("smtp down"))
        dispatcher = NotificationDispatcher(db_session, sender=failing, app_url=APP_URL)

        stats = await dispatcher.dispatch([_result()])

        assert stats == {"drift_alerts_sent": 0, "reports_sent": 0, "failures": 1}

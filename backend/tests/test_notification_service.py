"""
Tests for SendGrid email delivery.
"""
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from assettracer.core.errors import NotificationError
from assettracer.services.notification_service import NotificationService


@pytest.fixture
def sendgrid():
    with patch("assettracer.services.notification_service.SendGridAPIClient") as client_cls:
        client_cls.return_value.send.return_value = SimpleNamespace(status_code=202)
        yield client_cls


def _sent_message(sendgrid):
    return sendgrid.return_value.send.call_args.args[0].get()


class TestSend:
    @pytest.mark.asyncio
    async def test_accepted(self, sendgrid):
        service = NotificationService(api_key="SG.test")

        await service.send_test_email("owner@acme.example.com")

        sendgrid.assert_called_once_with("SG.test")
        message = _sent_message(sendgrid)
        assert message["personalizations"][0]["to"][0]["email"] == "owner@acme.example.com"

    @pytest.mark.asyncio
    async def test_provider_status_error(self, sendgrid):
        sendgrid.return_value.send.return_value = SimpleNamespace(status_code=500)

        with pytest.raises(NotificationError):
            await NotificationService(api_key="SG.test").send_test_email("owner@acme.example.com")

    @pytest.mark.asyncio
    async def test_client_exception(self, sendgrid):
        sendgrid.return_value.send.side_effect = RuntimeError("connection reset")

        with pytest.raises(NotificationError) as exc_info:
            await NotificationService(api_key="SG.test").send_test_email("owner@acme.example.com")
        assert "connection reset" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        from assettracer.core.config import settings
        monkeypatch.setattr(settings, "sendgrid_api_key", None)

        with pytest.raises(NotificationError):
            await NotificationService().send_test_email("owner@acme.example.com")


class TestTemplates:
    @pytest.mark.asyncio
    async def test_reminder_attaches_pdf(self, sendgrid):
        await NotificationService(api_key="SG.test").send_invoice_reminder(
            to_email="jane@buyer.example.com",
            client_name="Jane",
            organization_name="Acme Rentals",
            invoice_number="INV-1",
            balance=220,
            currency="USD",
            due_date=date(2026, 1, 1),
            days_overdue=3,
            pdf=b"%PDF-1.4 test",
        )

        message = _sent_message(sendgrid)
        assert message["subject"] == "Payment reminder: invoice INV-1 is overdue"
        attachment = message["attachments"][0]
        assert attachment["filename"] == "INV-1.pdf"
        assert attachment["type"] == "application/pdf"
        assert "USD 220.00" in message["content"][0]["value"]

    @pytest.mark.asyncio
    async def test_invitation_escapes_names(self, sendgrid):
        await NotificationService(api_key="SG.test").send_team_invitation(
            to_email="new@acme.example.com",
            organization_name="Acme <Rentals>",
            inviter_name="Olivia",
            invite_link="https://app.test/accept-invite?token=abc&x=1",
            role="member",
        )

        body = _sent_message(sendgrid)["content"][0]["value"]
        assert "Acme &lt;Rentals&gt;" in body
        assert "token=abc&amp;x=1" in body
        assert "attachments" not in _sent_message(sendgrid)

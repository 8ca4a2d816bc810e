"""
Tests for the DPO and Stripe payment adapters and the DPO webhook.
"""
import hashlib
import hmac
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe

from assettracer.core.config import settings
from assettracer.core.errors import InvalidArgument, PaymentGatewayError
from assettracer.schemas.payments import (
    PaymentGatewayName,
    PaymentStatusValue,
    PaymentVerification,
    RefundRequest,
    VerificationStatus,
)
from assettracer.services.payment_gateway import (
    DPOGateway,
    build_xml,
    dpo_gateway,
    normalize_dpo_approval,
    normalize_payment_status,
    parse_xml,
    stripe_gateway,
)

from conftest import ORG_ID


SECRET = "dpo-webhook-secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _gateway(**kwargs):
    kwargs.setdefault("company_token", "company-token")
    return DPOGateway(**kwargs)


class TestXml:
    def test_build_skips_none_and_nests(self):
        body = build_xml({"Request": "createToken", "Transaction": {"PaymentAmount": "10.00"}, "customerPhone": None})
        text = body.decode()
        assert text.startswith("<?xml")
        assert "<Transaction><PaymentAmount>10.00</PaymentAmount></Transaction>" in text
        assert "customerPhone" not in text

    def test_parse_flattens_leaves(self):
        parsed = parse_xml("<API3G><Result>000</Result><TransToken> ABC </TransToken></API3G>")
        assert parsed == {"Result": "000", "TransToken": "ABC"}

    def test_parse_error(self):
        with pytest.raises(PaymentGatewayError):
            parse_xml("<API3G><Result>")


class TestStatusMapping:
    @pytest.mark.parametrize("code,expected", [
        ("Y", VerificationStatus.PAID),
        ("a", VerificationStatus.PAID),
        ("N", VerificationStatus.FAILED),
        ("C", VerificationStatus.CANCELLED),
        ("?", VerificationStatus.PENDING),
        (None, VerificationStatus.PENDING),
    ])
    def test_dpo_approval(self, code, expected):
        assert normalize_dpo_approval(code) == expected

    def test_stripe_status(self):
        assert normalize_payment_status(PaymentGatewayName.STRIPE, "succeeded") == PaymentStatusValue.SUCCESS
        assert normalize_payment_status(PaymentGatewayName.STRIPE, "requires_action") == PaymentStatusValue.PENDING
        assert normalize_payment_status(PaymentGatewayName.STRIPE, "mystery") == PaymentStatusValue.PENDING

    def test_dpo_status(self):
        assert normalize_payment_status(PaymentGatewayName.DPO, "PAID") == PaymentStatusValue.SUCCESS
        assert normalize_payment_status(PaymentGatewayName.DPO, "D") == PaymentStatusValue.FAILED


class TestCreatePaymentToken:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"amount": 0},
        {"currency": "US"},
        {"reference": "  "},
        {"customer_email": "nope"},
        {"redirect_url": "ftp://example.com"},
    ])
    async def test_invalid_input(self, overrides):
        args = {
            "amount": 100.0,
            "currency": "USD",
            "reference": "INV-1",
            "customer_email": "jane@buyer.example.com",
            "redirect_url": "https://app.test/paid",
        }
        args.update(overrides)
        gateway = _gateway()
        gateway._post = AsyncMock()

        with pytest.raises(InvalidArgument):
            await gateway.create_payment_token(**args)
        gateway._post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success(self):
        gateway = _gateway(api_url="https://dpo.test/")
        gateway._post = AsyncMock(return_value={"Result": "000", "TransToken": "TOKEN-1"})

        token = await gateway.create_payment_token(
            amount=99.5, currency="usd", reference="INV-1",
            customer_email="jane@buyer.example.com", redirect_url="https://app.test/paid",
        )

        assert token.token == "TOKEN-1"
        assert token.payment_url == "https://dpo.test/payv2.php?ID=TOKEN-1"
        url, body = gateway._post.await_args.args
        assert url == "https://dpo.test/payv2.php?ID=createToken"
        assert b"<PaymentAmount>99.50</PaymentAmount>" in body
        assert b"<PaymentCurrency>USD</PaymentCurrency>" in body

    @pytest.mark.asyncio
    async def test_provider_rejection(self):
        gateway = _gateway()
        gateway._post = AsyncMock(return_value={"Result": "801", "ResultExplanation": "Request missing company token"})

        with pytest.raises(PaymentGatewayError) as exc_info:
            await gateway.create_payment_token(
                amount=10, currency="USD", reference="INV-1",
                customer_email="jane@buyer.example.com", redirect_url="https://app.test/paid",
            )
        assert exc_info.value.provider_code == "801"

    @pytest.mark.asyncio
    async def test_missing_company_token(self, monkeypatch):
        monkeypatch.setattr(settings, "dpo_company_token", None)
        gateway = DPOGateway()

        with pytest.raises(PaymentGatewayError):
            await gateway.create_payment_token(
                amount=10, currency="USD", reference="INV-1",
                customer_email="jane@buyer.example.com", redirect_url="https://app.test/paid",
            )


class TestVerifyPaymentToken:
    @pytest.mark.asyncio
    async def test_paid(self):
        gateway = _gateway()
        gateway._post = AsyncMock(return_value={
            "Result": "000",
            "TransactionApproval": "Y",
            "TransactionAmount": "220.00",
            "TransactionCurrency": "USD",
            "TransactionRef": "R-77",
            "CompanyRef": "INV-1",
        })

        verification = await gateway.verify_payment_token("TOKEN-1")

        assert verification.is_paid
        assert verification.amount == 220.0
        assert verification.transaction_id == "R-77"
        assert gateway.to_payment_status(verification).status == PaymentStatusValue.SUCCESS

    @pytest.mark.asyncio
    async def test_not_paid_yet(self):
        gateway = _gateway()
        gateway._post = AsyncMock(return_value={"Result": "000", "TransactionAmount": "abc"})

        verification = await gateway.verify_payment_token("TOKEN-1")

        assert verification.status == VerificationStatus.PENDING
        assert verification.amount == 0.0

    @pytest.mark.asyncio
    async def test_empty_token(self):
        with pytest.raises(InvalidArgument):
            await _gateway().verify_payment_token(" ")


class TestWebhookSignature:
    def test_valid_and_invalid(self):
        gateway = _gateway(webhook_secret=SECRET)
        body = b'{"TransactionToken": "T"}'
        assert gateway.verify_webhook_signature(body, _sign(body))
        assert not gateway.verify_webhook_signature(body, _sign(body, "other"))
        assert not gateway.verify_webhook_signature(body, None)

    def test_no_secret_skips_check(self, monkeypatch):
        monkeypatch.setattr(settings, "dpo_webhook_secret", None)
        assert DPOGateway().verify_webhook_signature(b"{}", None) is True


class TestStripeGateway:
    def test_refund(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
        refund = SimpleNamespace(id="re_1", status="succeeded", amount=1250)

        with patch.object(stripe.Refund, "create", MagicMock(return_value=refund)) as create:
            result = stripe_gateway.refund(RefundRequest(transaction_id="pi_1", amount=12.5, reason="damaged"))

        assert result.success is True
        assert result.amount == 12.5
        create.assert_called_once_with(payment_intent="pi_1", amount=1250, metadata={"reason": "damaged"})

    def test_refund_failure(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")

        with patch.object(stripe.Refund, "create", MagicMock(side_effect=stripe.error.StripeError("declined"))):
            result = stripe_gateway.refund(RefundRequest(transaction_id="pi_1", amount=5))

        assert result.success is False
        assert "declined" in result.error

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", None)
        with pytest.raises(PaymentGatewayError):
            stripe_gateway.get_payment_status("pi_1")


class TestDpoWebhook:
    URL = "/api/v1/payments/dpo/webhook"

    @pytest.fixture
    def secret(self, monkeypatch):
        monkeypatch.setattr(dpo_gateway, "_webhook_secret", SECRET)

    @pytest.fixture
    def invoice(self, fake_db):
        return fake_db.seed(
            "invoices", organization_id=ORG_ID, client_id="client-1", invoice_number="INV-202601-AAAAAA",
            issue_date="2026-01-01", due_date="2026-01-15", status="sent",
            subtotal=200, tax_total=20, total=220, paid_amount=0, balance=220,
            payment_token="TOKEN-1",
        )

    def _post(self, client, payload, signature=None):
        body = json.dumps(payload).encode()
        headers = {"Content-Type": "application/json", "X-DPO-Signature": signature or _sign(body)}
        return client.post(self.URL, content=body, headers=headers)

    def test_not_configured(self, anon_client, monkeypatch):
        monkeypatch.setattr(dpo_gateway, "_webhook_secret", None)
        monkeypatch.setattr(settings, "dpo_webhook_secret", None)
        assert self._post(anon_client, {"TransactionToken": "TOKEN-1"}).status_code == 503

    def test_bad_signature(self, anon_client, secret):
        response = self._post(anon_client, {"TransactionToken": "TOKEN-1"}, signature="0" * 64)
        assert response.status_code == 401

    def test_missing_token(self, anon_client, fake_db, secret):
        assert self._post(anon_client, {"Result": "000"}).status_code == 400

    def test_unknown_token(self, anon_client, fake_db, secret):
        response = self._post(anon_client, {"TransactionToken": "NOPE"})
        assert response.status_code == 200
        assert response.json()["processed"] is False

    def test_paid_marks_invoice(self, anon_client, fake_db, secret, invoice):
        verification = PaymentVerification(token="TOKEN-1", amount=220, status=VerificationStatus.PAID, transaction_id="R-1")

        with patch.object(dpo_gateway, "verify_payment_token", AsyncMock(return_value=verification)):
            response = self._post(anon_client, {"TransactionToken": "TOKEN-1"})

        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": True, "status": "success"}
        stored = fake_db.rows("invoices", ORG_ID)[0]
        assert stored["status"] == "paid"
        assert stored["payment_reference"] == "R-1"

    def test_verification_failure_is_retried(self, anon_client, fake_db, secret, invoice):
        with patch.object(dpo_gateway, "verify_payment_token", AsyncMock(side_effect=PaymentGatewayError("down"))):
            response = self._post(anon_client, {"TransactionToken": "TOKEN-1"})

        assert response.status_code == 502
        assert fake_db.rows("invoices", ORG_ID)[0]["status"] == "sent"

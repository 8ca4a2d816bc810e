"""
Payment Gateway Adapter.

DPO (Direct Pay Online) collects invoice payments through its XML API3G
interface; Stripe handles refunds of card payments. Both report status in
their own vocabulary, normalized here to PaymentStatusValue.
"""
import hashlib
import hmac
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx
import stripe
from pydantic import validate_email
from pydantic_core import PydanticCustomError

from ..core.config import settings
from ..core.errors import InvalidArgument, PaymentGatewayError
from ..schemas.payments import (
    PaymentGatewayName,
    PaymentStatus,
    PaymentStatusValue,
    PaymentToken,
    PaymentVerification,
    RefundRequest,
    RefundResponse,
    VerificationStatus,
)


logger = logging.getLogger(__name__)

DPO_SUCCESS = "000"

# DPO TransactionApproval codes
_DPO_APPROVAL = {
    "Y": VerificationStatus.PAID,
    "A": VerificationStatus.PAID,
    "N": VerificationStatus.FAILED,
    "D": VerificationStatus.FAILED,
    "C": VerificationStatus.CANCELLED,
}

_VERIFICATION_TO_STATUS = {
    VerificationStatus.PAID: PaymentStatusValue.SUCCESS,
    VerificationStatus.PENDING: PaymentStatusValue.PENDING,
    VerificationStatus.FAILED: PaymentStatusValue.FAILED,
    VerificationStatus.CANCELLED: PaymentStatusValue.CANCELLED,
}

# Stripe PaymentIntent and Refund statuses
_STRIPE_STATUS = {
    "succeeded": PaymentStatusValue.SUCCESS,
    "processing": PaymentStatusValue.PROCESSING,
    "requires_payment_method": PaymentStatusValue.PENDING,
    "requires_confirmation": PaymentStatusValue.PENDING,
    "requires_action": PaymentStatusValue.PENDING,
    "requires_capture": PaymentStatusValue.PROCESSING,
    "canceled": PaymentStatusValue.CANCELLED,
    "failed": PaymentStatusValue.FAILED,
    "refunded": PaymentStatusValue.REFUNDED,
}


def normalize_dpo_approval(code: Optional[str]) -> VerificationStatus:
    """Map a TransactionApproval code; anything unrecognized is still pending."""
    return _DPO_APPROVAL.get((code or "").strip().upper(), VerificationStatus.PENDING)


def normalize_payment_status(gateway: PaymentGatewayName, raw_status: Optional[str]) -> PaymentStatusValue:
    if gateway == PaymentGatewayName.DPO:
        try:
            verification = VerificationStatus((raw_status or "").upper())
        except ValueError:
            verification = normalize_dpo_approval(raw_status)
        return _VERIFICATION_TO_STATUS[verification]
    if gateway == PaymentGatewayName.STRIPE:
        return _STRIPE_STATUS.get((raw_status or "").lower(), PaymentStatusValue.PENDING)
    return PaymentStatusValue.PENDING


def build_xml(data: Dict[str, Any], root_tag: str = "API3G") -> bytes:
    """Nested dicts become nested elements; None values are skipped."""
    def append(parent: ET.Element, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            if value is None:
                continue
            child = ET.SubElement(parent, key)
            if isinstance(value, dict):
                append(child, value)
            else:
                child.text = str(value)

    root = ET.Element(root_tag)
    append(root, data)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def parse_xml(text: str) -> Dict[str, str]:
    """Flatten an API3G response into {tag: text} for every leaf element."""
    try:
        root = ET.fromstring(text.strip())
    except ET.ParseError as e:
        raise PaymentGatewayError(f"Unreadable response from DPO: {e}")
    return {el.tag: (el.text or "").strip() for el in root.iter() if len(el) == 0}


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _is_valid_email(email: str) -> bool:
    try:
        validate_email(email or "")
        return True
    except PydanticCustomError:
        return False


class DPOGateway:
    """Client for the DPO API3G XML interface."""

    def __init__(
        self,
        company_token: Optional[str] = None,
        service_type: Optional[str] = None,
        api_url: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self._company_token = company_token
        self._service_type = service_type
        self._api_url = api_url
        self._webhook_secret = webhook_secret
        self.timeout = timeout

    @property
    def company_token(self) -> str:
        token = self._company_token or settings.dpo_company_token
        if not token:
            raise PaymentGatewayError("DPO_COMPANY_TOKEN is not configured", provider_code="NOT_CONFIGURED")
        return token

    @property
    def service_type(self) -> str:
        return self._service_type or settings.dpo_service_type

    @property
    def api_url(self) -> str:
        return (self._api_url or settings.dpo_api_url).rstrip("/")

    @property
    def webhook_secret(self) -> Optional[str]:
        return self._webhook_secret or settings.dpo_webhook_secret

    def payment_url(self, token: str) -> str:
        return f"{self.api_url}/payv2.php?ID={token}"

    async def _post(self, url: str, body: bytes) -> Dict[str, str]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, content=body, headers={"Content-Type": "application/xml"})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"DPO request failed: {url}: {e}")
            raise PaymentGatewayError(f"DPO request failed: {e}")
        return parse_xml(response.text)

    async def create_payment_token(
        self,
        amount: float,
        currency: str,
        reference: str,
        customer_email: str,
        redirect_url: str,
        back_url: Optional[str] = None,
        description: Optional[str] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
    ) -> PaymentToken:
        """
        Create a payment token for a hosted DPO payment page.

        Raises InvalidArgument for bad input and PaymentGatewayError when DPO
        rejects the request (provider_code carries DPO's Result code).
        """
        if not amount or amount <= 0:
            raise InvalidArgument("Invalid amount")
        if not currency or len(currency) != 3:
            raise InvalidArgument("Invalid currency code (must be 3 characters)")
        if not reference or not reference.strip():
            raise InvalidArgument("Reference is required")
        if not _is_valid_email(customer_email):
            raise InvalidArgument("Valid customer email is required")
        if not _is_valid_url(redirect_url):
            raise InvalidArgument("Valid redirect URL is required")

        body = build_xml({
            "CompanyToken": self.company_token,
            "Request": "createToken",
            "Transaction": {
                "PaymentAmount": f"{amount:.2f}",
                "PaymentCurrency": currency.upper(),
                "CompanyRef": reference,
                "RedirectURL": redirect_url,
                "BackURL": back_url or redirect_url,
                "CompanyRefUnique": "0",
                "PTL": "5",
            },
            "Services": {
                "Service": {
                    "ServiceType": self.service_type,
                    "ServiceDescription": description or "Payment",
                    "ServiceDate": datetime.now(timezone.utc).strftime("%Y/%m/%d"),
                },
            },
            "customerName": customer_name,
            "customerEmail": customer_email,
            "customerPhone": customer_phone,
        })

        logger.info(f"DPO createToken: reference={reference}, amount={amount:.2f} {currency.upper()}")
        result = await self._post(f"{self.api_url}/payv2.php?ID=createToken", body)

        if result.get("Result") != DPO_SUCCESS or not result.get("TransToken"):
            raise PaymentGatewayError(
                result.get("ResultExplanation") or "Payment token creation failed",
                provider_code=result.get("Result"),
            )

        token = result["TransToken"]
        return PaymentToken(token=token, payment_url=self.payment_url(token), reference=reference)

    async def verify_payment_token(self, token: str) -> PaymentVerification:
        if not token or not token.strip():
            raise InvalidArgument("Token is required")

        body = build_xml({
            "CompanyToken": self.company_token,
            "Request": "verifyToken",
            "TransactionToken": token,
        })
        result = await self._post(f"{self.api_url}/API/v6/", body)

        if result.get("Result") != DPO_SUCCESS:
            raise PaymentGatewayError(
                result.get("ResultExplanation") or "Payment verification failed",
                provider_code=result.get("Result"),
            )

        try:
            amount = float(result.get("TransactionAmount") or 0)
        except ValueError:
            amount = 0.0

        verification = PaymentVerification(
            token=result.get("TransactionToken") or token,
            reference=result.get("CompanyRef"),
            amount=amount,
            currency=result.get("TransactionCurrency"),
            status=normalize_dpo_approval(result.get("TransactionApproval")),
            status_description=result.get("ResultExplanation"),
            transaction_id=result.get("TransactionRef"),
            customer_name=result.get("CustomerName"),
            customer_email=result.get("CustomerEmail"),
            payment_method=result.get("PaymentMethod"),
            payment_date=result.get("TransactionSettlementDate"),
        )
        logger.info(f"DPO verifyToken: token={token}, status={verification.status.value}")
        return verification

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """
        HMAC-SHA256 hex digest of the raw body, compared in constant time.

        With no webhook secret configured verification is skipped (and logged);
        the payment itself is still confirmed with verify_payment_token.
        """
        secret = self.webhook_secret
        if not secret:
            logger.warning("DPO webhook secret not configured, skipping signature verification")
            return True
        if not signature:
            logger.warning("DPO webhook received without signature")
            return False

        expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(signature.strip().lower(), expected):
            logger.warning("Invalid DPO webhook signature")
            return False
        return True

    def to_payment_status(self, verification: PaymentVerification) -> PaymentStatus:
        return PaymentStatus(
            status=_VERIFICATION_TO_STATUS[verification.status],
            message=verification.status_description,
            transaction_id=verification.transaction_id,
        )


class StripeGateway:
    """Card payment status and refunds through Stripe."""

    def _configure(self) -> None:
        if not settings.stripe_secret_key:
            raise PaymentGatewayError("STRIPE_SECRET_KEY is not configured", provider_code="NOT_CONFIGURED")
        stripe.api_key = settings.stripe_secret_key

    def get_payment_status(self, payment_intent_id: str) -> PaymentStatus:
        self._configure()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.error.StripeError as e:
            raise PaymentGatewayError(f"Stripe error: {e}", provider_code=getattr(e, "code", None))
        return PaymentStatus(
            status=normalize_payment_status(PaymentGatewayName.STRIPE, intent.status),
            transaction_id=intent.id,
        )

    def refund(self, request: RefundRequest) -> RefundResponse:
        """Refund part or all of a payment intent. Amount is in major units."""
        self._configure()
        params: Dict[str, Any] = {
            "payment_intent": request.transaction_id,
            "amount": int(round(request.amount * 100)),
        }
        if request.reason:
            params["metadata"] = {"reason": request.reason}
        try:
            refund = stripe.Refund.create(**params)
        except stripe.error.StripeError as e:
            logger.error(f"Stripe refund failed for {request.transaction_id}: {e}")
            return RefundResponse(success=False, error=str(e))

        logger.info(f"Stripe refund {refund.id} for {request.transaction_id}: {refund.status}")
        return RefundResponse(
            success=refund.status in ("succeeded", "pending"),
            refund_id=refund.id,
            amount=refund.amount / 100,
        )


# Global gateway instances
dpo_gateway = DPOGateway()
stripe_gateway = StripeGateway()

"""
Payment provider callbacks.

DPO notifications are not trusted on their own: after the signature check the
token is re-verified against DPO before an invoice is marked paid.
"""
import json
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Header, HTTPException, Request, status

from ...core.errors import PaymentGatewayError
from ...schemas.invoices import InvoiceStatus
from ...services.billing_service import billing_service
from ...services.payment_gateway import dpo_gateway, parse_xml

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])

TOKEN_FIELDS = ("TransactionToken", "TransToken", "ID", "token")


def parse_webhook_payload(raw: bytes, content_type: Optional[str]) -> Dict[str, str]:
    """DPO posts XML or JSON depending on configuration."""
    text = raw.decode("utf-8", errors="replace").strip()
    if "xml" in (content_type or "") or text.startswith("<"):
        return parse_xml(text)
    try:
        payload = json.loads(text)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload format"
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload format"
        )
    return {key: str(value) for key, value in payload.items() if value is not None}


@router.post("/dpo/webhook")
async def dpo_webhook(
    request: Request,
    x_dpo_signature: Optional[str] = Header(None, alias="X-DPO-Signature"),
):
    if not dpo_gateway.webhook_secret:
        logger.error("DPO webhook received but DPO_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured"
        )

    raw = await request.body()
    if not dpo_gateway.verify_webhook_signature(raw, x_dpo_signature):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature"
        )

    payload = parse_webhook_payload(raw, request.headers.get("content-type"))
    token = next((payload[field] for field in TOKEN_FIELDS if payload.get(field)), None)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing transaction token"
        )

    invoice_row = await billing_service.find_invoice_by_payment_token(token)
    if not invoice_row:
        logger.warning(f"DPO webhook for unknown token {token}")
        return {"received": True, "processed": False, "message": "Unknown transaction token"}

    try:
        verification = await dpo_gateway.verify_payment_token(token)
    except PaymentGatewayError as e:
        # 5xx so DPO retries the notification
        logger.error(f"DPO verification failed for token {token}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment verification failed"
        )

    payment = dpo_gateway.to_payment_status(verification)
    processed = False
    if verification.is_paid and invoice_row.get("status") != InvoiceStatus.PAID.value:
        await billing_service.mark_invoice_paid(
            invoice_row["organization_id"],
            invoice_row["id"],
            verification.amount or float(invoice_row.get("balance") or 0),
            "dpo",
            verification.transaction_id,
        )
        processed = True

    logger.info(
        f"DPO webhook: invoice={invoice_row.get('invoice_number')}, "
        f"status={payment.status.value}, processed={processed}"
    )
    return {"received": True, "processed": processed, "status": payment.status.value}

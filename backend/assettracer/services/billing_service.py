"""
Billing Service - clients, invoices and quotations.

Invoice and quotation creation is governed by monthly quotas. Converting a
quotation creates an invoice and therefore counts against the invoice quota.
"""
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, status

from ..core.tier_limits import QuotaResource
from ..dependencies.tier_check import create_within_quota
from ..schemas.invoices import (
    Client, ClientCreate,
    Invoice, InvoiceCreate, InvoiceStatus,
    LineItemCreate,
    Quotation, QuotationCreate, QuotationStatus,
)
from ..utils.json_encoder import deep_serialize
from .persistence import persistence


logger = logging.getLogger(__name__)


def calculate_line_items(items: List[LineItemCreate]) -> Tuple[List[Dict[str, Any]], Dict[str, float]]:
    """
    Compute per-line amounts and document totals.

    amount = quantity * unit_price, tax_amount = amount * tax_rate / 100,
    total = amount + tax_amount. Values are rounded to cents per line.
    """
    lines = []
    subtotal = 0.0
    tax_total = 0.0
    for item in items:
        amount = round(item.quantity * item.unit_price, 2)
        tax_amount = round(amount * item.tax_rate / 100, 2)
        lines.append({
            **item.model_dump(),
            "amount": amount,
            "tax_amount": tax_amount,
            "total": round(amount + tax_amount, 2),
        })
        subtotal += amount
        tax_total += tax_amount

    totals = {
        "subtotal": round(subtotal, 2),
        "tax_total": round(tax_total, 2),
        "total": round(subtotal + tax_total, 2),
    }
    return lines, totals


def generate_document_number(prefix: str, now: Optional[datetime] = None) -> str:
    """e.g. INV-202601-3FA2C1. The random suffix avoids read-then-increment races."""
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{now:%Y%m}-{uuid.uuid4().hex[:6].upper()}"


class BillingService:
    """Clients, invoices and quotations for an organization."""

    def __init__(self):
        self.db = persistence

    # ================================================================
    # Clients
    # ================================================================

    async def list_clients(self, organization_id: str) -> List[Client]:
        rows = await self.db.list("clients", organization_id, order_by="name", desc=False)
        return [Client(**row) for row in rows]

    async def create_client(self, organization_id: str, client: ClientCreate) -> Client:
        row = await self.db.insert("clients", organization_id, client.model_dump())
        return Client(**row)

    async def delete_client(self, organization_id: str, client_id: str) -> None:
        if not await self.db.delete("clients", organization_id, client_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )

    async def get_client(self, organization_id: str, client_id: str) -> Dict[str, Any]:
        row = await self.db.get("clients", organization_id, client_id)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )
        return row

    # ================================================================
    # Invoices
    # ================================================================

    async def list_invoices(self, organization_id: str, status_filter: Optional[InvoiceStatus] = None) -> List[Invoice]:
        filters = {"status": status_filter.value} if status_filter else None
        rows = await self.db.list("invoices", organization_id, filters=filters)
        return [Invoice(**row) for row in rows]

    async def get_invoice(self, organization_id: str, invoice_id: str) -> Invoice:
        row = await self.db.get("invoices", organization_id, invoice_id)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        items = await self.db.list(
            "invoice_items", organization_id, filters={"invoice_id": invoice_id}, desc=False
        )
        return Invoice(**{**row, "items": items})

    async def create_invoice(self, organization_id: str, data: InvoiceCreate, user_id: str) -> Invoice:
        """Create an invoice within the monthly invoice quota."""
        await self.get_client(organization_id, data.client_id)
        lines, totals = calculate_line_items(data.items)
        record = deep_serialize({
            **data.model_dump(exclude={"items"}),
            **totals,
            "invoice_number": generate_document_number("INV"),
            "status": InvoiceStatus.DRAFT,
            "paid_amount": 0,
            "balance": totals["total"],
            "created_by": user_id,
        })
        return await self._insert_invoice(organization_id, record, lines)

    async def _insert_invoice(self, organization_id: str, record: Dict[str, Any], lines: List[Dict[str, Any]]) -> Invoice:
        async def insert():
            return await self.db.insert("invoices", organization_id, record)

        row = await create_within_quota(organization_id, QuotaResource.MAX_INVOICES_PER_MONTH, insert)
        items = await self.db.insert_many(
            "invoice_items", organization_id,
            [{**line, "invoice_id": row["id"]} for line in lines],
        )
        logger.info(f"Created invoice {row.get('invoice_number')} for organization {organization_id}")
        return Invoice(**{**row, "items": items})

    async def set_payment_token(self, organization_id: str, invoice_id: str, token: str) -> None:
        await self.db.update("invoices", organization_id, invoice_id, {"payment_token": token})

    async def mark_invoice_paid(
        self,
        organization_id: str,
        invoice_id: str,
        amount: float,
        payment_method: str,
        transaction_id: Optional[str] = None,
    ) -> Invoice:
        """Record a payment; the invoice becomes paid once the balance reaches zero."""
        invoice = await self.get_invoice(organization_id, invoice_id)
        paid_amount = round(invoice.paid_amount + amount, 2)
        balance = round(max(invoice.total - paid_amount, 0), 2)
        changes = {
            "paid_amount": paid_amount,
            "balance": balance,
            "payment_method": payment_method,
            "payment_date": datetime.now(timezone.utc).isoformat(),
            "payment_reference": transaction_id,
        }
        if balance == 0:
            changes["status"] = InvoiceStatus.PAID.value

        row = await self.db.update("invoices", organization_id, invoice_id, changes)
        logger.info(f"Recorded payment of {amount} on invoice {invoice.invoice_number} ({payment_method})")
        return Invoice(**{**row, "items": [item.model_dump() for item in invoice.items]})

    async def find_invoice_by_payment_token(self, token: str) -> Optional[Dict[str, Any]]:
        return await self.db.find_unscoped("invoices", "payment_token", token)

    async def list_overdue_invoices(self, organization_id: str, today: Optional[date] = None) -> List[Invoice]:
        """Sent invoices past their due date with a balance remaining."""
        today = today or datetime.now(timezone.utc).date()
        invoices = await self.list_invoices(organization_id, InvoiceStatus.SENT)
        invoices += await self.list_invoices(organization_id, InvoiceStatus.OVERDUE)
        return [inv for inv in invoices if inv.due_date < today and inv.balance > 0]

    # ================================================================
    # Quotations
    # ================================================================

    async def list_quotations(self, organization_id: str) -> List[Quotation]:
        rows = await self.db.list("quotations", organization_id)
        return [Quotation(**row) for row in rows]

    async def get_quotation(self, organization_id: str, quotation_id: str) -> Quotation:
        row = await self.db.get("quotations", organization_id, quotation_id)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Quotation not found"
            )
        items = await self.db.list(
            "quotation_items", organization_id, filters={"quotation_id": quotation_id}, desc=False
        )
        return Quotation(**{**row, "items": items})

    async def create_quotation(self, organization_id: str, data: QuotationCreate, user_id: str) -> Quotation:
        """Create a quotation within the monthly quotation quota."""
        await self.get_client(organization_id, data.client_id)
        lines, totals = calculate_line_items(data.items)
        record = deep_serialize({
            **data.model_dump(exclude={"items"}),
            **totals,
            "quotation_number": generate_document_number("QUO"),
            "status": QuotationStatus.DRAFT,
            "created_by": user_id,
        })

        async def insert():
            return await self.db.insert("quotations", organization_id, record)

        row = await create_within_quota(organization_id, QuotaResource.MAX_QUOTATIONS_PER_MONTH, insert)
        items = await self.db.insert_many(
            "quotation_items", organization_id,
            [{**line, "quotation_id": row["id"]} for line in lines],
        )
        return Quotation(**{**row, "items": items})

    async def convert_to_invoice(
        self,
        organization_id: str,
        quotation_id: str,
        user_id: str,
        due_date: Optional[date] = None,
    ) -> Invoice:
        """Create an invoice from a quotation; counts against the invoice quota."""
        quotation = await self.get_quotation(organization_id, quotation_id)
        if quotation.status == QuotationStatus.CONVERTED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Quotation has already been converted to an invoice"
            )

        issue_date = datetime.now(timezone.utc).date()
        lines = [item.model_dump() for item in quotation.items]
        record = deep_serialize({
            "client_id": quotation.client_id,
            "subject": quotation.subject,
            "issue_date": issue_date,
            "due_date": due_date or issue_date + timedelta(days=30),
            "currency": quotation.currency,
            "notes": quotation.notes,
            "terms": quotation.terms,
            "subtotal": quotation.subtotal,
            "tax_total": quotation.tax_total,
            "total": quotation.total,
            "paid_amount": 0,
            "balance": quotation.total,
            "invoice_number": generate_document_number("INV"),
            "status": InvoiceStatus.DRAFT,
            "quotation_id": quotation.id,
            "created_by": user_id,
        })
        invoice = await self._insert_invoice(organization_id, record, lines)
        await self.db.update("quotations", organization_id, quotation_id, {
            "status": QuotationStatus.CONVERTED.value,
            "converted_invoice_id": invoice.id,
        })
        return invoice


# Global billing service instance
billing_service = BillingService()

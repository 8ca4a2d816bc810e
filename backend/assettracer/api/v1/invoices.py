"""
Client, invoice and quotation API endpoints.

Invoice and quotation creation count against monthly quotas; PDF export and
online payment links are plan features.
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...core.config import settings
from ...core.dependencies import get_current_organization
from ...core.tier_limits import Feature
from ...dependencies.tier_check import FeatureGate
from ...schemas.auth import OrganizationContext
from ...schemas.invoices import (
    Client, ClientCreate,
    ConvertQuotationRequest,
    Invoice, InvoiceCreate, InvoiceStatus,
    MarkPaidRequest,
    PaymentLinkRequest, PaymentLinkResponse,
    PaymentVerifyRequest, PaymentVerifyResponse,
    Quotation, QuotationCreate,
)
from ...services.billing_service import billing_service
from ...services.document_renderer import document_renderer
from ...services.payment_gateway import dpo_gateway
from ...services.persistence import persistence
from ...utils.responses import pdf_response

clients_router = APIRouter(prefix="/clients", tags=["clients"])
invoices_router = APIRouter(prefix="/invoices", tags=["invoices"])
quotations_router = APIRouter(prefix="/quotations", tags=["quotations"])
logger = logging.getLogger(__name__)


# ================================================================
# Clients
# ================================================================

@clients_router.get("", response_model=List[Client])
async def list_clients(org: OrganizationContext = Depends(get_current_organization)):
    return await billing_service.list_clients(org.organization_id)


@clients_router.post("", response_model=Client, status_code=status.HTTP_201_CREATED)
async def create_client(client: ClientCreate, org: OrganizationContext = Depends(get_current_organization)):
    return await billing_service.create_client(org.organization_id, client)


@clients_router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(client_id: str, org: OrganizationContext = Depends(get_current_organization)):
    await billing_service.delete_client(org.organization_id, client_id)


# ================================================================
# Invoices
# ================================================================

@invoices_router.get("", response_model=List[Invoice])
async def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    org: OrganizationContext = Depends(get_current_organization)
):
    return await billing_service.list_invoices(org.organization_id, status_filter)


@invoices_router.post("", response_model=Invoice, status_code=status.HTTP_201_CREATED)
async def create_invoice(data: InvoiceCreate, org: OrganizationContext = Depends(get_current_organization)):
    """Create an invoice. Rejected with 403 quota_exceeded once maxInvoicesPerMonth is reached."""
    return await billing_service.create_invoice(org.organization_id, data, org.user.id)


@invoices_router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(invoice_id: str, org: OrganizationContext = Depends(get_current_organization)):
    return await billing_service.get_invoice(org.organization_id, invoice_id)


@invoices_router.get("/{invoice_id}/pdf")
async def get_invoice_pdf(
    invoice_id: str,
    org: OrganizationContext = Depends(FeatureGate(Feature.HAS_PDF_EXPORT))
):
    invoice = await billing_service.get_invoice(org.organization_id, invoice_id)
    client = await billing_service.get_client(org.organization_id, invoice.client_id)
    organization = await persistence.get_organization(org.organization_id) or {}
    pdf = document_renderer.render_invoice(invoice, client, organization)
    return pdf_response(pdf, f"{invoice.invoice_number}.pdf")


@invoices_router.post("/{invoice_id}/mark-paid", response_model=Invoice)
async def mark_invoice_paid(
    invoice_id: str,
    request: MarkPaidRequest,
    org: OrganizationContext = Depends(get_current_organization)
):
    return await billing_service.mark_invoice_paid(
        org.organization_id, invoice_id, request.amount, request.payment_method, request.reference
    )


@invoices_router.post("/{invoice_id}/payment-link", response_model=PaymentLinkResponse)
async def create_payment_link(
    invoice_id: str,
    request: PaymentLinkRequest,
    org: OrganizationContext = Depends(FeatureGate(Feature.HAS_PAYMENT_INTEGRATION))
):
    """Create a DPO hosted payment page for the invoice balance."""
    invoice = await billing_service.get_invoice(org.organization_id, invoice_id)
    if invoice.status == InvoiceStatus.PAID or invoice.balance <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invoice is already paid"
        )
    if invoice.status == InvoiceStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invoice is cancelled"
        )

    client = await billing_service.get_client(org.organization_id, invoice.client_id)
    token = await dpo_gateway.create_payment_token(
        amount=invoice.balance,
        currency=invoice.currency,
        reference=invoice.invoice_number,
        customer_email=client["email"],
        customer_name=client.get("name"),
        customer_phone=client.get("phone"),
        redirect_url=request.redirect_url,
        back_url=request.back_url or f"{settings.app_url.rstrip('/')}/invoices/{invoice_id}",
        description=invoice.subject or f"Invoice {invoice.invoice_number}",
    )
    await billing_service.set_payment_token(org.organization_id, invoice_id, token.token)
    logger.info(f"Payment link created for invoice {invoice.invoice_number}")
    return PaymentLinkResponse(token=token.token, payment_url=token.payment_url, reference=token.reference)


@invoices_router.post("/{invoice_id}/payments/verify", response_model=PaymentVerifyResponse)
async def verify_invoice_payment(
    invoice_id: str,
    request: PaymentVerifyRequest,
    org: OrganizationContext = Depends(get_current_organization)
):
    """Confirm a DPO payment after the payer is redirected back."""
    invoice = await billing_service.get_invoice(org.organization_id, invoice_id)
    verification = await dpo_gateway.verify_payment_token(request.token)
    payment = dpo_gateway.to_payment_status(verification)

    if verification.is_paid and invoice.status != InvoiceStatus.PAID:
        invoice = await billing_service.mark_invoice_paid(
            org.organization_id,
            invoice_id,
            verification.amount or invoice.balance,
            "dpo",
            verification.transaction_id,
        )

    return PaymentVerifyResponse(
        status=payment.status.value,
        message=payment.message,
        transaction_id=payment.transaction_id,
        invoice=invoice,
    )


# ================================================================
# Quotations
# ================================================================

@quotations_router.get("", response_model=List[Quotation])
async def list_quotations(org: OrganizationContext = Depends(get_current_organization)):
    return await billing_service.list_quotations(org.organization_id)


@quotations_router.post("", response_model=Quotation, status_code=status.HTTP_201_CREATED)
async def create_quotation(data: QuotationCreate, org: OrganizationContext = Depends(get_current_organization)):
    return await billing_service.create_quotation(org.organization_id, data, org.user.id)


@quotations_router.get("/{quotation_id}", response_model=Quotation)
async def get_quotation(quotation_id: str, org: OrganizationContext = Depends(get_current_organization)):
    return await billing_service.get_quotation(org.organization_id, quotation_id)


@quotations_router.get("/{quotation_id}/pdf")
async def get_quotation_pdf(quotation_id: str, org: OrganizationContext = Depends(get_current_organization)):
    quotation = await billing_service.get_quotation(org.organization_id, quotation_id)
    client = await billing_service.get_client(org.organization_id, quotation.client_id)
    organization = await persistence.get_organization(org.organization_id) or {}
    pdf = document_renderer.render_quotation(quotation, client, organization)
    return pdf_response(pdf, f"{quotation.quotation_number}.pdf")


@quotations_router.post(
    "/{quotation_id}/convert-to-invoice", response_model=Invoice, status_code=status.HTTP_201_CREATED
)
async def convert_quotation(
    quotation_id: str,
    request: Optional[ConvertQuotationRequest] = None,
    org: OrganizationContext = Depends(get_current_organization)
):
    """Counts against maxInvoicesPerMonth like any other new invoice."""
    due_date = request.due_date if request else None
    return await billing_service.convert_to_invoice(org.organization_id, quotation_id, org.user.id, due_date)

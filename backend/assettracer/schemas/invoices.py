"""
Pydantic schemas for clients, invoices and quotations.
"""
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class QuotationStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None


class Client(ClientCreate):
    id: str
    organization_id: str
    created_at: datetime


class LineItemCreate(BaseModel):
    """A line on an invoice or quotation."""
    description: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    tax_rate: float = Field(default=0, ge=0, le=100, description="Percentage")


class LineItem(LineItemCreate):
    amount: float
    tax_amount: float
    total: float


class InvoiceCreate(BaseModel):
    client_id: str
    subject: Optional[str] = None
    issue_date: date
    due_date: date
    currency: str = Field(default="USD", min_length=3, max_length=3)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[LineItemCreate] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_dates(self):
        if self.due_date < self.issue_date:
            raise ValueError("due_date must not be before issue_date")
        return self


class Invoice(BaseModel):
    id: str
    organization_id: str
    client_id: str
    invoice_number: str
    subject: Optional[str] = None
    issue_date: date
    due_date: date
    status: InvoiceStatus = InvoiceStatus.DRAFT
    subtotal: float
    tax_total: float
    total: float
    paid_amount: float = 0
    balance: float
    currency: str = "USD"
    notes: Optional[str] = None
    terms: Optional[str] = None
    payment_method: Optional[str] = None
    payment_date: Optional[datetime] = None
    items: List[LineItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class QuotationCreate(BaseModel):
    client_id: str
    subject: Optional[str] = None
    issue_date: date
    valid_until: date
    currency: str = Field(default="USD", min_length=3, max_length=3)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[LineItemCreate] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_dates(self):
        if self.valid_until < self.issue_date:
            raise ValueError("valid_until must not be before issue_date")
        return self


class Quotation(BaseModel):
    id: str
    organization_id: str
    client_id: str
    quotation_number: str
    subject: Optional[str] = None
    issue_date: date
    valid_until: date
    status: QuotationStatus = QuotationStatus.DRAFT
    subtotal: float
    tax_total: float
    total: float
    currency: str = "USD"
    notes: Optional[str] = None
    terms: Optional[str] = None
    converted_invoice_id: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class ConvertQuotationRequest(BaseModel):
    due_date: Optional[date] = Field(None, description="Defaults to 30 days after conversion")


class PaymentLinkRequest(BaseModel):
    redirect_url: str
    back_url: Optional[str] = None


class PaymentLinkResponse(BaseModel):
    token: str
    payment_url: str
    reference: str


class PaymentVerifyRequest(BaseModel):
    token: str = Field(..., min_length=1)


class MarkPaidRequest(BaseModel):
    """Manual payment record (cash, bank transfer, ...)."""
    amount: float = Field(..., gt=0)
    payment_method: str = Field(default="manual", min_length=1)
    reference: Optional[str] = None


class PaymentVerifyResponse(BaseModel):
    status: str
    message: Optional[str] = None
    transaction_id: Optional[str] = None
    invoice: Invoice

"""
Pydantic schemas shared by the payment gateway adapters.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PaymentGatewayName(str, Enum):
    DPO = "dpo"
    STRIPE = "stripe"
    OTHER = "other"


class PaymentStatusValue(str, Enum):
    """Gateway-neutral payment state."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class VerificationStatus(str, Enum):
    """Outcome of a DPO token verification."""
    PAID = "PAID"
    PENDING = "PENDING"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PaymentStatus(BaseModel):
    status: PaymentStatusValue
    message: Optional[str] = None
    transaction_id: Optional[str] = None


class PaymentMetadata(BaseModel):
    gateway: PaymentGatewayName
    token: Optional[str] = None
    reference: str
    amount: float
    currency: str
    customer_email: str
    created_at: datetime
    updated_at: datetime


class RefundRequest(BaseModel):
    transaction_id: str
    amount: float = Field(..., gt=0)
    reason: Optional[str] = None


class RefundResponse(BaseModel):
    success: bool
    refund_id: Optional[str] = None
    amount: Optional[float] = None
    error: Optional[str] = None


class PaymentToken(BaseModel):
    """A created DPO payment token and where to send the payer."""
    token: str
    payment_url: str
    reference: str


class PaymentVerification(BaseModel):
    token: str
    reference: Optional[str] = None
    amount: float = 0
    currency: Optional[str] = None
    status: VerificationStatus
    status_description: Optional[str] = None
    transaction_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    payment_method: Optional[str] = None
    payment_date: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status == VerificationStatus.PAID

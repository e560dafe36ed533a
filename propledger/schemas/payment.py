"""Pydantic schemas for payment allocation."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from propledger.models.payment import PaymentMethod


class PaymentCreate(BaseModel):
    """Payload for recording a payment against a bill."""

    bill_id: int
    account_id: int
    tenant_id: int | None = None
    amount: Decimal = Field(..., gt=0, description="Payment amount, must be positive")
    payment_date: date | None = Field(None, description="Defaults to today")
    payment_method: PaymentMethod
    transaction_id: str | None = Field(None, max_length=100)
    notes: str | None = None
    actor_id: int | None = None


class PaymentUpdate(BaseModel):
    """Patch for a payment. The bill a payment belongs to cannot change."""

    bill_id: int | None = Field(None, description="Rejected when it differs from the stored bill")
    tenant_id: int | None = None
    amount: Decimal | None = Field(None, gt=0)
    payment_date: date | None = None
    payment_method: PaymentMethod | None = None
    transaction_id: str | None = Field(None, max_length=100)
    notes: str | None = None
    actor_id: int | None = None

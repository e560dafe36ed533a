"""Pydantic schema for recording expenses."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from propledger.models.expense import ExpenseType


class ExpenseCreate(BaseModel):
    """Payload for creating an expense.

    account_id is mandatory; there is no fallback account.
    """

    account_id: int
    category_id: int
    expense_type: ExpenseType
    amount: Decimal = Field(..., gt=0)
    expense_date: date
    user_id: int | None = None
    unit_id: int | None = None
    property_id: int | None = None
    bill_id: int | None = None
    description: str | None = None
    actor_id: int | None = None


class ExpenseUpdate(BaseModel):
    """Patch for an expense. bill_id=None detaches it from its bill."""

    category_id: int | None = None
    expense_type: ExpenseType | None = None
    amount: Decimal | None = Field(None, gt=0)
    expense_date: date | None = None
    user_id: int | None = None
    unit_id: int | None = None
    property_id: int | None = None
    bill_id: int | None = None
    description: str | None = None
    actor_id: int | None = None

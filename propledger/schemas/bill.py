"""Pydantic schemas for bill assembly."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BillCreate(BaseModel):
    """Payload for creating a bill."""

    account_id: int = Field(..., description="Owning account")
    tenant_id: int = Field(..., description="Billed tenant")
    unit_id: int = Field(..., description="Billed unit")
    billing_period_start: date
    billing_period_end: date
    rent_amount: Decimal = Field(..., ge=0, description="Rent for the period")
    total_utility_amount: Decimal | None = Field(
        None,
        ge=0,
        description="Utility share; derived from submeter readings when omitted",
    )
    due_date: date | None = None
    issue_date: date | None = Field(None, description="Defaults to today")
    notes: str | None = None
    actor_id: int | None = Field(None, description="User performing the action")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_period(self) -> "BillCreate":
        if self.billing_period_start > self.billing_period_end:
            raise ValueError("Invalid billing period: start must be <= end")
        return self


class BillUpdate(BaseModel):
    """Patch for an existing bill; unset fields keep their stored values."""

    tenant_id: int | None = None
    unit_id: int | None = None
    billing_period_start: date | None = None
    billing_period_end: date | None = None
    rent_amount: Decimal | None = Field(None, ge=0)
    total_utility_amount: Decimal | None = Field(None, ge=0)
    due_date: date | None = None
    issue_date: date | None = None
    notes: str | None = None
    actor_id: int | None = None

    @model_validator(mode="after")
    def check_period(self) -> "BillUpdate":
        if (
            self.billing_period_start is not None
            and self.billing_period_end is not None
            and self.billing_period_start > self.billing_period_end
        ):
            raise ValueError("Invalid billing period: start must be <= end")
        return self

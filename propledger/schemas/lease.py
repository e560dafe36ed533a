"""Pydantic schemas for lease registration."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class LeaseCreate(BaseModel):
    """Payload for registering a lease."""

    account_id: int
    unit_id: int
    tenant_id: int
    property_id: int | None = None
    lease_start_date: date
    lease_end_date: date | None = None
    move_in_date: date | None = None
    move_out_date: date | None = None
    started_meter_reading: Decimal | None = Field(None, ge=0)
    notes: str | None = None
    actor_id: int | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "LeaseCreate":
        if self.lease_end_date is not None and self.lease_end_date < self.lease_start_date:
            raise ValueError("lease_end_date must not precede lease_start_date")
        return self


class LeaseUpdate(BaseModel):
    """Patch for a lease. Status changes go through terminate_lease."""

    tenant_id: int | None = None
    lease_end_date: date | None = None
    move_in_date: date | None = None
    move_out_date: date | None = None
    started_meter_reading: Decimal | None = Field(None, ge=0)
    notes: str | None = None
    actor_id: int | None = None

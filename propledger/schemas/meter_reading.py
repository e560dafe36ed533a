"""Pydantic schemas for meter readings."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class MeterReadingCreate(BaseModel):
    """Payload for recording a meter or submeter reading.

    meter_id and reading_date are optional here on purpose: the recorder
    re-validates the structural rules itself and reports them as
    ValidationFailureError.
    """

    account_id: int
    meter_id: int | None = None
    submeter_id: int | None = None
    reading_value: Decimal
    reading_date: date | None = None
    consumption: Decimal | None = Field(
        None,
        description="Explicit consumption; derived from the previous reading when omitted",
    )
    entered_by_user_id: int | None = None


class MeterReadingUpdate(BaseModel):
    """Patch for a reading; unset fields keep their stored values."""

    meter_id: int | None = None
    submeter_id: int | None = None
    reading_value: Decimal | None = None
    reading_date: date | None = None
    consumption: Decimal | None = None
    entered_by_user_id: int | None = None

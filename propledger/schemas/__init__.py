"""Pydantic schemas for the typed inputs handed to the services."""

from propledger.schemas.bill import BillCreate, BillUpdate
from propledger.schemas.expense import ExpenseCreate, ExpenseUpdate
from propledger.schemas.lease import LeaseCreate, LeaseUpdate
from propledger.schemas.meter_reading import MeterReadingCreate, MeterReadingUpdate
from propledger.schemas.payment import PaymentCreate, PaymentUpdate

__all__ = [
    "BillCreate",
    "BillUpdate",
    "ExpenseCreate",
    "ExpenseUpdate",
    "LeaseCreate",
    "LeaseUpdate",
    "MeterReadingCreate",
    "MeterReadingUpdate",
    "PaymentCreate",
    "PaymentUpdate",
]

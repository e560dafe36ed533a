"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


def value_enum(enum_cls: type[Enum]) -> SQLEnum:
    """Enum column type persisting member values ("active") rather than names."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from propledger.models.account import Account  # noqa: E402
from propledger.models.audit_log import AuditLog  # noqa: E402
from propledger.models.bill import Bill, PaymentStatus  # noqa: E402
from propledger.models.expense import (  # noqa: E402
    CategoryType,
    Expense,
    ExpenseCategory,
    ExpenseType,
)
from propledger.models.lease import Lease, LeaseStatus  # noqa: E402
from propledger.models.meter import Meter, Submeter, UtilityType  # noqa: E402
from propledger.models.meter_reading import MeterReading  # noqa: E402
from propledger.models.payment import Payment, PaymentMethod  # noqa: E402
from propledger.models.property import Property, Unit, UnitStatus  # noqa: E402
from propledger.models.tenant import Tenant  # noqa: E402
from propledger.models.user import User  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "value_enum",
    "Account",
    "AuditLog",
    "Bill",
    "PaymentStatus",
    "CategoryType",
    "Expense",
    "ExpenseCategory",
    "ExpenseType",
    "Lease",
    "LeaseStatus",
    "Meter",
    "Submeter",
    "UtilityType",
    "MeterReading",
    "Payment",
    "PaymentMethod",
    "Property",
    "Unit",
    "UnitStatus",
    "Tenant",
    "User",
]

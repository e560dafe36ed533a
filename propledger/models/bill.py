"""Bill ORM model: a tenant's periodic bill of rent, utilities and linked charges."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propledger.models import Base, BaseModel, value_enum


class PaymentStatus(str, Enum):
    """Derived payment state of a bill."""

    UNPAID = "unpaid"
    """No payment recorded"""

    PARTIALLY_PAID = "partially_paid"
    """Some but not all of the total paid"""

    PAID = "paid"
    """Payments cover the total amount"""


class Bill(Base, BaseModel):
    """
    Periodic bill for a tenant's unit.

    total_amount always equals rent_amount + total_utility_amount +
    other_charges_amount, where other_charges_amount is the sum of linked
    tenant charge expenses. amount_paid and payment_status are recomputed from
    the bill's live payments on every payment mutation.
    """

    __tablename__ = "bills"

    # Foreign keys
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), nullable=False, index=True)

    # Invoice numbering, sequential per account and issue year
    invoice_no: Mapped[int] = mapped_column(Integer, nullable=False)

    # Billing period
    billing_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    billing_period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Amounts
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_utility_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )
    other_charges_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Sum of linked tenant charge expenses",
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Sum of live payments (derived)",
    )

    # Dates
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Set when the bill becomes paid, cleared when it leaves paid",
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        value_enum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.UNPAID,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    # Relationships
    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="bill",
        foreign_keys="Expense.bill_id",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="bill",
        foreign_keys="Payment.bill_id",
    )

    __table_args__ = (
        Index("idx_bill_unit_period", "unit_id", "billing_period_start", "billing_period_end"),
        Index("idx_bill_account_issue", "account_id", "issue_date"),
    )

    @property
    def full_invoice_no(self) -> str:
        """Display invoice number, e.g. INV-2025-0007."""
        return f"INV-{self.issue_date.year}-{self.invoice_no:04d}"

    def __repr__(self) -> str:
        return (
            f"<Bill(id={self.id}, unit_id={self.unit_id}, tenant_id={self.tenant_id}, "
            f"period={self.billing_period_start}..{self.billing_period_end}, "
            f"total_amount={self.total_amount}, amount_paid={self.amount_paid}, "
            f"payment_status={self.payment_status})>"
        )


__all__ = ["Bill", "PaymentStatus"]

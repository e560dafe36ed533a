"""Payment ORM model for money received against a bill."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propledger.models import Base, BaseModel, value_enum


class PaymentMethod(str, Enum):
    """Accepted payment methods."""

    CASH = "cash"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_PAYMENT = "mobile_payment"
    CHECK = "check"
    ONLINE = "online"


class Payment(Base, BaseModel):
    """Model representing a payment allocated to one bill.

    Many payments reference one bill; the sum of live payments never exceeds
    the bill's total amount.
    """

    __tablename__ = "payments"

    # Foreign keys
    bill_id: Mapped[int] = mapped_column(ForeignKey("bills.id"), nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    tenant_id: Mapped[int | None] = mapped_column(ForeignKey("tenants.id"), nullable=True, index=True)

    # Payment details
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    payment_method: Mapped[PaymentMethod] = mapped_column(value_enum(PaymentMethod), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="External reference, unique among live payments",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    bill: Mapped["Bill"] = relationship(  # noqa: F821
        "Bill",
        back_populates="payments",
        foreign_keys=[bill_id],
    )

    __table_args__ = (Index("idx_payment_bill_live", "bill_id", "is_deleted"),)

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, bill_id={self.bill_id}, amount={self.amount}, "
            f"payment_date={self.payment_date}, is_deleted={self.is_deleted})>"
        )


__all__ = ["Payment", "PaymentMethod"]

"""Expense and ExpenseCategory ORM models."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propledger.models import Base, BaseModel, value_enum


class CategoryType(str, Enum):
    """Who carries the cost of an expense category."""

    TENANT_CHARGEABLE = "tenant_chargeable"
    """Billed to the tenant of the unit"""

    OWNER = "owner"
    """Carried by the property owner"""

    UTILITY = "utility"
    """Property level utility cost"""

    PERSONAL = "personal"
    """Private expense of a user"""


class ExpenseType(str, Enum):
    """Kind of expense record."""

    UTILITY = "utility"
    PERSONAL = "personal"
    TENANT_CHARGE = "tenant_charge"


class ExpenseCategory(Base, BaseModel):
    """Lookup of expense categories; the type decides whether bills pick them up."""

    __tablename__ = "expense_categories"

    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(
        value_enum(CategoryType),
        nullable=False,
        comment="tenant_chargeable categories are linked to tenant bills",
    )

    def __repr__(self) -> str:
        return f"<ExpenseCategory(id={self.id}, name={self.name!r}, type={self.type})>"


class Expense(Base, BaseModel):
    """Model representing a single expense.

    A tenant_charge expense is attributed to at most one bill at a time via
    bill_id. The bill assembler owns that link and moves it when billing
    periods shift. Soft-deleted expenses hold no bill link.
    """

    __tablename__ = "expenses"

    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    unit_id: Mapped[int | None] = mapped_column(ForeignKey("units.id"), nullable=True, index=True)
    property_id: Mapped[int | None] = mapped_column(
        ForeignKey("properties.id"),
        nullable=True,
        index=True,
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("expense_categories.id"),
        nullable=False,
        index=True,
    )
    expense_type: Mapped[ExpenseType] = mapped_column(value_enum(ExpenseType), nullable=False)
    bill_id: Mapped[int | None] = mapped_column(
        ForeignKey("bills.id"),
        nullable=True,
        index=True,
        comment="Bill this tenant charge is attributed to",
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    category: Mapped["ExpenseCategory"] = relationship("ExpenseCategory", foreign_keys=[category_id])
    bill: Mapped["Bill | None"] = relationship(  # noqa: F821
        "Bill",
        back_populates="expenses",
        foreign_keys=[bill_id],
    )

    __table_args__ = (Index("idx_expense_unit_date", "unit_id", "expense_date"),)

    def __repr__(self) -> str:
        return (
            f"<Expense(id={self.id}, expense_type={self.expense_type}, unit_id={self.unit_id}, "
            f"bill_id={self.bill_id}, amount={self.amount}, expense_date={self.expense_date})>"
        )


__all__ = ["CategoryType", "Expense", "ExpenseCategory", "ExpenseType"]

"""Lease ORM model with per-account yearly numbering."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propledger.models import Base, BaseModel, value_enum


class LeaseStatus(str, Enum):
    """Lifecycle status of a lease."""

    ACTIVE = "active"
    TERMINATED = "terminated"


def format_lease_no(year: int, lease_no: int) -> str:
    """Render a lease number for display, e.g. LSE-2025-0001."""
    return f"LSE-{year}-{lease_no:04d}"


class Lease(Base, BaseModel):
    """Model representing a tenant's lease of a unit.

    lease_no is sequential per account and calendar year of lease_start_date.
    At most one lease per unit may be active.
    """

    __tablename__ = "leases"

    # Foreign keys
    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), nullable=False, index=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    property_id: Mapped[int | None] = mapped_column(
        ForeignKey("properties.id"),
        nullable=True,
        index=True,
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)

    lease_no: Mapped[int] = mapped_column(Integer, nullable=False)

    # Dates
    lease_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    lease_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    move_in_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    move_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    started_meter_reading: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 3),
        nullable=True,
        comment="Submeter value when the tenant moved in",
    )
    status: Mapped[LeaseStatus] = mapped_column(
        value_enum(LeaseStatus),
        nullable=False,
        default=LeaseStatus.ACTIVE,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    unit: Mapped["Unit"] = relationship("Unit", foreign_keys=[unit_id])  # noqa: F821
    tenant: Mapped["Tenant"] = relationship("Tenant", foreign_keys=[tenant_id])  # noqa: F821

    __table_args__ = (
        # One active lease per unit
        Index(
            "uq_leases_unit_active",
            "unit_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("idx_lease_account_start", "account_id", "lease_start_date"),
    )

    @property
    def full_lease_no(self) -> str:
        """Display lease number derived from the start year, never stored."""
        return format_lease_no(self.lease_start_date.year, self.lease_no)

    def __repr__(self) -> str:
        return (
            f"<Lease(id={self.id}, lease_no={self.lease_no}, unit_id={self.unit_id}, "
            f"tenant_id={self.tenant_id}, status={self.status})>"
        )


__all__ = ["Lease", "LeaseStatus", "format_lease_no"]

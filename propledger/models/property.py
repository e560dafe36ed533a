"""Property and Unit ORM models for the physical buildings and their rentable units."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propledger.models import Base, BaseModel, value_enum


class UnitStatus(str, Enum):
    """Occupancy status of a unit."""

    OCCUPIED = "occupied"
    """Unit has an active lease"""

    VACANT = "vacant"
    """Unit is available for a new lease"""

    MAINTENANCE = "maintenance"
    """Unit is temporarily out of service"""

    INACTIVE = "inactive"
    """Unit is no longer rented out"""


class Property(Base, BaseModel):
    """Model representing a building owned by an account."""

    __tablename__ = "properties"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)

    units: Mapped[list["Unit"]] = relationship(
        "Unit",
        back_populates="property",
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, account_id={self.account_id}, name={self.name!r})>"


class Unit(Base, BaseModel):
    """Model representing a rentable unit inside a property.

    The status column is maintained as a side effect of the lease lifecycle:
    creating a lease marks the unit occupied, terminating or deleting the last
    active lease marks it vacant.
    """

    __tablename__ = "units"

    property_id: Mapped[int] = mapped_column(
        ForeignKey("properties.id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[UnitStatus] = mapped_column(
        value_enum(UnitStatus),
        nullable=False,
        default=UnitStatus.VACANT,
        comment="Occupancy status: occupied, vacant, maintenance or inactive",
    )
    rent_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Default monthly rent",
    )

    property: Mapped["Property"] = relationship(
        "Property",
        back_populates="units",
        foreign_keys=[property_id],
    )
    submeters: Mapped[list["Submeter"]] = relationship(  # noqa: F821
        "Submeter",
        back_populates="unit",
    )

    __table_args__ = (Index("idx_unit_property_status", "property_id", "status"),)

    def __repr__(self) -> str:
        return (
            f"<Unit(id={self.id}, property_id={self.property_id}, name={self.name!r}, "
            f"status={self.status}, rent_amount={self.rent_amount})>"
        )


__all__ = ["Property", "Unit", "UnitStatus"]

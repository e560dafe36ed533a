"""Utility type, meter and submeter ORM models."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propledger.models import Base, BaseModel


class UtilityType(Base, BaseModel):
    """Kind of metered utility (water, electricity, gas) with its price per unit."""

    __tablename__ = "utility_types"

    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 4),
        nullable=True,
        comment="Price per consumed unit (kWh, m³)",
    )

    def __repr__(self) -> str:
        return f"<UtilityType(id={self.id}, name={self.name!r}, unit_rate={self.unit_rate})>"


class Meter(Base, BaseModel):
    """Main meter installed at a property."""

    __tablename__ = "meters"

    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    property_id: Mapped[int | None] = mapped_column(
        ForeignKey("properties.id"),
        nullable=True,
        index=True,
    )
    utility_type_id: Mapped[int] = mapped_column(
        ForeignKey("utility_types.id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    utility_type: Mapped["UtilityType"] = relationship("UtilityType", foreign_keys=[utility_type_id])
    submeters: Mapped[list["Submeter"]] = relationship("Submeter", back_populates="meter")

    def __repr__(self) -> str:
        return f"<Meter(id={self.id}, name={self.name!r}, utility_type_id={self.utility_type_id})>"


class Submeter(Base, BaseModel):
    """Submeter hanging off a main meter, usually measuring a single unit."""

    __tablename__ = "submeters"

    meter_id: Mapped[int] = mapped_column(ForeignKey("meters.id"), nullable=False, index=True)
    unit_id: Mapped[int | None] = mapped_column(ForeignKey("units.id"), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    meter: Mapped["Meter"] = relationship("Meter", back_populates="submeters", foreign_keys=[meter_id])
    unit: Mapped["Unit | None"] = relationship(  # noqa: F821
        "Unit",
        back_populates="submeters",
        foreign_keys=[unit_id],
    )

    def __repr__(self) -> str:
        return f"<Submeter(id={self.id}, meter_id={self.meter_id}, unit_id={self.unit_id})>"


__all__ = ["UtilityType", "Meter", "Submeter"]

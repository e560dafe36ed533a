"""Meter reading ORM model - sequential counter values per meter/submeter."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propledger.models import Base, BaseModel


class MeterReading(Base, BaseModel):
    """Counter value of a meter (or one of its submeters) on a date.

    Attributes:
        meter_id: Main meter the reading belongs to
        submeter_id: Submeter, when the reading is for a submeter
        reading_value: Counter value, non-decreasing over reading_date
        reading_date: Date the counter was read
        consumption: reading_value minus the previous reading of the same pair
        entered_by_user_id: User who recorded the reading
        is_deleted: Soft delete flag
    """

    __tablename__ = "meter_readings"

    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    meter_id: Mapped[int] = mapped_column(ForeignKey("meters.id"), nullable=False, index=True)
    submeter_id: Mapped[int | None] = mapped_column(
        ForeignKey("submeters.id"),
        nullable=True,
        index=True,
    )
    reading_value: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    reading_date: Mapped[date] = mapped_column(Date, nullable=False)
    consumption: Mapped[Decimal] = mapped_column(
        Numeric(14, 3),
        nullable=False,
        default=Decimal("0"),
    )
    entered_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    meter: Mapped["Meter"] = relationship("Meter", foreign_keys=[meter_id])  # noqa: F821
    submeter: Mapped["Submeter | None"] = relationship(  # noqa: F821
        "Submeter",
        foreign_keys=[submeter_id],
    )

    def __repr__(self) -> str:
        return (
            f"<MeterReading(id={self.id}, meter_id={self.meter_id}, submeter_id={self.submeter_id}, "
            f"reading_date={self.reading_date}, reading_value={self.reading_value}, "
            f"consumption={self.consumption})>"
        )


# One live reading per (meter, submeter-or-none, date)
Index(
    "uq_meter_readings_pair_date",
    MeterReading.meter_id,
    func.coalesce(MeterReading.submeter_id, 0),
    MeterReading.reading_date,
    unique=True,
    sqlite_where=MeterReading.is_deleted == false(),
    postgresql_where=MeterReading.is_deleted == false(),
)

Index(
    "idx_meter_readings_pair_order",
    MeterReading.meter_id,
    MeterReading.submeter_id,
    MeterReading.reading_date,
)


__all__ = ["MeterReading"]

"""Tenant ORM model: the person a unit is leased to and bills are issued for."""

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from propledger.models import Base, BaseModel


class Tenant(Base, BaseModel):
    """Model representing a tenant of an account."""

    __tablename__ = "tenants"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, account_id={self.account_id}, name={self.name!r})>"


__all__ = ["Tenant"]

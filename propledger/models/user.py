"""User ORM model for staff members acting on an account."""

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from propledger.models import Base, BaseModel


class User(Base, BaseModel):
    """Person operating the system (enters readings, records payments)."""

    __tablename__ = "users"

    account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name!r}, is_active={self.is_active})>"


__all__ = ["User"]

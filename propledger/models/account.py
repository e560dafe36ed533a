"""Account ORM model: the tenant of the multi-tenant system (a landlord/agency)."""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from propledger.models import Base, BaseModel


class Account(Base, BaseModel):
    """Model representing a landlord account owning properties, bills and leases.

    Invoice and lease numbering sequences are scoped per account.
    """

    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Account display name",
    )

    __table_args__ = (Index("idx_account_name", "name"),)

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name={self.name!r})>"


__all__ = ["Account"]

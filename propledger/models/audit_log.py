"""Audit trail of ledger mutations."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from propledger.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """One row per bill, payment, expense, reading or lease mutation.

    Written in the same transaction as the mutation, so a rolled back
    operation leaves no audit row behind.
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    """"bill", "payment", "expense", "meter_reading" or "lease"."""

    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    """"create", "update", "delete", "restore" or "terminate"."""

    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    """Acting user; None when the caller supplied no identity."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Snapshot such as {"amount_paid": "500.00", "payment_status": "partially_paid"}."""

    __table_args__ = (Index("idx_audit_entity", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, {self.entity_type}#{self.entity_id} {self.action}, "
            f"actor_id={self.actor_id})>"
        )


__all__ = ["AuditLog"]

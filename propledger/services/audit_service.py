"""Audit service for logging ledger mutations."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from propledger.models.audit_log import AuditLog


def _jsonable(value: Any) -> Any:
    """Convert Decimal/date/Enum values into JSON-safe primitives."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


class AuditService:
    """Service for audit log operations.

    Entries are added to the caller's session, so they commit or roll back
    together with the mutation they describe.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Create audit log entry.

        Args:
            db: Database session
            entity_type: Type of entity ("bill", "payment", etc.)
            entity_id: Primary key of the entity
            action: Action performed ("create", "update", "delete", etc.)
            actor_id: User who performed the action (optional)
            changes: Optional snapshot of changed fields

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=_jsonable(changes) if changes is not None else None,
        )
        db.add(audit)
        return audit


__all__ = ["AuditService"]

"""Transaction scoping, row locking and pagination helpers shared by services."""

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from propledger.config import settings
from propledger.errors import NotFoundError, ValidationFailureError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Scope a unit of work on the session.

    Commits when the block exits normally. Any exception rolls the whole
    unit back and is re-raised, so no partial state becomes visible.

    Example:
        ```python
        with transaction(db):
            db.add(bill)
            link_expenses(bill, expenses)
        ```
    """
    try:
        yield db
        db.commit()
    except Exception as e:
        logger.debug(f"Rolling back transaction: {e}")
        db.rollback()
        raise


def lock_row(db: Session, model: type[ModelT], row_id: int, entity: str | None = None) -> ModelT:
    """Load a row with SELECT ... FOR UPDATE, raising NotFoundError if missing.

    The lock is held until the surrounding transaction ends. SQLite ignores
    FOR UPDATE and serializes writers at the database level instead.
    """
    row = db.execute(
        select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if row is None:
        raise NotFoundError(entity or model.__name__, row_id)
    return row


def get_or_404(db: Session, model: type[ModelT], row_id: int | None, entity: str | None = None) -> ModelT:
    """Fetch a row by primary key or raise NotFoundError."""
    row = db.get(model, row_id) if row_id is not None else None
    if row is None:
        raise NotFoundError(entity or model.__name__, row_id)
    return row


@dataclass
class Page:
    """Paginated query result."""

    results: list[Any] = field(default_factory=list)
    page: int = 1
    limit: int = 10
    total_pages: int = 0
    total_results: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Envelope in the shape the controller layer returns."""
        return {
            "results": self.results,
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
            "totalResults": self.total_results,
        }


def parse_sort(model: type, sort_by: str | None, default: Any) -> Any:
    """Translate "field:desc" into an ORDER BY clause for model."""
    if not sort_by:
        return default
    field_name, _, direction = sort_by.partition(":")
    column = getattr(model, field_name, None)
    if column is None or not hasattr(column, "desc"):
        raise ValidationFailureError(f"Cannot sort by unknown field: {field_name}")
    return column.desc() if direction.lower() == "desc" else column.asc()


def paginate(db: Session, stmt: Select, page: int | None = None, limit: int | None = None) -> Page:
    """Run stmt with LIMIT/OFFSET and count the full result set.

    Args:
        db: Database session
        stmt: Ordered select of ORM entities
        page: 1-based page number (default 1)
        limit: Page size (default from settings, capped at max_page_limit)

    Returns:
        Page envelope with results and totals
    """
    limit = limit if limit and limit > 0 else settings.default_page_limit
    limit = min(limit, settings.max_page_limit)
    page = page if page and page > 0 else 1

    total = db.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    results = db.execute(stmt.limit(limit).offset((page - 1) * limit)).scalars().all()

    return Page(
        results=list(results),
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
        total_results=total,
    )


__all__ = ["transaction", "lock_row", "get_or_404", "Page", "parse_sort", "paginate"]

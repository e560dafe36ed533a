"""Service for recording meter/submeter readings and deriving consumption."""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from propledger.errors import (
    ConsumptionInconsistencyError,
    DuplicateReadingError,
    NotFoundError,
    RegressiveReadingError,
    ValidationFailureError,
)
from propledger.models.meter import Meter, Submeter
from propledger.models.meter_reading import MeterReading
from propledger.models.user import User
from propledger.schemas.meter_reading import MeterReadingCreate, MeterReadingUpdate
from propledger.services.audit_service import AuditService
from propledger.services.db import Page, get_or_404, lock_row, paginate, parse_sort, transaction

logger = logging.getLogger(__name__)

# Fields whose change moves a reading within its meter sequence
CONSUMPTION_FIELDS = ("reading_value", "reading_date", "meter_id", "submeter_id")


def validate_reading_fields(
    meter_id: int | None,
    submeter_id: int | None,
    reading_value: Decimal | None,
    reading_date: date | None,
) -> None:
    """Structural checks shared by create and update.

    Raises:
        ValidationFailureError: On the first violated rule
    """
    if meter_id is None:
        if submeter_id is not None:
            raise ValidationFailureError("submeter_id requires meter_id")
        raise ValidationFailureError("meter_id is required")
    if reading_value is None or reading_value < 0:
        raise ValidationFailureError("reading_value must be greater than or equal to 0")
    if reading_date is None:
        raise ValidationFailureError("reading_date is required")


class MeterReadingService:
    """Service for managing meter readings.

    Readings of one (meter_id, submeter_id) pair form a sequence ordered by
    reading_date, then created_at. Each reading's consumption is its value
    minus the preceding live reading's value.
    """

    def __init__(self, db: Session) -> None:
        """Initialize service with database session.

        Args:
            db: SQLAlchemy session
        """
        self.db = db

    # Sequence lookups

    @staticmethod
    def _pair_clauses(meter_id: int, submeter_id: int | None) -> list:
        submeter_clause = (
            MeterReading.submeter_id.is_(None)
            if submeter_id is None
            else MeterReading.submeter_id == submeter_id
        )
        return [MeterReading.meter_id == meter_id, submeter_clause, MeterReading.is_deleted.is_(False)]

    def find_duplicate(
        self,
        meter_id: int,
        submeter_id: int | None,
        reading_date: date,
        exclude_id: int | None = None,
    ) -> MeterReading | None:
        """Live reading of the pair on reading_date, other than exclude_id."""
        stmt = select(MeterReading).where(
            *self._pair_clauses(meter_id, submeter_id),
            MeterReading.reading_date == reading_date,
        )
        if exclude_id is not None:
            stmt = stmt.where(MeterReading.id != exclude_id)
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def get_previous_reading(
        self,
        meter_id: int,
        submeter_id: int | None,
        before: date,
        exclude_id: int | None = None,
    ) -> MeterReading | None:
        """Most recent live reading of the pair strictly before a date.

        Ties on reading_date are broken by created_at (latest wins).
        """
        stmt = select(MeterReading).where(
            *self._pair_clauses(meter_id, submeter_id),
            MeterReading.reading_date < before,
        )
        if exclude_id is not None:
            stmt = stmt.where(MeterReading.id != exclude_id)
        stmt = stmt.order_by(
            MeterReading.reading_date.desc(),
            MeterReading.created_at.desc(),
            MeterReading.id.desc(),
        ).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_next_reading(
        self,
        meter_id: int,
        submeter_id: int | None,
        after: date,
        exclude_id: int | None = None,
    ) -> MeterReading | None:
        """Earliest live reading of the pair strictly after a date."""
        stmt = select(MeterReading).where(
            *self._pair_clauses(meter_id, submeter_id),
            MeterReading.reading_date > after,
        )
        if exclude_id is not None:
            stmt = stmt.where(MeterReading.id != exclude_id)
        stmt = stmt.order_by(
            MeterReading.reading_date.asc(),
            MeterReading.created_at.asc(),
            MeterReading.id.asc(),
        ).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def _derive_consumption(
        self,
        meter_id: int,
        submeter_id: int | None,
        reading_value: Decimal,
        reading_date: date,
        exclude_id: int | None = None,
    ) -> Decimal:
        """Consumption against the previous reading, rejecting regressions.

        Raises:
            RegressiveReadingError: If the value is below the previous reading
                or above the next one
        """
        previous = self.get_previous_reading(meter_id, submeter_id, reading_date, exclude_id)
        if previous is not None and previous.reading_value > reading_value:
            logger.warning(
                f"Regressive reading rejected for meter {meter_id}/{submeter_id}: "
                f"{reading_value} < {previous.reading_value}"
            )
            raise RegressiveReadingError(
                f"Reading value ({reading_value}) must be greater than or equal to previous reading "
                f"({previous.reading_value}) on {previous.reading_date.isoformat()}"
            )

        following = self.get_next_reading(meter_id, submeter_id, reading_date, exclude_id)
        if following is not None and reading_value > following.reading_value:
            raise RegressiveReadingError(
                f"Reading value ({reading_value}) must not exceed the following reading "
                f"({following.reading_value}) on {following.reading_date.isoformat()}"
            )

        if previous is None:
            return Decimal("0")
        return Decimal(str(reading_value)) - Decimal(str(previous.reading_value))

    def _refresh_following(
        self,
        meter_id: int,
        submeter_id: int | None,
        after: date,
        skip_id: int | None = None,
    ) -> None:
        """Re-derive consumption of the reading that follows a changed position."""
        following = self.get_next_reading(meter_id, submeter_id, after, exclude_id=skip_id)
        if following is None:
            return
        previous = self.get_previous_reading(
            meter_id, submeter_id, following.reading_date, exclude_id=following.id
        )
        following.consumption = (
            Decimal(str(following.reading_value)) - Decimal(str(previous.reading_value))
            if previous is not None
            else Decimal("0")
        )
        self.db.flush()

    def _verify_references(
        self,
        meter_id: int | None,
        submeter_id: int | None,
        user_id: int | None,
    ) -> None:
        if meter_id is not None:
            get_or_404(self.db, Meter, meter_id, "Meter")
        if submeter_id is not None:
            submeter = get_or_404(self.db, Submeter, submeter_id, "Submeter")
            if submeter.meter_id != meter_id:
                raise ValidationFailureError(f"Submeter {submeter_id} does not belong to meter {meter_id}")
        if user_id is not None:
            get_or_404(self.db, User, user_id, "User")

    # Queries

    def get_meter_reading_by_id(self, reading_id: int) -> MeterReading:
        """Get live reading by ID.

        Raises:
            NotFoundError: If reading does not exist or is deleted
        """
        reading = get_or_404(self.db, MeterReading, reading_id, "Meter reading")
        if reading.is_deleted:
            raise NotFoundError("Meter reading", reading_id)
        return reading

    def get_all_meter_readings(
        self,
        meter_id: int,
        submeter_id: int | None = None,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
    ) -> Page:
        """Paginated live readings of a meter (or one of its submeters)."""
        self._verify_references(meter_id, submeter_id, None)
        stmt = select(MeterReading).where(*self._pair_clauses(meter_id, submeter_id))
        stmt = stmt.order_by(
            parse_sort(MeterReading, sort_by, MeterReading.created_at.desc()),
            MeterReading.id.desc(),
        )
        return paginate(self.db, stmt, page, limit)

    def calculate_consumption(
        self,
        meter_id: int,
        submeter_id: int | None,
        start_date: date,
        end_date: date,
    ) -> Decimal:
        """Consumption of a pair over [start_date, end_date].

        Uses the earliest live reading on/after start_date and the latest
        on/before end_date. Returns 0 when either is missing or no reading
        falls inside the range.

        Raises:
            ConsumptionInconsistencyError: If the end reading is below the start reading
        """
        clauses = self._pair_clauses(meter_id, submeter_id)
        start_reading = self.db.execute(
            select(MeterReading)
            .where(*clauses, MeterReading.reading_date >= start_date)
            .order_by(MeterReading.reading_date.asc(), MeterReading.created_at.asc(), MeterReading.id.asc())
            .limit(1)
        ).scalar_one_or_none()
        end_reading = self.db.execute(
            select(MeterReading)
            .where(*clauses, MeterReading.reading_date <= end_date)
            .order_by(MeterReading.reading_date.desc(), MeterReading.created_at.desc(), MeterReading.id.desc())
            .limit(1)
        ).scalar_one_or_none()

        if start_reading is None or end_reading is None:
            return Decimal("0")
        if start_reading.reading_date > end_reading.reading_date:
            return Decimal("0")

        consumption = Decimal(str(end_reading.reading_value)) - Decimal(str(start_reading.reading_value))
        if consumption < 0:
            logger.error(
                f"Negative consumption for meter {meter_id}/{submeter_id} "
                f"between {start_date} and {end_date}: {consumption}"
            )
            raise ConsumptionInconsistencyError(
                f"Negative consumption ({consumption}) for meter {meter_id} between "
                f"{start_date.isoformat()} and {end_date.isoformat()}"
            )
        return consumption

    # Mutations

    def create_meter_reading(self, data: MeterReadingCreate) -> MeterReading:
        """Record a reading.

        Args:
            data: Reading payload; consumption is derived when omitted

        Returns:
            Created MeterReading object

        Raises:
            ValidationFailureError: If structural rules fail
            NotFoundError: If meter, submeter or user is missing
            DuplicateReadingError: If the pair already has a live reading on that date
            RegressiveReadingError: If the value breaks the non-decreasing sequence
        """
        validate_reading_fields(data.meter_id, data.submeter_id, data.reading_value, data.reading_date)
        self._verify_references(data.meter_id, data.submeter_id, data.entered_by_user_id)

        try:
            with transaction(self.db):
                # Serialize writers of the same meter
                lock_row(self.db, Meter, data.meter_id, "Meter")

                if self.find_duplicate(data.meter_id, data.submeter_id, data.reading_date):
                    raise DuplicateReadingError(self._duplicate_message(data.meter_id, data.submeter_id, data.reading_date))

                if data.consumption is not None:
                    consumption = data.consumption
                else:
                    consumption = self._derive_consumption(
                        data.meter_id, data.submeter_id, data.reading_value, data.reading_date
                    )

                reading = MeterReading(
                    account_id=data.account_id,
                    meter_id=data.meter_id,
                    submeter_id=data.submeter_id,
                    reading_value=data.reading_value,
                    reading_date=data.reading_date,
                    consumption=consumption,
                    entered_by_user_id=data.entered_by_user_id,
                    is_deleted=False,
                )
                self.db.add(reading)
                self.db.flush()

                self._refresh_following(data.meter_id, data.submeter_id, data.reading_date, skip_id=reading.id)

                AuditService.log(
                    db=self.db,
                    entity_type="meter_reading",
                    entity_id=reading.id,
                    action="create",
                    actor_id=data.entered_by_user_id,
                    changes={
                        "meter_id": data.meter_id,
                        "submeter_id": data.submeter_id,
                        "reading_date": data.reading_date,
                        "reading_value": data.reading_value,
                        "consumption": consumption,
                    },
                )
        except IntegrityError as e:
            raise DuplicateReadingError(
                self._duplicate_message(data.meter_id, data.submeter_id, data.reading_date)
            ) from e

        logger.info(
            f"Recorded reading {reading.id}: meter {data.meter_id}/{data.submeter_id} "
            f"{data.reading_date} value={data.reading_value} consumption={consumption}"
        )
        return reading

    def update_meter_reading(self, reading_id: int, data: MeterReadingUpdate) -> MeterReading:
        """Patch a reading, re-validating the merged values.

        Consumption is re-derived only when reading_value, reading_date,
        meter_id or submeter_id changed and no explicit consumption was given.

        Raises:
            NotFoundError: If reading (or a newly referenced row) is missing
            ValidationFailureError: If merged values break structural rules
            DuplicateReadingError: If another live reading holds the new date
            RegressiveReadingError: If the new position breaks the sequence
        """
        reading = self.get_meter_reading_by_id(reading_id)
        patch = data.model_dump(exclude_unset=True)

        merged = {
            column: patch[column] if column in patch else getattr(reading, column)
            for column in CONSUMPTION_FIELDS
        }
        validate_reading_fields(
            merged["meter_id"], merged["submeter_id"], merged["reading_value"], merged["reading_date"]
        )
        self._verify_references(
            merged["meter_id"] if "meter_id" in patch or "submeter_id" in patch else None,
            merged["submeter_id"] if "meter_id" in patch or "submeter_id" in patch else None,
            patch.get("entered_by_user_id"),
        )

        position_changed = any(
            column in patch and patch[column] != getattr(reading, column) for column in CONSUMPTION_FIELDS
        )
        old_meter_id, old_submeter_id, old_date = reading.meter_id, reading.submeter_id, reading.reading_date

        try:
            with transaction(self.db):
                # Old and new sequences are both rewritten; lock in id order
                for meter_id in sorted({old_meter_id, merged["meter_id"]}):
                    lock_row(self.db, Meter, meter_id, "Meter")

                if self.find_duplicate(
                    merged["meter_id"], merged["submeter_id"], merged["reading_date"], exclude_id=reading.id
                ):
                    raise DuplicateReadingError(
                        self._duplicate_message(merged["meter_id"], merged["submeter_id"], merged["reading_date"])
                    )

                if patch.get("consumption") is not None:
                    consumption = patch["consumption"]
                elif position_changed:
                    consumption = self._derive_consumption(
                        merged["meter_id"],
                        merged["submeter_id"],
                        merged["reading_value"],
                        merged["reading_date"],
                        exclude_id=reading.id,
                    )
                else:
                    consumption = reading.consumption

                changes = {}
                for column in CONSUMPTION_FIELDS:
                    if merged[column] != getattr(reading, column):
                        changes[column] = {"old": getattr(reading, column), "new": merged[column]}
                        setattr(reading, column, merged[column])
                if "entered_by_user_id" in patch:
                    reading.entered_by_user_id = patch["entered_by_user_id"]
                if consumption != reading.consumption:
                    changes["consumption"] = {"old": reading.consumption, "new": consumption}
                    reading.consumption = consumption
                self.db.flush()

                if position_changed:
                    self._refresh_following(old_meter_id, old_submeter_id, old_date, skip_id=reading.id)
                    self._refresh_following(
                        merged["meter_id"], merged["submeter_id"], merged["reading_date"], skip_id=reading.id
                    )

                AuditService.log(
                    db=self.db,
                    entity_type="meter_reading",
                    entity_id=reading.id,
                    action="update",
                    actor_id=patch.get("entered_by_user_id"),
                    changes=changes,
                )
        except IntegrityError as e:
            raise DuplicateReadingError(
                self._duplicate_message(merged["meter_id"], merged["submeter_id"], merged["reading_date"])
            ) from e

        logger.info(f"Updated reading {reading_id}: {sorted(patch)}")
        return reading

    def delete_meter_reading(self, reading_id: int, actor_id: int | None = None) -> None:
        """Soft-delete a reading; the following reading is re-derived from its new predecessor.

        Raises:
            NotFoundError: If reading does not exist or is already deleted
        """
        reading = self.get_meter_reading_by_id(reading_id)

        with transaction(self.db):
            lock_row(self.db, Meter, reading.meter_id, "Meter")
            reading.is_deleted = True
            self.db.flush()

            self._refresh_following(reading.meter_id, reading.submeter_id, reading.reading_date)

            AuditService.log(
                db=self.db,
                entity_type="meter_reading",
                entity_id=reading.id,
                action="delete",
                actor_id=actor_id,
                changes={
                    "meter_id": reading.meter_id,
                    "submeter_id": reading.submeter_id,
                    "reading_date": reading.reading_date,
                    "reading_value": reading.reading_value,
                },
            )

        logger.info(f"Deleted reading {reading_id}")

    @staticmethod
    def _duplicate_message(meter_id: int, submeter_id: int | None, reading_date: date) -> str:
        target = f"meter {meter_id}" if submeter_id is None else f"meter {meter_id} / submeter {submeter_id}"
        return f"A reading already exists for {target} on {reading_date.isoformat()}"


__all__ = ["MeterReadingService", "validate_reading_fields", "CONSUMPTION_FIELDS"]

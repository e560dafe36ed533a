"""Lease registrar: numbering leases and keeping unit occupancy in step."""

import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from propledger.errors import ActiveLeaseExistsError, InvalidStateError, ValidationFailureError
from propledger.models.account import Account
from propledger.models.lease import Lease, LeaseStatus
from propledger.models.property import Property, Unit, UnitStatus
from propledger.models.tenant import Tenant
from propledger.schemas.lease import LeaseCreate, LeaseUpdate
from propledger.services.audit_service import AuditService
from propledger.services.db import Page, get_or_404, lock_row, paginate, parse_sort, transaction

logger = logging.getLogger(__name__)

LEASE_FILTERS = {"account_id", "unit_id", "tenant_id", "property_id", "status"}


class LeaseService:
    """Service for lease lifecycle operations.

    A unit holds at most one active lease. Creating a lease occupies the
    unit; terminating or deleting the last active lease frees it again.
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def next_lease_no(self, account_id: int, lease_start_date: date) -> int:
        """1 + highest lease number of the account in the start year.

        Must run after the account row is locked. A hard-deleted lease that held the
        highest number frees it for the next lease.
        """
        year = lease_start_date.year
        current = self.db.execute(
            select(func.max(Lease.lease_no)).where(
                Lease.account_id == account_id,
                Lease.lease_start_date >= date(year, 1, 1),
                Lease.lease_start_date <= date(year, 12, 31),
            )
        ).scalar()
        return (current or 0) + 1

    def _active_lease(self, unit_id: int, exclude_id: int | None = None) -> Lease | None:
        stmt = select(Lease).where(Lease.unit_id == unit_id, Lease.status == LeaseStatus.ACTIVE)
        if exclude_id is not None:
            stmt = stmt.where(Lease.id != exclude_id)
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def get_lease_by_id(self, lease_id: int) -> Lease:
        """Get lease by ID; full_lease_no is derived on the instance.

        Raises:
            NotFoundError: If lease does not exist
        """
        return get_or_404(self.db, Lease, lease_id, "Lease")

    def get_all_leases(
        self,
        filters: dict | None = None,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
    ) -> Page:
        """Paginated lease listing (default lease_start_date desc)."""
        filters = filters or {}
        unknown = set(filters) - LEASE_FILTERS
        if unknown:
            raise ValidationFailureError(f"Unsupported lease filters: {', '.join(sorted(unknown))}")

        stmt = select(Lease).filter_by(**filters)
        stmt = stmt.order_by(parse_sort(Lease, sort_by, Lease.lease_start_date.desc()), Lease.id.desc())
        return paginate(self.db, stmt, page, limit)

    def create_lease(self, data: LeaseCreate) -> Lease:
        """Register an active lease and mark its unit occupied.

        Args:
            data: Validated lease payload

        Returns:
            Created Lease with its lease_no assigned

        Raises:
            NotFoundError: If unit, tenant, property or account is missing
            ValidationFailureError: If the unit is not part of the property
            ActiveLeaseExistsError: If the unit already has an active lease
        """
        get_or_404(self.db, Tenant, data.tenant_id, "Tenant")
        if data.property_id is not None:
            get_or_404(self.db, Property, data.property_id, "Property")

        try:
            with transaction(self.db):
                unit = lock_row(self.db, Unit, data.unit_id, "Unit")
                if data.property_id is not None and unit.property_id != data.property_id:
                    raise ValidationFailureError("Unit does not belong to the specified property")

                if self._active_lease(unit.id) is not None:
                    logger.warning(f"Lease rejected: unit {unit.id} already has an active lease")
                    raise ActiveLeaseExistsError(unit.id)

                lock_row(self.db, Account, data.account_id, "Account")
                lease_no = self.next_lease_no(data.account_id, data.lease_start_date)

                lease = Lease(
                    unit_id=unit.id,
                    tenant_id=data.tenant_id,
                    property_id=data.property_id if data.property_id is not None else unit.property_id,
                    account_id=data.account_id,
                    lease_no=lease_no,
                    lease_start_date=data.lease_start_date,
                    lease_end_date=data.lease_end_date,
                    move_in_date=data.move_in_date,
                    move_out_date=data.move_out_date,
                    started_meter_reading=data.started_meter_reading,
                    status=LeaseStatus.ACTIVE,
                    notes=data.notes,
                )
                self.db.add(lease)
                unit.status = UnitStatus.OCCUPIED
                self.db.flush()

                AuditService.log(
                    db=self.db,
                    entity_type="lease",
                    entity_id=lease.id,
                    action="create",
                    actor_id=data.actor_id,
                    changes={
                        "lease_no": lease.full_lease_no,
                        "unit_id": unit.id,
                        "tenant_id": data.tenant_id,
                        "unit_status": UnitStatus.OCCUPIED,
                    },
                )
        except IntegrityError as e:
            # Concurrent creator won the partial unique index
            raise ActiveLeaseExistsError(data.unit_id) from e

        logger.info(f"Created lease {lease.id} ({lease.full_lease_no}) for unit {lease.unit_id}")
        return lease

    def update_lease(self, lease_id: int, data: LeaseUpdate) -> Lease:
        """Patch lease dates, notes, tenant or starting meter reading.

        Raises:
            NotFoundError: If lease or the new tenant is missing
            ValidationFailureError: If merged dates are inconsistent
        """
        patch = data.model_dump(exclude_unset=True)
        actor_id = patch.pop("actor_id", None)
        if "tenant_id" in patch and patch["tenant_id"] is None:
            patch.pop("tenant_id")

        with transaction(self.db):
            lease = lock_row(self.db, Lease, lease_id, "Lease")
            if "tenant_id" in patch:
                get_or_404(self.db, Tenant, patch["tenant_id"], "Tenant")

            end = patch.get("lease_end_date", lease.lease_end_date)
            if end is not None and end < lease.lease_start_date:
                raise ValidationFailureError("lease_end_date must not precede lease_start_date")
            move_in = patch.get("move_in_date", lease.move_in_date)
            move_out = patch.get("move_out_date", lease.move_out_date)
            if move_in is not None and move_out is not None and move_out < move_in:
                raise ValidationFailureError("move_out_date must not precede move_in_date")

            old_values = {column: getattr(lease, column) for column in patch}
            for column, value in patch.items():
                setattr(lease, column, value)

            AuditService.log(
                db=self.db,
                entity_type="lease",
                entity_id=lease.id,
                action="update",
                actor_id=actor_id,
                changes={"old": old_values, "new": patch},
            )

        logger.info(f"Updated lease {lease_id}: {sorted(patch)}")
        return lease

    def terminate_lease(
        self,
        lease_id: int,
        move_out_date: date | None = None,
        actor_id: int | None = None,
    ) -> Lease:
        """Terminate an active lease and vacate its unit.

        Raises:
            NotFoundError: If lease does not exist
            InvalidStateError: If lease is not active
        """
        with transaction(self.db):
            lease = lock_row(self.db, Lease, lease_id, "Lease")
            if lease.status != LeaseStatus.ACTIVE:
                raise InvalidStateError(f"Lease {lease_id} is not active")

            unit = lock_row(self.db, Unit, lease.unit_id, "Unit")
            lease.status = LeaseStatus.TERMINATED
            if move_out_date is not None:
                lease.move_out_date = move_out_date
            unit.status = UnitStatus.VACANT

            AuditService.log(
                db=self.db,
                entity_type="lease",
                entity_id=lease.id,
                action="terminate",
                actor_id=actor_id,
                changes={"status": LeaseStatus.TERMINATED, "unit_status": UnitStatus.VACANT},
            )

        logger.info(f"Terminated lease {lease_id}; unit {lease.unit_id} vacant")
        return lease

    def hard_delete_lease(self, lease_id: int, actor_id: int | None = None) -> None:
        """Physically remove a lease.

        When no other active lease remains on an occupied unit, the unit
        reverts to vacant. Units in maintenance or inactive keep their status.

        Raises:
            NotFoundError: If lease does not exist
        """
        with transaction(self.db):
            lease = lock_row(self.db, Lease, lease_id, "Lease")
            unit = lock_row(self.db, Unit, lease.unit_id, "Unit")
            snapshot = {
                "lease_no": lease.full_lease_no,
                "unit_id": lease.unit_id,
                "tenant_id": lease.tenant_id,
                "status": lease.status,
            }

            self.db.delete(lease)
            self.db.flush()

            if self._active_lease(unit.id) is None and unit.status == UnitStatus.OCCUPIED:
                unit.status = UnitStatus.VACANT
                snapshot["unit_status"] = UnitStatus.VACANT

            AuditService.log(
                db=self.db,
                entity_type="lease",
                entity_id=lease_id,
                action="delete",
                actor_id=actor_id,
                changes=snapshot,
            )

        logger.info(f"Deleted lease {lease_id}; unit {unit.id} is {unit.status.value}")


__all__ = ["LeaseService"]

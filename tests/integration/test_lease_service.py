"""Integration tests for the lease registrar."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from propledger.errors import ActiveLeaseExistsError, InvalidStateError, NotFoundError, ValidationFailureError
from propledger.models import Lease, LeaseStatus, Property, Unit, UnitStatus
from propledger.schemas import LeaseCreate, LeaseUpdate
from propledger.services.lease_service import LeaseService


@pytest.fixture
def lease_data(account, tenant, unit, property_):
    """Lease payload for the seeded unit."""

    def _data(**overrides):
        values = dict(
            account_id=account.id,
            unit_id=unit.id,
            tenant_id=tenant.id,
            property_id=property_.id,
            lease_start_date=date(2025, 3, 1),
            lease_end_date=date(2026, 2, 28),
            started_meter_reading=Decimal("1520.5"),
        )
        values.update(overrides)
        return LeaseCreate(**values)

    return _data


class TestCreateLease:
    """Test lease creation."""

    def test_first_lease_of_year(self, db_session, lease_data, unit):
        """Test numbering starts at 1 and the unit becomes occupied."""
        lease = LeaseService(db_session).create_lease(lease_data())

        assert lease.lease_no == 1
        assert lease.full_lease_no == "LSE-2025-0001"
        assert lease.status == LeaseStatus.ACTIVE
        db_session.refresh(unit)
        assert unit.status == UnitStatus.OCCUPIED

    def test_second_active_lease_rejected(self, db_session, lease_data, other_tenant):
        """Test the single-active-lease rule."""
        service = LeaseService(db_session)
        service.create_lease(lease_data())

        with pytest.raises(ActiveLeaseExistsError):
            service.create_lease(lease_data(tenant_id=other_tenant.id))

        with pytest.raises(InvalidStateError):
            service.create_lease(lease_data(tenant_id=other_tenant.id))

    def test_numbering_gapless_per_account_and_year(
        self, db_session, lease_data, other_unit, other_account, property_
    ):
        """Test lease numbers per (account, start year)."""
        service = LeaseService(db_session)
        first = service.create_lease(lease_data())
        second = service.create_lease(lease_data(unit_id=other_unit.id))

        third_unit = Unit(property_id=property_.id, name="Flat 3", status=UnitStatus.VACANT)
        db_session.add(third_unit)
        db_session.commit()
        next_year = service.create_lease(
            lease_data(unit_id=third_unit.id, lease_start_date=date(2026, 1, 1), lease_end_date=None)
        )

        fourth_unit = Unit(property_id=property_.id, name="Flat 4", status=UnitStatus.VACANT)
        db_session.add(fourth_unit)
        db_session.commit()
        elsewhere = service.create_lease(lease_data(unit_id=fourth_unit.id, account_id=other_account.id))

        assert (first.lease_no, second.lease_no) == (1, 2)
        assert second.full_lease_no == "LSE-2025-0002"
        assert next_year.full_lease_no == "LSE-2026-0001"
        assert elsewhere.lease_no == 1

    def test_terminated_leases_keep_their_numbers(self, db_session, lease_data):
        """Test a new lease after termination continues the sequence."""
        service = LeaseService(db_session)
        first = service.create_lease(lease_data())
        service.terminate_lease(first.id)

        second = service.create_lease(lease_data(lease_start_date=date(2025, 9, 1), lease_end_date=None))

        assert second.lease_no == 2

    def test_hard_deleted_top_number_is_freed(self, db_session, lease_data):
        """Test hard-deleting the highest lease of a year frees its number."""
        service = LeaseService(db_session)
        first = service.create_lease(lease_data())
        service.terminate_lease(first.id)
        second = service.create_lease(lease_data(lease_start_date=date(2025, 9, 1), lease_end_date=None))
        assert second.full_lease_no == "LSE-2025-0002"

        service.hard_delete_lease(second.id)
        third = service.create_lease(lease_data(lease_start_date=date(2025, 10, 1), lease_end_date=None))

        assert third.full_lease_no == "LSE-2025-0002"

    def test_missing_references(self, db_session, lease_data):
        """Test unknown unit, tenant and property."""
        service = LeaseService(db_session)
        with pytest.raises(NotFoundError, match="Unit"):
            service.create_lease(lease_data(unit_id=999))
        with pytest.raises(NotFoundError, match="Tenant"):
            service.create_lease(lease_data(tenant_id=999))
        with pytest.raises(NotFoundError, match="Property"):
            service.create_lease(lease_data(property_id=999))

    def test_unit_must_belong_to_property(self, db_session, lease_data, account):
        """Test a unit of another property is refused."""
        other_property = Property(account_id=account.id, name="Quay 9")
        db_session.add(other_property)
        db_session.commit()

        with pytest.raises(ValidationFailureError):
            LeaseService(db_session).create_lease(lease_data(property_id=other_property.id))

    def test_store_rejects_second_active_lease(self, db_session, lease_data, unit, tenant, account):
        """Test the partial unique index backs the service check."""
        LeaseService(db_session).create_lease(lease_data())

        db_session.add(
            Lease(
                unit_id=unit.id,
                tenant_id=tenant.id,
                account_id=account.id,
                lease_no=99,
                lease_start_date=date(2025, 4, 1),
                status=LeaseStatus.ACTIVE,
            )
        )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_concurrent_creator_gets_typed_error(self, db_session, lease_data, other_tenant, unit):
        """Test a lost race on the unique index surfaces as ActiveLeaseExistsError."""
        service = LeaseService(db_session)
        winner = service.create_lease(lease_data())

        # The competing request saw no active lease before the winner committed
        with patch.object(LeaseService, "_active_lease", return_value=None):
            with pytest.raises(ActiveLeaseExistsError):
                service.create_lease(lease_data(tenant_id=other_tenant.id))

        active = db_session.execute(
            select(func.count()).select_from(Lease).where(Lease.unit_id == unit.id, Lease.status == LeaseStatus.ACTIVE)
        ).scalar_one()
        assert active == 1
        db_session.refresh(winner)
        assert winner.tenant_id != other_tenant.id


class TestLeaseLifecycle:
    """Test terminate, hard delete and update."""

    def test_terminate(self, db_session, lease_data, unit):
        """Test terminating frees the unit and cannot be repeated."""
        service = LeaseService(db_session)
        lease = service.create_lease(lease_data())

        service.terminate_lease(lease.id, move_out_date=date(2025, 12, 31))

        db_session.refresh(unit)
        assert lease.status == LeaseStatus.TERMINATED
        assert lease.move_out_date == date(2025, 12, 31)
        assert unit.status == UnitStatus.VACANT
        with pytest.raises(InvalidStateError):
            service.terminate_lease(lease.id)

    def test_new_lease_after_termination(self, db_session, lease_data, other_tenant, unit):
        """Test a unit can be leased again once its lease ended."""
        service = LeaseService(db_session)
        service.terminate_lease(service.create_lease(lease_data()).id)

        lease = service.create_lease(lease_data(tenant_id=other_tenant.id))

        db_session.refresh(unit)
        assert lease.status == LeaseStatus.ACTIVE
        assert unit.status == UnitStatus.OCCUPIED

    def test_hard_delete_active_lease_vacates_unit(self, db_session, lease_data, unit):
        """Test removing the only active lease makes the unit vacant."""
        service = LeaseService(db_session)
        lease = service.create_lease(lease_data())

        service.hard_delete_lease(lease.id)

        db_session.refresh(unit)
        assert unit.status == UnitStatus.VACANT
        with pytest.raises(NotFoundError):
            service.get_lease_by_id(lease.id)

    def test_hard_delete_terminated_lease_keeps_active_one(self, db_session, lease_data, other_tenant, unit):
        """Test deleting an old lease leaves the unit occupied by the active one."""
        service = LeaseService(db_session)
        old = service.create_lease(lease_data())
        service.terminate_lease(old.id)
        service.create_lease(lease_data(tenant_id=other_tenant.id))

        service.hard_delete_lease(old.id)

        db_session.refresh(unit)
        assert unit.status == UnitStatus.OCCUPIED

    def test_hard_delete_keeps_maintenance_status(self, db_session, lease_data, unit):
        """Test a unit under maintenance is not flipped to vacant."""
        service = LeaseService(db_session)
        lease = service.create_lease(lease_data())
        service.terminate_lease(lease.id)
        unit.status = UnitStatus.MAINTENANCE
        db_session.commit()

        service.hard_delete_lease(lease.id)

        db_session.refresh(unit)
        assert unit.status == UnitStatus.MAINTENANCE

    def test_update_lease(self, db_session, lease_data, other_tenant):
        """Test patching dates, tenant and notes."""
        service = LeaseService(db_session)
        lease = service.create_lease(lease_data())

        updated = service.update_lease(
            lease.id,
            LeaseUpdate(tenant_id=other_tenant.id, lease_end_date=date(2026, 8, 31), notes="extended"),
        )

        assert updated.tenant_id == other_tenant.id
        assert updated.lease_end_date == date(2026, 8, 31)
        assert updated.status == LeaseStatus.ACTIVE
        assert updated.full_lease_no == "LSE-2025-0001"

    def test_update_rejects_end_before_start(self, db_session, lease_data):
        """Test merged dates are validated."""
        service = LeaseService(db_session)
        lease = service.create_lease(lease_data())

        with pytest.raises(ValidationFailureError):
            service.update_lease(lease.id, LeaseUpdate(lease_end_date=date(2025, 1, 1)))

    def test_listing(self, db_session, lease_data, other_unit):
        """Test listing with a status filter."""
        service = LeaseService(db_session)
        first = service.create_lease(lease_data())
        service.create_lease(lease_data(unit_id=other_unit.id))
        service.terminate_lease(first.id)

        active = service.get_all_leases(filters={"status": LeaseStatus.ACTIVE})
        assert active.total_results == 1
        assert [lease.full_lease_no for lease in active.results] == ["LSE-2025-0002"]
        assert service.get_all_leases().total_results == 2

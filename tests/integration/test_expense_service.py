"""Integration tests for recording expenses."""

from datetime import date
from decimal import Decimal

import pytest

from propledger.errors import InvalidStateError, NotFoundError, OverpaymentError, ValidationFailureError
from propledger.models import ExpenseType, PaymentStatus, Property
from propledger.schemas import BillCreate, ExpenseCreate, ExpenseUpdate, PaymentCreate
from propledger.services.bills_service import BillsService
from propledger.services.expense_service import ExpenseService
from propledger.services.payment_service import PaymentService


@pytest.fixture
def expense_data(account, chargeable_category, unit):
    """Tenant charge payload for the seeded unit."""

    def _data(**overrides):
        values = dict(
            account_id=account.id,
            category_id=chargeable_category.id,
            expense_type=ExpenseType.TENANT_CHARGE,
            amount=Decimal("25"),
            expense_date=date(2025, 1, 15),
            unit_id=unit.id,
        )
        values.update(overrides)
        return ExpenseCreate(**values)

    return _data


@pytest.fixture
def bill(db_session, account, tenant, unit):
    """January bill of 1150 without linked charges."""
    return BillsService(db_session).create_bill(
        BillCreate(
            account_id=account.id,
            tenant_id=tenant.id,
            unit_id=unit.id,
            billing_period_start=date(2025, 1, 1),
            billing_period_end=date(2025, 1, 31),
            rent_amount=Decimal("1000"),
            total_utility_amount=Decimal("150"),
            issue_date=date(2025, 2, 1),
        )
    )


class TestExpenseTypeRules:
    """Test required fields per expense type."""

    def test_utility_requires_property(self, db_session, expense_data):
        """Test utility expenses need property_id."""
        with pytest.raises(ValidationFailureError, match="property_id"):
            ExpenseService(db_session).create_expense(expense_data(expense_type=ExpenseType.UTILITY))

    def test_personal_requires_user(self, db_session, expense_data):
        """Test personal expenses need user_id."""
        with pytest.raises(ValidationFailureError, match="user_id"):
            ExpenseService(db_session).create_expense(expense_data(expense_type=ExpenseType.PERSONAL))

    def test_tenant_charge_requires_unit(self, db_session, expense_data):
        """Test tenant charges need unit_id."""
        with pytest.raises(ValidationFailureError, match="unit_id"):
            ExpenseService(db_session).create_expense(expense_data(unit_id=None))

    def test_only_tenant_charges_link_to_bills(self, db_session, expense_data, property_, bill):
        """Test a utility expense cannot carry bill_id."""
        with pytest.raises(ValidationFailureError, match="tenant_charge"):
            ExpenseService(db_session).create_expense(
                expense_data(expense_type=ExpenseType.UTILITY, property_id=property_.id, bill_id=bill.id)
            )

    def test_unit_must_belong_to_property(self, db_session, expense_data, account):
        """Test a mismatched property is refused."""
        other = Property(account_id=account.id, name="Quay 9")
        db_session.add(other)
        db_session.commit()

        with pytest.raises(ValidationFailureError, match="does not belong"):
            ExpenseService(db_session).create_expense(expense_data(property_id=other.id))

    def test_unknown_category(self, db_session, expense_data):
        """Test an unknown category is not found."""
        with pytest.raises(NotFoundError, match="Expense category"):
            ExpenseService(db_session).create_expense(expense_data(category_id=999))

    def test_unlinked_tenant_charge(self, db_session, expense_data):
        """Test a tenant charge without bill waits for the next assembly."""
        expense = ExpenseService(db_session).create_expense(expense_data())

        assert expense.bill_id is None
        assert ExpenseService(db_session).get_expense_by_id(expense.id).amount == Decimal("25.00")


class TestDirectBillLink:
    """Test expenses created straight onto a bill."""

    def test_bill_totals_and_status_recomputed(self, db_session, expense_data, bill, account):
        """Test the bill picks up the charge and a paid bill drops to partially paid."""
        PaymentService(db_session).create_rent_payment(
            PaymentCreate(bill_id=bill.id, account_id=account.id, amount="1150", payment_method="cash")
        )
        db_session.refresh(bill)
        assert bill.payment_status == PaymentStatus.PAID

        ExpenseService(db_session).create_expense(expense_data(bill_id=bill.id))

        db_session.refresh(bill)
        assert bill.other_charges_amount == Decimal("25.00")
        assert bill.total_amount == Decimal("1175.00")
        assert bill.payment_status == PaymentStatus.PARTIALLY_PAID

    def test_date_outside_period_rejected(self, db_session, expense_data, bill):
        """Test a charge dated outside the bill period cannot be linked."""
        with pytest.raises(ValidationFailureError, match="billing period"):
            ExpenseService(db_session).create_expense(expense_data(bill_id=bill.id, expense_date=date(2025, 3, 1)))

    def test_non_chargeable_category_rejected(self, db_session, expense_data, bill, owner_category):
        """Test owner categories are never linked."""
        with pytest.raises(ValidationFailureError, match="tenant chargeable"):
            ExpenseService(db_session).create_expense(
                expense_data(bill_id=bill.id, category_id=owner_category.id)
            )

    def test_deleted_bill_rejected(self, db_session, expense_data, bill):
        """Test a soft-deleted bill accepts no new charges."""
        BillsService(db_session).delete_bill(bill.id)

        with pytest.raises(InvalidStateError):
            ExpenseService(db_session).create_expense(expense_data(bill_id=bill.id))


@pytest.fixture
def linked_expense(db_session, expense_data, bill):
    """Charge of 25 linked to the January bill (total 1175)."""
    return ExpenseService(db_session).create_expense(expense_data(bill_id=bill.id))


def _pay(db_session, bill, account, amount):
    PaymentService(db_session).create_rent_payment(
        PaymentCreate(bill_id=bill.id, account_id=account.id, amount=amount, payment_method="cash")
    )
    db_session.refresh(bill)


class TestUpdateExpense:
    """Test expense patches and the bills they touch."""

    def test_amount_change_retotals_bill(self, db_session, linked_expense, bill):
        """Test a new amount flows into the bill's other charges and total."""
        ExpenseService(db_session).update_expense(linked_expense.id, ExpenseUpdate(amount=Decimal("40")))

        db_session.refresh(bill)
        assert bill.other_charges_amount == Decimal("40.00")
        assert bill.total_amount == Decimal("1190.00")

    def test_move_to_another_bill(self, db_session, linked_expense, bill, account, tenant, unit):
        """Test both the old and the new bill are re-totalled."""
        february = BillsService(db_session).create_bill(
            BillCreate(
                account_id=account.id,
                tenant_id=tenant.id,
                unit_id=unit.id,
                billing_period_start=date(2025, 2, 1),
                billing_period_end=date(2025, 2, 28),
                rent_amount=Decimal("1000"),
                total_utility_amount=Decimal("150"),
                issue_date=date(2025, 3, 1),
            )
        )

        expense = ExpenseService(db_session).update_expense(
            linked_expense.id,
            ExpenseUpdate(expense_date=date(2025, 2, 10), bill_id=february.id),
        )

        assert expense.bill_id == february.id
        db_session.refresh(bill)
        db_session.refresh(february)
        assert bill.total_amount == Decimal("1150.00")
        assert february.other_charges_amount == Decimal("25.00")
        assert february.total_amount == Decimal("1175.00")

    def test_detach_from_bill(self, db_session, linked_expense, bill, account):
        """Test bill_id=None releases the charge and moves the payment state."""
        _pay(db_session, bill, account, "1150")
        assert bill.payment_status == PaymentStatus.PARTIALLY_PAID

        expense = ExpenseService(db_session).update_expense(linked_expense.id, ExpenseUpdate(bill_id=None))

        assert expense.bill_id is None
        db_session.refresh(bill)
        assert bill.other_charges_amount == Decimal("0.00")
        assert bill.payment_status == PaymentStatus.PAID

    def test_date_outside_linked_bill_rejected(self, db_session, linked_expense):
        """Test a linked charge cannot drift out of its bill's period."""
        with pytest.raises(ValidationFailureError, match="billing period"):
            ExpenseService(db_session).update_expense(
                linked_expense.id, ExpenseUpdate(expense_date=date(2025, 3, 1))
            )

        db_session.refresh(linked_expense)
        assert linked_expense.expense_date == date(2025, 1, 15)

    def test_total_below_paid_rejected(self, db_session, linked_expense, bill, account):
        """Test shrinking a charge on a fully paid bill is refused and rolled back."""
        _pay(db_session, bill, account, "1175")

        with pytest.raises(OverpaymentError):
            ExpenseService(db_session).update_expense(linked_expense.id, ExpenseUpdate(amount=Decimal("10")))

        db_session.refresh(linked_expense)
        db_session.refresh(bill)
        assert linked_expense.amount == Decimal("25.00")
        assert bill.total_amount == Decimal("1175.00")

    def test_merged_type_rules(self, db_session, expense_data):
        """Test the merged row must still satisfy the per-type rules."""
        expense = ExpenseService(db_session).create_expense(expense_data())

        with pytest.raises(ValidationFailureError, match="property_id"):
            ExpenseService(db_session).update_expense(expense.id, ExpenseUpdate(expense_type=ExpenseType.UTILITY))

    def test_deleted_expense_cannot_be_updated(self, db_session, expense_data):
        """Test soft-deleted expenses are frozen."""
        service = ExpenseService(db_session)
        expense = service.create_expense(expense_data())
        service.delete_expense(expense.id)

        with pytest.raises(InvalidStateError):
            service.update_expense(expense.id, ExpenseUpdate(description="late fee"))


class TestDeleteExpense:
    """Test soft deletion of expenses."""

    def test_delete_releases_charge(self, db_session, linked_expense, bill, account):
        """Test the bill drops the charge and its status follows the new total."""
        _pay(db_session, bill, account, "1150")
        service = ExpenseService(db_session)

        expense = service.delete_expense(linked_expense.id)

        assert expense.is_deleted is True
        assert expense.bill_id is None
        db_session.refresh(bill)
        assert bill.total_amount == Decimal("1150.00")
        assert bill.payment_status == PaymentStatus.PAID
        with pytest.raises(InvalidStateError, match="already deleted"):
            service.delete_expense(linked_expense.id)

    def test_deleted_expense_is_never_linked(self, db_session, expense_data, account, tenant, unit):
        """Test a later bill ignores deleted charges."""
        service = ExpenseService(db_session)
        expense = service.create_expense(expense_data())
        service.delete_expense(expense.id)

        bill = BillsService(db_session).create_bill(
            BillCreate(
                account_id=account.id,
                tenant_id=tenant.id,
                unit_id=unit.id,
                billing_period_start=date(2025, 1, 1),
                billing_period_end=date(2025, 1, 31),
                rent_amount=Decimal("1000"),
                total_utility_amount=Decimal("0"),
            )
        )

        assert bill.other_charges_amount == Decimal("0.00")

    def test_delete_below_paid_rejected(self, db_session, linked_expense, bill, account):
        """Test a charge already paid for cannot be removed from its bill."""
        _pay(db_session, bill, account, "1175")

        with pytest.raises(OverpaymentError):
            ExpenseService(db_session).delete_expense(linked_expense.id)

        db_session.refresh(linked_expense)
        assert linked_expense.is_deleted is False
        assert linked_expense.bill_id == bill.id


class TestListExpenses:
    """Test expense listing."""

    def test_deleted_filter_and_equality_filters(self, db_session, expense_data, linked_expense, bill):
        """Test the deleted switch and bill filter."""
        service = ExpenseService(db_session)
        loose = service.create_expense(expense_data(amount=Decimal("10")))
        gone = service.create_expense(expense_data(amount=Decimal("5")))
        service.delete_expense(gone.id)

        live = service.get_all_expenses()
        assert {e.id for e in live.results} == {linked_expense.id, loose.id}
        assert [e.id for e in service.get_all_expenses(deleted="true").results] == [gone.id]
        assert service.get_all_expenses(deleted="all").total_results == 3
        assert [e.id for e in service.get_all_expenses(filters={"bill_id": bill.id}).results] == [linked_expense.id]

        with pytest.raises(ValidationFailureError):
            service.get_all_expenses(deleted="maybe")
        with pytest.raises(ValidationFailureError):
            service.get_all_expenses(filters={"amount": 5})

"""Bill assembly service.

Provides methods for:
- Creating bills from rent, utilities and linked tenant charges
- Re-assembling bills when their period, unit or amounts change
- Soft-deleting, restoring and listing bills
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from propledger.errors import InvalidStateError, NotFoundError, OverpaymentError, ValidationFailureError
from propledger.models.account import Account
from propledger.models.bill import Bill, PaymentStatus
from propledger.models.meter import Submeter
from propledger.models.property import Property, Unit
from propledger.models.tenant import Tenant
from propledger.schemas.bill import BillCreate, BillUpdate
from propledger.services.audit_service import AuditService
from propledger.services.bill_totals import (
    ZERO,
    apply_charges,
    apply_payment_state,
    compute_total,
    sum_amounts,
    to_money,
)
from propledger.services.db import Page, get_or_404, lock_row, paginate, parse_sort, transaction
from propledger.services.expense_service import ExpenseService
from propledger.services.meter_reading_service import MeterReadingService
from propledger.services.payment_service import live_payments

logger = logging.getLogger(__name__)

BILL_FILTERS = {"account_id", "tenant_id", "unit_id", "payment_status"}

# Columns a patch may overwrite directly
BILL_PATCH_COLUMNS = (
    "tenant_id",
    "unit_id",
    "billing_period_start",
    "billing_period_end",
    "rent_amount",
    "total_utility_amount",
    "due_date",
    "issue_date",
    "invoice_no",
    "notes",
)


class BillsService:
    """Service for bill assembly and bill lookups."""

    def __init__(self, db: Session):
        """Initialize bills service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        self.expenses = ExpenseService(db)
        self.readings = MeterReadingService(db)

    # Queries

    def get_bill_by_id(self, bill_id: int, include_deleted: bool = False) -> Bill:
        """Get bill by ID.

        Raises:
            NotFoundError: If bill does not exist (or is deleted, unless include_deleted)
        """
        bill = self.db.get(Bill, bill_id)
        if bill is None or (bill.is_deleted and not include_deleted):
            raise NotFoundError("Bill", bill_id, "Bill not found")
        return bill

    def get_all_bills(
        self,
        filters: dict | None = None,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        deleted: str = "false",
        exclude_paid: bool = False,
    ) -> Page:
        """Paginated bill listing.

        Args:
            filters: Equality filters on account_id, tenant_id, unit_id, payment_status
            page: 1-based page number
            limit: Page size
            sort_by: "field:asc|desc" (default issue_date desc)
            deleted: "false", "true" or "all"
            exclude_paid: Leave out bills whose status is paid

        Returns:
            Page of Bill objects
        """
        filters = filters or {}
        unknown = set(filters) - BILL_FILTERS
        if unknown:
            raise ValidationFailureError(f"Unsupported bill filters: {', '.join(sorted(unknown))}")

        stmt = select(Bill).filter_by(**filters)
        if deleted == "false":
            stmt = stmt.where(Bill.is_deleted.is_(False))
        elif deleted == "true":
            stmt = stmt.where(Bill.is_deleted.is_(True))
        elif deleted != "all":
            raise ValidationFailureError("Invalid value for deleted parameter")
        if exclude_paid:
            stmt = stmt.where(Bill.payment_status != PaymentStatus.PAID)

        stmt = stmt.order_by(parse_sort(Bill, sort_by, Bill.issue_date.desc()), Bill.id.desc())
        return paginate(self.db, stmt, page, limit)

    def get_bills_by_property_and_date_range(
        self,
        property_id: int,
        start_date: date,
        end_date: date,
        account_id: int | None = None,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
    ) -> Page:
        """Live bills of a property's units whose period overlaps [start_date, end_date].

        Raises:
            NotFoundError: If property does not exist
            ValidationFailureError: If start_date is after end_date
        """
        get_or_404(self.db, Property, property_id, "Property")
        if start_date > end_date:
            raise ValidationFailureError("Invalid date range: start must be <= end")

        stmt = (
            select(Bill)
            .join(Unit, Bill.unit_id == Unit.id)
            .where(
                Unit.property_id == property_id,
                Bill.billing_period_start <= end_date,
                Bill.billing_period_end >= start_date,
                Bill.is_deleted.is_(False),
            )
        )
        if account_id is not None:
            stmt = stmt.where(Bill.account_id == account_id)

        stmt = stmt.order_by(parse_sort(Bill, sort_by, Bill.billing_period_start.desc()), Bill.id.desc())
        return paginate(self.db, stmt, page, limit)

    # Derived values

    def calculate_utility_amount(self, unit_id: int, period_start: date, period_end: date) -> Decimal:
        """Utility share of a unit: Σ submeter consumption × unit rate.

        Returns 0 when the unit has no submeters.

        Raises:
            ValidationFailureError: If a submeter's utility type has no unit rate
            ConsumptionInconsistencyError: If a submeter's readings regress in the period
        """
        submeters = self.db.execute(
            select(Submeter).where(Submeter.unit_id == unit_id).order_by(Submeter.id)
        ).scalars().all()

        total = ZERO
        for submeter in submeters:
            utility_type = submeter.meter.utility_type
            if utility_type.unit_rate is None:
                raise ValidationFailureError(
                    f"Utility type {utility_type.name!r} has no unit rate; supply total_utility_amount"
                )
            consumption = self.readings.calculate_consumption(
                submeter.meter_id, submeter.id, period_start, period_end
            )
            total += consumption * Decimal(str(utility_type.unit_rate))
        return to_money(total)

    def _next_invoice_no(self, account_id: int, issue_date: date) -> int:
        """1 + highest invoice number of the account in the issue year.

        Must run after the account row is locked.
        """
        current = self.db.execute(
            select(func.max(Bill.invoice_no)).where(
                Bill.account_id == account_id,
                Bill.issue_date >= date(issue_date.year, 1, 1),
                Bill.issue_date <= date(issue_date.year, 12, 31),
            )
        ).scalar()
        return (current or 0) + 1

    # Mutations

    def create_bill(self, data: BillCreate) -> Bill:
        """Assemble and persist a new bill.

        Linkable tenant charges of the unit within the period are attached
        to the bill in the same transaction.

        Args:
            data: Validated bill payload

        Returns:
            Created Bill object

        Raises:
            NotFoundError: If account, tenant or unit is missing
            ValidationFailureError: If utilities cannot be derived
        """
        get_or_404(self.db, Tenant, data.tenant_id, "Tenant")
        get_or_404(self.db, Unit, data.unit_id, "Unit")

        if data.total_utility_amount is not None:
            utilities = to_money(data.total_utility_amount)
        else:
            utilities = self.calculate_utility_amount(
                data.unit_id, data.billing_period_start, data.billing_period_end
            )

        issue_date = data.issue_date or date.today()

        with transaction(self.db):
            # Serializes invoice numbering per account
            lock_row(self.db, Account, data.account_id, "Account")
            invoice_no = self._next_invoice_no(data.account_id, issue_date)

            expenses = self.expenses.linkable_expenses(
                data.unit_id, data.billing_period_start, data.billing_period_end
            )
            other_charges = sum_amounts(expenses)
            rent = to_money(data.rent_amount)

            bill = Bill(
                account_id=data.account_id,
                tenant_id=data.tenant_id,
                unit_id=data.unit_id,
                invoice_no=invoice_no,
                billing_period_start=data.billing_period_start,
                billing_period_end=data.billing_period_end,
                rent_amount=rent,
                total_utility_amount=utilities,
                other_charges_amount=other_charges,
                total_amount=compute_total(rent, utilities, other_charges),
                amount_paid=ZERO,
                due_date=data.due_date,
                issue_date=issue_date,
                payment_status=PaymentStatus.UNPAID,
                notes=data.notes,
                is_deleted=False,
            )
            self.db.add(bill)
            self.db.flush()

            linked = self.expenses.link_expenses(bill, expenses)

            AuditService.log(
                db=self.db,
                entity_type="bill",
                entity_id=bill.id,
                action="create",
                actor_id=data.actor_id,
                changes={
                    "invoice_no": bill.full_invoice_no,
                    "rent_amount": bill.rent_amount,
                    "total_utility_amount": bill.total_utility_amount,
                    "other_charges_amount": bill.other_charges_amount,
                    "total_amount": bill.total_amount,
                    "linked_expenses": [e.id for e in expenses],
                },
            )

        logger.info(
            f"Created bill {bill.id} ({bill.full_invoice_no}): unit {bill.unit_id}, "
            f"total={bill.total_amount}, linked {linked} expense(s)"
        )
        return bill

    def update_bill(self, bill_id: int, data: BillUpdate) -> Bill:
        """Re-assemble a bill from a patch.

        Expenses that fall outside the merged unit/period are released,
        linkable ones for the new period are attached, and the totals and
        payment state are recomputed. Moving issue_date into another year
        assigns the next invoice number of that year.

        Raises:
            NotFoundError: If bill (or a newly referenced tenant/unit) is missing
            InvalidStateError: If the bill is soft-deleted
            ValidationFailureError: If the merged period is inverted
            OverpaymentError: If the new total falls below the amount already paid
        """
        patch = data.model_dump(exclude_unset=True)
        actor_id = patch.pop("actor_id", None)

        # Non-nullable columns ignore explicit None
        for column in ("tenant_id", "unit_id", "billing_period_start", "billing_period_end", "rent_amount", "issue_date"):
            if column in patch and patch[column] is None:
                patch.pop(column)

        with transaction(self.db):
            bill = self.db.execute(
                select(Bill)
                .where(Bill.id == bill_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if bill is None:
                raise NotFoundError("Bill", bill_id, "Bill not found")
            if bill.is_deleted:
                raise InvalidStateError(f"Bill {bill_id} is deleted")

            if "tenant_id" in patch:
                get_or_404(self.db, Tenant, patch["tenant_id"], "Tenant")
            if "unit_id" in patch:
                get_or_404(self.db, Unit, patch["unit_id"], "Unit")

            new_issue_date = patch.get("issue_date")
            if new_issue_date is not None and new_issue_date.year != bill.issue_date.year:
                # Invoice numbers are unique per account and issue year
                lock_row(self.db, Account, bill.account_id, "Account")
                patch["invoice_no"] = self._next_invoice_no(bill.account_id, new_issue_date)

            unit_id = patch.get("unit_id", bill.unit_id)
            period_start = patch.get("billing_period_start", bill.billing_period_start)
            period_end = patch.get("billing_period_end", bill.billing_period_end)
            if period_start > period_end:
                raise ValidationFailureError("Invalid billing period: start must be <= end")

            scope_changed = (
                unit_id != bill.unit_id
                or period_start != bill.billing_period_start
                or period_end != bill.billing_period_end
            )
            if "total_utility_amount" not in patch or patch["total_utility_amount"] is None:
                patch.pop("total_utility_amount", None)
                if scope_changed:
                    patch["total_utility_amount"] = self.calculate_utility_amount(unit_id, period_start, period_end)

            old_values = {column: getattr(bill, column) for column in patch}
            for column in BILL_PATCH_COLUMNS:
                if column in patch:
                    value = patch[column]
                    if column in ("rent_amount", "total_utility_amount"):
                        value = to_money(value)
                    setattr(bill, column, value)

            released = self.expenses.unlink_outside_period(bill.id, unit_id, period_start, period_end)
            expenses = self.expenses.linkable_expenses(unit_id, period_start, period_end, exclude_bill_id=bill.id)
            self.expenses.link_expenses(bill, expenses)
            apply_charges(bill, expenses)

            payments = live_payments(self.db, bill.id)
            paid = sum_amounts(payments)
            if paid > to_money(bill.total_amount):
                raise OverpaymentError(
                    f"Bill total ({bill.total_amount}) would fall below the amount already paid ({paid})"
                )
            status = apply_payment_state(bill, payments)
            self.db.flush()

            AuditService.log(
                db=self.db,
                entity_type="bill",
                entity_id=bill.id,
                action="update",
                actor_id=actor_id,
                changes={
                    "old": old_values,
                    "new": patch,
                    "released_expenses": [e.id for e in released],
                    "linked_expenses": [e.id for e in expenses],
                    "total_amount": bill.total_amount,
                    "payment_status": status,
                },
            )

        logger.info(
            f"Updated bill {bill.id}: total={bill.total_amount}, status={bill.payment_status.value}, "
            f"released {len(released)} expense(s)"
        )
        return bill

    def delete_bill(self, bill_id: int, actor_id: int | None = None) -> Bill:
        """Soft-delete a bill. Linked expenses stay attached.

        Raises:
            NotFoundError: If bill does not exist
            InvalidStateError: If bill is already deleted
        """
        with transaction(self.db):
            bill = lock_row(self.db, Bill, bill_id, "Bill")
            if bill.is_deleted:
                raise InvalidStateError(f"Bill {bill_id} is already deleted")
            bill.is_deleted = True
            AuditService.log(self.db, "bill", bill.id, "delete", actor_id=actor_id)

        logger.info(f"Deleted bill {bill_id}")
        return bill

    def restore_bill(self, bill_id: int, actor_id: int | None = None) -> Bill:
        """Restore a soft-deleted bill.

        Raises:
            NotFoundError: If bill does not exist
            InvalidStateError: If bill is not deleted
        """
        with transaction(self.db):
            bill = lock_row(self.db, Bill, bill_id, "Bill")
            if not bill.is_deleted:
                raise InvalidStateError(f"Bill {bill_id} is not deleted")
            bill.is_deleted = False
            AuditService.log(self.db, "bill", bill.id, "restore", actor_id=actor_id)

        logger.info(f"Restored bill {bill_id}")
        return bill


__all__ = ["BillsService"]

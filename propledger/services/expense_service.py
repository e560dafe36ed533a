"""Expense service: recording expenses and linking tenant charges to bills."""

import logging
from datetime import date

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from propledger.errors import InvalidStateError, OverpaymentError, ValidationFailureError
from propledger.models.account import Account
from propledger.models.bill import Bill
from propledger.models.expense import CategoryType, Expense, ExpenseCategory, ExpenseType
from propledger.models.property import Property, Unit
from propledger.models.user import User
from propledger.schemas.expense import ExpenseCreate, ExpenseUpdate
from propledger.services.audit_service import AuditService
from propledger.services.bill_totals import apply_charges, apply_payment_state, sum_amounts, to_money
from propledger.services.db import Page, get_or_404, lock_row, paginate, parse_sort, transaction
from propledger.services.payment_service import live_payments

logger = logging.getLogger(__name__)

EXPENSE_FILTERS = {"account_id", "unit_id", "property_id", "user_id", "category_id", "bill_id", "expense_type"}

EXPENSE_PATCH_COLUMNS = (
    "category_id",
    "expense_type",
    "amount",
    "expense_date",
    "user_id",
    "unit_id",
    "property_id",
    "bill_id",
    "description",
)


class ExpenseService:
    """Service for expenses and the expense-to-bill link.

    The link/unlink helpers never commit; they are meant to run inside the
    bill assembler's transaction so a bill and its expenses change together.
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def linkable_expenses(
        self,
        unit_id: int,
        period_start: date,
        period_end: date,
        exclude_bill_id: int | None = None,
    ) -> list[Expense]:
        """Find tenant charges of a unit that a bill for the period may claim.

        Args:
            unit_id: Unit being billed
            period_start: First day of the billing period (inclusive)
            period_end: Last day of the billing period (inclusive)
            exclude_bill_id: Bill being edited; its own expenses stay linkable

        Returns:
            Expenses ordered by expense_date
        """
        if exclude_bill_id is None:
            ownership = Expense.bill_id.is_(None)
        else:
            ownership = or_(Expense.bill_id.is_(None), Expense.bill_id == exclude_bill_id)

        stmt = (
            select(Expense)
            .join(Expense.category)
            .where(
                Expense.unit_id == unit_id,
                Expense.expense_date >= period_start,
                Expense.expense_date <= period_end,
                Expense.expense_type == ExpenseType.TENANT_CHARGE,
                ExpenseCategory.type == CategoryType.TENANT_CHARGEABLE,
                Expense.is_deleted.is_(False),
                ownership,
            )
            .order_by(Expense.expense_date, Expense.id)
            .with_for_update(of=Expense)
        )
        return list(self.db.execute(stmt).scalars().all())

    def linked_expenses(self, bill_id: int) -> list[Expense]:
        """Expenses currently attributed to a bill."""
        stmt = (
            select(Expense)
            .where(Expense.bill_id == bill_id, Expense.is_deleted.is_(False))
            .order_by(Expense.expense_date, Expense.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def link_expenses(self, bill: Bill, expenses: list[Expense]) -> int:
        """Attach expenses to bill. Returns the number of newly linked rows."""
        linked = 0
        for expense in expenses:
            if expense.bill_id != bill.id:
                expense.bill_id = bill.id
                linked += 1
        self.db.flush()
        if linked:
            logger.debug(f"Linked {linked} expense(s) to bill {bill.id}")
        return linked

    def unlink_outside_period(
        self,
        bill_id: int,
        unit_id: int,
        period_start: date,
        period_end: date,
    ) -> list[Expense]:
        """Release expenses of bill_id that no longer fall in its unit/period.

        Released expenses become linkable by another bill.
        """
        stmt = select(Expense).where(
            Expense.bill_id == bill_id,
            or_(
                Expense.unit_id.is_(None),
                Expense.unit_id != unit_id,
                Expense.expense_date < period_start,
                Expense.expense_date > period_end,
            ),
        )
        released = list(self.db.execute(stmt).scalars().all())
        for expense in released:
            expense.bill_id = None
        self.db.flush()
        if released:
            logger.debug(f"Unlinked {len(released)} expense(s) from bill {bill_id}")
        return released

    def get_expense_by_id(self, expense_id: int) -> Expense:
        """Get expense by ID, deleted or not.

        Raises:
            NotFoundError: If expense does not exist
        """
        return get_or_404(self.db, Expense, expense_id, "Expense")

    def get_all_expenses(
        self,
        filters: dict | None = None,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        deleted: str = "false",
    ) -> Page:
        """Paginated expense listing.

        Args:
            filters: Equality filters on account, unit, property, user, category, bill or type
            page: 1-based page number
            limit: Page size
            sort_by: "field:asc|desc" (default expense_date desc)
            deleted: "false", "true" or "all"
        """
        filters = filters or {}
        unknown = set(filters) - EXPENSE_FILTERS
        if unknown:
            raise ValidationFailureError(f"Unsupported expense filters: {', '.join(sorted(unknown))}")

        stmt = select(Expense).filter_by(**filters)
        if deleted == "false":
            stmt = stmt.where(Expense.is_deleted.is_(False))
        elif deleted == "true":
            stmt = stmt.where(Expense.is_deleted.is_(True))
        elif deleted != "all":
            raise ValidationFailureError("Invalid value for deleted parameter")

        stmt = stmt.order_by(parse_sort(Expense, sort_by, Expense.expense_date.desc()), Expense.id.desc())
        return paginate(self.db, stmt, page, limit)

    def create_expense(self, data: ExpenseCreate) -> Expense:
        """Record an expense, enforcing the per-type field rules.

        - utility expenses require property_id
        - personal expenses require user_id
        - tenant_charge expenses require unit_id; only they may carry bill_id

        When bill_id is given, the bill's other charges, total and payment
        state are recomputed in the same transaction.

        Raises:
            NotFoundError: If a referenced row does not exist
            ValidationFailureError: If the field combination is inconsistent
            InvalidStateError: If the target bill is deleted
        """
        get_or_404(self.db, Account, data.account_id, "Account")
        category = get_or_404(self.db, ExpenseCategory, data.category_id, "Expense category")
        self._check_fields(data.model_dump())

        with transaction(self.db):
            bill = None
            if data.bill_id is not None:
                bill = lock_row(self.db, Bill, data.bill_id, "Bill")
                self._check_bill_accepts(bill, category, data.unit_id, data.expense_date)

            expense = Expense(
                account_id=data.account_id,
                user_id=data.user_id,
                unit_id=data.unit_id,
                property_id=data.property_id,
                category_id=data.category_id,
                expense_type=data.expense_type,
                bill_id=data.bill_id,
                amount=data.amount,
                expense_date=data.expense_date,
                description=data.description,
                is_deleted=False,
            )
            self.db.add(expense)
            self.db.flush()

            if bill is not None:
                self._recompute_bill(bill)

            AuditService.log(
                db=self.db,
                entity_type="expense",
                entity_id=expense.id,
                action="create",
                actor_id=data.actor_id,
                changes=data.model_dump(exclude={"actor_id"}),
            )

        logger.info(
            f"Recorded expense {expense.id}: type={data.expense_type.value}, amount={data.amount}, "
            f"bill_id={data.bill_id}"
        )
        return expense

    def update_expense(self, expense_id: int, data: ExpenseUpdate) -> Expense:
        """Patch an expense and re-total every bill it leaves or joins.

        The merged row must satisfy the same rules as a new expense. A bill it
        stays on or moves to must still accept it (unit, period, category).

        Raises:
            NotFoundError: If the expense or a referenced row does not exist
            InvalidStateError: If the expense or the target bill is deleted
            ValidationFailureError: If the merged field combination is inconsistent
            OverpaymentError: If a bill total would fall below its amount paid
        """
        patch = data.model_dump(exclude_unset=True)
        actor_id = patch.pop("actor_id", None)
        for column in ("category_id", "expense_type", "amount", "expense_date"):
            if column in patch and patch[column] is None:
                patch.pop(column)

        current = self.get_expense_by_id(expense_id)
        target_bill_id = patch["bill_id"] if "bill_id" in patch else current.bill_id

        with transaction(self.db):
            bills = self._lock_bills({current.bill_id, target_bill_id})
            expense = lock_row(self.db, Expense, expense_id, "Expense")
            if expense.is_deleted:
                raise InvalidStateError(f"Expense {expense_id} is deleted")

            # The link may have moved since the unlocked read
            if "bill_id" not in patch:
                target_bill_id = expense.bill_id
            bills.update(self._lock_bills({expense.bill_id, target_bill_id} - set(bills)))

            merged = {column: patch.get(column, getattr(expense, column)) for column in EXPENSE_PATCH_COLUMNS}
            category = get_or_404(self.db, ExpenseCategory, merged["category_id"], "Expense category")
            self._check_fields(merged)
            if target_bill_id is not None:
                self._check_bill_accepts(
                    bills[target_bill_id],
                    category,
                    merged["unit_id"],
                    merged["expense_date"],
                    allow_deleted=target_bill_id == expense.bill_id,
                )

            old_values = {column: getattr(expense, column) for column in patch}
            for column, value in patch.items():
                setattr(expense, column, value)
            self.db.flush()

            for bill in bills.values():
                self._recompute_bill(bill)

            AuditService.log(
                db=self.db,
                entity_type="expense",
                entity_id=expense.id,
                action="update",
                actor_id=actor_id,
                changes={"old": old_values, "new": patch, "bills": sorted(bills)},
            )

        logger.info(f"Updated expense {expense_id}: {sorted(patch)}; re-totalled bills {sorted(bills)}")
        return expense

    def delete_expense(self, expense_id: int, actor_id: int | None = None) -> Expense:
        """Soft-delete an expense, detaching it from its bill.

        Raises:
            NotFoundError: If the expense does not exist
            InvalidStateError: If the expense is already deleted
            OverpaymentError: If the bill total would fall below its amount paid
        """
        current = self.get_expense_by_id(expense_id)

        with transaction(self.db):
            bills = self._lock_bills({current.bill_id})
            expense = lock_row(self.db, Expense, expense_id, "Expense")
            if expense.is_deleted:
                raise InvalidStateError("Expense is already deleted")
            bills.update(self._lock_bills({expense.bill_id} - set(bills)))

            released_from = expense.bill_id
            expense.is_deleted = True
            expense.bill_id = None
            self.db.flush()

            for bill in bills.values():
                self._recompute_bill(bill)

            AuditService.log(
                db=self.db,
                entity_type="expense",
                entity_id=expense.id,
                action="delete",
                actor_id=actor_id,
                changes={"bill_id": released_from},
            )

        logger.info(f"Deleted expense {expense_id}; released from bill {released_from}")
        return expense

    def _lock_bills(self, bill_ids: set[int | None]) -> dict[int, Bill]:
        """Lock bills in ascending id order."""
        return {bill_id: lock_row(self.db, Bill, bill_id, "Bill") for bill_id in sorted(i for i in bill_ids if i)}

    def _recompute_bill(self, bill: Bill) -> None:
        """Re-total a bill from its linked expenses and live payments."""
        apply_charges(bill, self.linked_expenses(bill.id))
        payments = live_payments(self.db, bill.id)
        paid = sum_amounts(payments)
        if paid > to_money(bill.total_amount):
            raise OverpaymentError(
                f"Bill total ({bill.total_amount}) would fall below the amount already paid ({paid})"
            )
        apply_payment_state(bill, payments)

    def _check_fields(self, values: dict) -> None:
        """Per-type required fields and existence of the referenced rows."""
        expense_type = values["expense_type"]
        if expense_type == ExpenseType.UTILITY and values["property_id"] is None:
            raise ValidationFailureError("Utility expenses require property_id")
        if expense_type == ExpenseType.PERSONAL and values["user_id"] is None:
            raise ValidationFailureError("Personal expenses require user_id")
        if expense_type == ExpenseType.TENANT_CHARGE and values["unit_id"] is None:
            raise ValidationFailureError("Tenant charges require unit_id")
        if values["bill_id"] is not None and expense_type != ExpenseType.TENANT_CHARGE:
            raise ValidationFailureError("Only tenant_charge expenses can be linked to a bill")

        if values["property_id"] is not None:
            get_or_404(self.db, Property, values["property_id"], "Property")
        if values["user_id"] is not None:
            get_or_404(self.db, User, values["user_id"], "User")
        if values["unit_id"] is not None:
            unit = get_or_404(self.db, Unit, values["unit_id"], "Unit")
            if values["property_id"] is not None and unit.property_id != values["property_id"]:
                raise ValidationFailureError("Unit does not belong to the specified property")

    @staticmethod
    def _check_bill_accepts(
        bill: Bill,
        category: ExpenseCategory,
        unit_id: int | None,
        expense_date: date,
        allow_deleted: bool = False,
    ) -> None:
        """Ensure a linked expense would also be picked up by re-assembly.

        allow_deleted lets expenses already on a deleted bill stay there.
        """
        if bill.is_deleted and not allow_deleted:
            raise InvalidStateError(f"Bill {bill.id} is deleted")
        if category.type != CategoryType.TENANT_CHARGEABLE:
            raise ValidationFailureError("Expense category is not tenant chargeable")
        if bill.unit_id != unit_id:
            raise ValidationFailureError("Bill does not belong to the specified unit")
        if not bill.billing_period_start <= expense_date <= bill.billing_period_end:
            raise ValidationFailureError("Expense date falls outside the bill's billing period")


__all__ = ["ExpenseService"]

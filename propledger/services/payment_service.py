"""Payment service: allocating payments to bills and deriving payment status.

Provides methods for:
- Recording, editing, deleting and restoring rent payments
- Rejecting overpayment before anything is written
- Recomputing a bill's amount_paid / payment_status / payment_date from the
  full set of live payments after every mutation
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from propledger.errors import (
    InvalidStateError,
    NotFoundError,
    OverpaymentError,
    ValidationFailureError,
)
from propledger.models.account import Account
from propledger.models.bill import Bill
from propledger.models.payment import Payment
from propledger.models.tenant import Tenant
from propledger.schemas.payment import PaymentCreate, PaymentUpdate
from propledger.services.audit_service import AuditService
from propledger.services.bill_totals import apply_payment_state, sum_amounts, to_money
from propledger.services.db import Page, get_or_404, lock_row, paginate, parse_sort, transaction

logger = logging.getLogger(__name__)

PAYMENT_FILTERS = {"bill_id", "account_id", "tenant_id", "payment_method"}


def live_payments(db: Session, bill_id: int, exclude_payment_id: int | None = None) -> list[Payment]:
    """Load the non-deleted payments of a bill.

    Args:
        db: Database session
        bill_id: Bill ID
        exclude_payment_id: Payment to leave out (the one being edited)

    Returns:
        List of Payment objects ordered by payment_date
    """
    stmt = select(Payment).where(Payment.bill_id == bill_id, Payment.is_deleted.is_(False))
    if exclude_payment_id is not None:
        stmt = stmt.where(Payment.id != exclude_payment_id)
    return list(db.execute(stmt.order_by(Payment.payment_date, Payment.id)).scalars().all())


class PaymentService:
    """Payment allocation against bills."""

    def __init__(self, db: Session):
        """Initialize payment service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    # Queries

    def get_payment_by_id(self, payment_id: int) -> Payment:
        """Get payment by ID.

        Raises:
            NotFoundError: If payment does not exist
        """
        return get_or_404(self.db, Payment, payment_id, "Payment")

    def get_payments_by_bill_id(self, bill_id: int) -> list[Payment]:
        """List live payments of a bill, most recent first."""
        get_or_404(self.db, Bill, bill_id, "Bill")
        return sorted(
            live_payments(self.db, bill_id),
            key=lambda p: (p.payment_date, p.id),
            reverse=True,
        )

    def get_all_payments(
        self,
        filters: dict | None = None,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        deleted: str = "false",
    ) -> Page:
        """Paginated payment listing.

        Args:
            filters: Equality filters on bill_id, account_id, tenant_id, payment_method
            page: 1-based page number
            limit: Page size
            sort_by: "field:asc|desc" (default payment_date desc)
            deleted: "false", "true" or "all"

        Returns:
            Page of Payment objects
        """
        filters = filters or {}
        unknown = set(filters) - PAYMENT_FILTERS
        if unknown:
            raise ValidationFailureError(f"Unsupported payment filters: {', '.join(sorted(unknown))}")

        stmt = select(Payment).filter_by(**filters)
        if deleted == "false":
            stmt = stmt.where(Payment.is_deleted.is_(False))
        elif deleted == "true":
            stmt = stmt.where(Payment.is_deleted.is_(True))
        elif deleted != "all":
            raise ValidationFailureError("Invalid value for deleted parameter")

        stmt = stmt.order_by(parse_sort(Payment, sort_by, Payment.payment_date.desc()), Payment.id.desc())
        return paginate(self.db, stmt, page, limit)

    # Mutations

    def create_rent_payment(self, data: PaymentCreate) -> Payment:
        """Record a payment against a live bill.

        Args:
            data: Validated payment payload

        Returns:
            Created Payment object; its bill carries the recomputed status

        Raises:
            NotFoundError: If the bill (or a deleted bill), tenant or account is missing
            ValidationFailureError: If account/tenant do not match the bill
            InvalidStateError: If the transaction id is already used
            OverpaymentError: If live payments plus this amount exceed the bill total
        """
        with transaction(self.db):
            bill = self._lock_live_bill(data.bill_id)

            get_or_404(self.db, Account, data.account_id, "Account")
            if bill.account_id != data.account_id:
                raise ValidationFailureError(
                    f"Account ID {data.account_id} does not match bill's account ID"
                )
            if data.tenant_id is not None:
                self._check_tenant(bill, data.tenant_id)
            if data.transaction_id:
                self._ensure_transaction_id_free(data.transaction_id)

            prior = live_payments(self.db, bill.id)
            self._ensure_no_overpayment(bill, sum_amounts(prior), data.amount)

            payment = Payment(
                bill_id=bill.id,
                account_id=data.account_id,
                tenant_id=data.tenant_id,
                amount=to_money(data.amount),
                payment_date=data.payment_date or date.today(),
                payment_method=data.payment_method,
                transaction_id=data.transaction_id,
                notes=data.notes,
                is_deleted=False,
            )
            self.db.add(payment)
            self.db.flush()

            status = apply_payment_state(bill, prior + [payment])

            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id,
                action="create",
                actor_id=data.actor_id,
                changes={
                    "bill_id": bill.id,
                    "amount": payment.amount,
                    "amount_paid": bill.amount_paid,
                    "payment_status": status,
                },
            )

        logger.info(
            f"Recorded payment {payment.id}: bill_id={bill.id}, amount={payment.amount}, "
            f"bill status={bill.payment_status.value}"
        )
        return payment

    def update_rent_payment(self, payment_id: int, data: PaymentUpdate) -> Payment:
        """Edit a live payment and recompute its bill's payment state.

        The overpayment check sums every other live payment of the bill plus
        the new amount.

        Raises:
            NotFoundError: If payment or its bill is missing/deleted
            ValidationFailureError: If bill_id would change or tenant mismatches
            InvalidStateError: If the new transaction id is already used
            OverpaymentError: If the edit would overpay the bill
        """
        patch = data.model_dump(exclude_unset=True)
        actor_id = patch.pop("actor_id", None)

        with transaction(self.db):
            payment = self._get_live_payment(payment_id)

            if patch.get("bill_id") is not None and patch["bill_id"] != payment.bill_id:
                raise ValidationFailureError("Cannot update bill_id of a payment")
            patch.pop("bill_id", None)

            bill = self._lock_live_bill(payment.bill_id)

            if patch.get("tenant_id") is not None:
                self._check_tenant(bill, patch["tenant_id"])
            new_transaction_id = patch.get("transaction_id")
            if new_transaction_id and new_transaction_id != payment.transaction_id:
                self._ensure_transaction_id_free(new_transaction_id)

            # Non-nullable columns ignore explicit None
            for column in ("amount", "payment_date", "payment_method"):
                if column in patch and patch[column] is None:
                    patch.pop(column)

            others = live_payments(self.db, bill.id, exclude_payment_id=payment.id)
            new_amount = to_money(patch.get("amount", payment.amount))
            self._ensure_no_overpayment(bill, sum_amounts(others), new_amount)

            old_values = {column: getattr(payment, column) for column in patch}
            for column, value in patch.items():
                setattr(payment, column, to_money(value) if column == "amount" else value)
            self.db.flush()

            status = apply_payment_state(bill, others + [payment])

            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id,
                action="update",
                actor_id=actor_id,
                changes={
                    "old": old_values,
                    "new": patch,
                    "amount_paid": bill.amount_paid,
                    "payment_status": status,
                },
            )

        logger.info(f"Updated payment {payment.id}: bill {bill.id} now {bill.payment_status.value}")
        return payment

    def delete_rent_payment(self, payment_id: int, actor_id: int | None = None) -> Bill:
        """Soft-delete a payment and recompute its bill from the remaining ones.

        Returns:
            The bill with its recomputed payment state

        Raises:
            NotFoundError: If payment is missing or already deleted
        """
        with transaction(self.db):
            payment = self._get_live_payment(payment_id)
            bill = lock_row(self.db, Bill, payment.bill_id, "Bill")

            payment.is_deleted = True
            self.db.flush()

            status = apply_payment_state(bill, live_payments(self.db, bill.id))

            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id,
                action="delete",
                actor_id=actor_id,
                changes={"amount": payment.amount, "amount_paid": bill.amount_paid, "payment_status": status},
            )

        logger.info(f"Deleted payment {payment_id}: bill {bill.id} now {bill.payment_status.value}")
        return bill

    def restore_rent_payment(self, payment_id: int, actor_id: int | None = None) -> Payment:
        """Restore a soft-deleted payment, re-running the overpayment check.

        Raises:
            NotFoundError: If payment or its bill is missing/deleted
            InvalidStateError: If the payment is not deleted or its transaction id was reused
            OverpaymentError: If restoring would overpay the bill
        """
        with transaction(self.db):
            payment = get_or_404(self.db, Payment, payment_id, "Payment")
            if not payment.is_deleted:
                raise InvalidStateError(f"Payment {payment_id} is not deleted")

            bill = self._lock_live_bill(payment.bill_id)
            if payment.transaction_id:
                self._ensure_transaction_id_free(payment.transaction_id)

            prior = live_payments(self.db, bill.id)
            self._ensure_no_overpayment(bill, sum_amounts(prior), payment.amount)

            payment.is_deleted = False
            self.db.flush()

            status = apply_payment_state(bill, prior + [payment])

            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id,
                action="restore",
                actor_id=actor_id,
                changes={"amount": payment.amount, "amount_paid": bill.amount_paid, "payment_status": status},
            )

        logger.info(f"Restored payment {payment_id}: bill {bill.id} now {bill.payment_status.value}")
        return payment

    # Helpers

    def _lock_live_bill(self, bill_id: int) -> Bill:
        bill = lock_row(self.db, Bill, bill_id, "Bill")
        if bill.is_deleted:
            logger.warning(f"Payment rejected: bill {bill_id} is deleted")
            raise NotFoundError("Bill", bill_id)
        return bill

    def _get_live_payment(self, payment_id: int) -> Payment:
        payment = get_or_404(self.db, Payment, payment_id, "Payment")
        if payment.is_deleted:
            raise NotFoundError("Payment", payment_id)
        return payment

    def _check_tenant(self, bill: Bill, tenant_id: int) -> None:
        get_or_404(self.db, Tenant, tenant_id, "Tenant")
        if bill.tenant_id != tenant_id:
            raise ValidationFailureError(f"Tenant ID {tenant_id} does not match bill's tenant ID")

    def _ensure_transaction_id_free(self, transaction_id: str) -> None:
        existing = self.db.execute(
            select(Payment.id).where(
                Payment.transaction_id == transaction_id,
                Payment.is_deleted.is_(False),
            )
        ).first()
        if existing is not None:
            raise InvalidStateError(f"Transaction ID {transaction_id} is already used", "duplicate_transaction")

    @staticmethod
    def _ensure_no_overpayment(bill: Bill, already_paid: Decimal, amount: Decimal) -> None:
        total_paid = to_money(already_paid) + to_money(amount)
        if total_paid > to_money(bill.total_amount):
            logger.warning(
                f"Overpayment rejected for bill {bill.id}: {total_paid} > {bill.total_amount}"
            )
            raise OverpaymentError(
                f"Total paid ({total_paid}) would exceed bill total ({to_money(bill.total_amount)}) "
                f"for bill {bill.id}"
            )


__all__ = ["PaymentService", "live_payments"]

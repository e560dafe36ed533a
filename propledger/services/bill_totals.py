"""Pure billing rules shared by the bill assembler, expense linker and payment allocator.

Derived bill columns (other_charges_amount, total_amount, amount_paid,
payment_status, payment_date) are always recomputed from the authoritative
rows, never adjusted incrementally.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from propledger.models.bill import Bill, PaymentStatus
from propledger.models.expense import Expense
from propledger.models.payment import Payment

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """Normalize an amount to a 2-decimal Decimal."""
    if value is None:
        return ZERO.quantize(CENT)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_amounts(rows: Iterable[Expense | Payment]) -> Decimal:
    """Sum the amount column of expenses or payments."""
    return to_money(sum((Decimal(str(row.amount)) for row in rows), ZERO))


def compute_total(rent_amount: Decimal, total_utility_amount: Decimal, other_charges_amount: Decimal) -> Decimal:
    """total = rent + utilities + linked charges."""
    return to_money(to_money(rent_amount) + to_money(total_utility_amount) + to_money(other_charges_amount))


def derive_payment_status(total_paid: Decimal, total_amount: Decimal) -> PaymentStatus:
    """Map the paid sum onto the bill payment state.

    nothing paid -> unpaid, total_paid >= total_amount -> paid, anything in
    between -> partially_paid. A zero-total bill with no payments stays
    unpaid, matching the state a bill is created in.
    """
    total_paid = to_money(total_paid)
    total_amount = to_money(total_amount)
    if total_paid <= ZERO:
        return PaymentStatus.UNPAID
    if total_paid >= total_amount:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIALLY_PAID


def apply_charges(bill: Bill, linked_expenses: Iterable[Expense]) -> None:
    """Recompute other_charges_amount and total_amount from the linked expenses."""
    bill.other_charges_amount = sum_amounts(linked_expenses)
    bill.total_amount = compute_total(bill.rent_amount, bill.total_utility_amount, bill.other_charges_amount)


def apply_payment_state(bill: Bill, live_payments: list[Payment]) -> PaymentStatus:
    """Recompute amount_paid, payment_status and payment_date from live payments.

    payment_date is stamped only on the transition into paid (latest payment
    date) and cleared whenever the bill is not paid.
    """
    total_paid = sum_amounts(live_payments)
    status = derive_payment_status(total_paid, bill.total_amount)

    if status == PaymentStatus.PAID:
        if bill.payment_status != PaymentStatus.PAID or bill.payment_date is None:
            bill.payment_date = max((p.payment_date for p in live_payments), default=bill.issue_date)
    else:
        bill.payment_date = None

    bill.amount_paid = total_paid
    bill.payment_status = status
    return status


__all__ = [
    "CENT",
    "ZERO",
    "to_money",
    "sum_amounts",
    "compute_total",
    "derive_payment_status",
    "apply_charges",
    "apply_payment_state",
]

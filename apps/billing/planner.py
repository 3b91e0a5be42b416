"""
Installment schedule generation.

Amounts are integer minor units (cents). The down payment is always slot 1;
the remaining balance is split evenly across the other slots with integer
truncation and the last slot collects the rounding remainder, so the slot
amounts always add up to the sale total exactly.
"""
from collections import namedtuple
from datetime import date, datetime

from dateutil.relativedelta import relativedelta

from apps.billing.exceptions import InvalidPlanError, ValidationError

InstallmentSlot = namedtuple("InstallmentSlot", ["number", "due_date", "amount_cents"])


def as_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"Invalid date: {value!r}.", fields={"date": ["Use YYYY-MM-DD."]}) from None
    raise ValidationError(f"Invalid date: {value!r}.", fields={"date": ["Use YYYY-MM-DD."]})


def add_months(start, months):
    # Clamps to the last day of shorter months (Jan 31 + 1 -> Feb 28/29).
    return start + relativedelta(months=months)


def _require_int(name, value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer amount.", fields={name: ["Expected an integer."]})


def validate_terms(total_cents, installment_count):
    _require_int("total_cents", total_cents)
    _require_int("installment_count", installment_count)
    if installment_count < 0:
        raise InvalidPlanError("installment_count cannot be negative.", fields={"installment_count": ["Must be >= 0."]})
    if total_cents <= 0:
        raise InvalidPlanError("The sale total must be greater than 0.", fields={"total_cents": ["Must be > 0."]})


def generate_plan(*, total_cents, installment_count, initial_amount_cents, initial_date):
    validate_terms(total_cents, installment_count)
    _require_int("initial_amount_cents", initial_amount_cents)
    if initial_amount_cents <= 0:
        raise ValidationError(
            "The initial payment must be greater than 0.",
            fields={"initial_amount_cents": ["Must be > 0."]},
        )
    if initial_amount_cents > total_cents:
        raise InvalidPlanError(
            "The initial payment cannot exceed the sale total.",
            fields={"initial_amount_cents": ["Must be <= total_cents."]},
        )
    start = as_date(initial_date)

    if installment_count == 0:
        return []
    if installment_count == 1:
        return [InstallmentSlot(1, start, total_cents)]

    remaining = total_cents - initial_amount_cents
    per_slot = remaining // (installment_count - 1)
    last_amount = remaining - per_slot * (installment_count - 2)

    slots = [InstallmentSlot(1, start, initial_amount_cents)]
    for number in range(2, installment_count + 1):
        amount = last_amount if number == installment_count else per_slot
        slots.append(InstallmentSlot(number, add_months(start, number - 1), amount))
    return slots


def generate_plan_for_sale(sale, initial_payment):
    """Plan for a stored sale, anchored on its slot-1 payment (anything with amount_cents and payment_date)."""
    return generate_plan(
        total_cents=sale.total_cents,
        installment_count=sale.installment_count,
        initial_amount_cents=initial_payment.amount_cents,
        initial_date=initial_payment.payment_date,
    )


def scheduled_slot(plan, number):
    for slot in plan:
        if slot.number == number:
            return slot
    return None

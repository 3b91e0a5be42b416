from django.utils import timezone

from apps.billing.exceptions import ValidationError
from apps.billing.models import DerivedStatus, PaymentStatus
from apps.billing.planner import generate_plan_for_sale
from apps.billing.status import resolve_slot_status, resolve_status

ALL = "all"
STATUS_FILTERS = (ALL, DerivedStatus.PENDING, DerivedStatus.COMPLETED, DerivedStatus.OVERDUE)

ASCENDING = "ascending"
DESCENDING = "descending"
SORT_DIRECTIONS = (ASCENDING, DESCENDING)

SORT_KEYS = {
    "id": lambda payment, derived: str(payment.id),
    "sale_id": lambda payment, derived: payment.sale_id,
    "client_name": lambda payment, derived: payment.sale.client_name,
    "amount": lambda payment, derived: payment.amount_cents,
    "method": lambda payment, derived: payment.method,
    "date": lambda payment, derived: payment.payment_date,
    "installment_number": lambda payment, derived: payment.installment_number,
    "total_installments": lambda payment, derived: payment.sale.installment_count,
    "status": lambda payment, derived: str(derived),
}


def _matches(payment, term):
    return (
        term in str(payment.id).lower()
        or term in str(payment.sale_id).lower()
        or term in payment.sale.client_name.lower()
    )


def query(payments, *, search_term="", status=ALL, sort_key=None, direction=ASCENDING, as_of=None):
    """
    Filter and sort ledger rows for the collections screen.

    Returns `(payment, derived_status)` pairs. Cancelled rows are left out,
    the status filter runs on the live status as of `as_of` (today by
    default) and the sort is stable in both directions.
    """
    if status not in STATUS_FILTERS:
        raise ValidationError(f"Unknown status filter: {status!r}.", fields={"status": list(STATUS_FILTERS)})
    if sort_key is not None and sort_key not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key: {sort_key!r}.", fields={"ordering": sorted(SORT_KEYS)})
    if direction not in SORT_DIRECTIONS:
        raise ValidationError(f"Unknown sort direction: {direction!r}.", fields={"direction": list(SORT_DIRECTIONS)})

    as_of = as_of or timezone.localdate()
    term = (search_term or "").strip().lower()

    rows = []
    for payment in payments:
        if payment.status == PaymentStatus.CANCELLED:
            continue
        if term and not _matches(payment, term):
            continue
        derived = resolve_status(payment, as_of)
        if status != ALL and derived != status:
            continue
        rows.append((payment, derived))

    if sort_key is not None:
        key_fn = SORT_KEYS[sort_key]
        rows = sorted(rows, key=lambda row: key_fn(*row), reverse=direction == DESCENDING)
    return rows


def summarize(rows):
    summary = {value: {"count": 0, "amount_cents": 0} for value in DerivedStatus.values}
    for payment, derived in rows:
        bucket = summary[str(derived)]
        bucket["count"] += 1
        bucket["amount_cents"] += payment.amount_cents
    return summary


def build_schedule(sale, payments, as_of=None):
    """Planned slots of `sale` merged with the active ledger row of each slot."""
    as_of = as_of or timezone.localdate()
    active = {payment.installment_number: payment for payment in payments if payment.status != PaymentStatus.CANCELLED}
    initial = active.get(1)
    if initial is None:
        return []

    schedule = []
    for slot in generate_plan_for_sale(sale, initial):
        payment = active.get(slot.number)
        if payment is not None:
            derived = resolve_status(payment, as_of)
        elif slot.amount_cents == 0:
            # Nothing owed: the down payment already covered this slot.
            derived = DerivedStatus.COMPLETED
        else:
            derived = resolve_slot_status(PaymentStatus.PENDING, slot.due_date, as_of)
        schedule.append(
            {
                "number": slot.number,
                "due_date": slot.due_date,
                "amount_cents": slot.amount_cents,
                "payment": payment,
                "status": derived,
            }
        )
    return schedule

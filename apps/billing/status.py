from datetime import datetime

from django.utils import timezone

from apps.billing.exceptions import ValidationError
from apps.billing.models import DerivedStatus, PaymentStatus
from apps.billing.planner import as_date


def _day(value):
    if isinstance(value, datetime) and timezone.is_aware(value):
        return timezone.localtime(value).date()
    return as_date(value)


def resolve_slot_status(status, due_date, as_of):
    if status == PaymentStatus.COMPLETED:
        return DerivedStatus.COMPLETED
    # Due today is still pending.
    if _day(due_date) < _day(as_of):
        return DerivedStatus.OVERDUE
    return DerivedStatus.PENDING


def resolve_status(payment, as_of):
    """
    Live status of a ledger row on `as_of`.

    Never cached: callers resolve again on every read so a pending row turns
    overdue as soon as its date is behind `as_of`.
    """
    if payment.status == PaymentStatus.CANCELLED:
        raise ValidationError("Cancelled payments have no schedule status.")
    return resolve_slot_status(payment.status, payment.payment_date, as_of)

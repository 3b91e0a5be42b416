"""
The payment ledger: the only place that creates or transitions Payment rows.

Every mutation runs in one transaction and locks the sale (or payment) row
first, so two requests for the same sale are serialized. The partial unique
constraint on (sale, installment_number) for non-cancelled rows backs the
lock up at the database level.
"""
import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.audit.services import record_audit
from apps.billing.exceptions import (
    AlreadyProcessedError,
    DuplicateInstallmentError,
    NotFoundError,
    ValidationError,
)
from apps.billing.models import Payment, PaymentMethod, PaymentStatus
from apps.billing.planner import as_date, generate_plan, generate_plan_for_sale, scheduled_slot
from apps.sales.models import Sale

logger = structlog.get_logger(__name__)


def _user_or_none(actor):
    if actor is not None and getattr(actor, "is_authenticated", False):
        return actor
    return None


def _lock_sale(sale_id):
    try:
        return Sale.objects.select_for_update().get(pk=sale_id)
    except Sale.DoesNotExist:
        raise NotFoundError(f"Sale {sale_id} does not exist.") from None


def _lock_payment(payment_id):
    try:
        return Payment.objects.select_for_update().get(pk=payment_id)
    except (Payment.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError(f"Payment {payment_id} does not exist.") from None


def _active_payments(sale):
    return Payment.objects.filter(sale=sale).exclude(status=PaymentStatus.CANCELLED)


def _slot_is_taken(sale, installment_number):
    return _active_payments(sale).filter(installment_number=installment_number).exists()


def _next_free_slot(sale):
    taken = set(_active_payments(sale).values_list("installment_number", flat=True))
    for number in range(1, sale.installment_count + 1):
        if number not in taken:
            return number
    raise ValidationError(f"Every installment of sale {sale.pk} already has a payment.")


def _planned_slot(sale, installment_number):
    initial = _active_payments(sale).filter(installment_number=1).first()
    if initial is None:
        return None
    return scheduled_slot(generate_plan_for_sale(sale, initial), installment_number)


def _validate_amount(amount_cents):
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("The amount must be a positive integer of cents.", fields={"amount_cents": ["Must be > 0."]})


def _validate_method(method):
    if method not in PaymentMethod.values:
        raise ValidationError(f"Unknown payment method: {method!r}.", fields={"method": PaymentMethod.values})


def _duplicate(sale, installment_number):
    logger.info("payment.duplicate_rejected", sale_id=sale.pk, installment_number=installment_number)
    return DuplicateInstallmentError(
        f"Installment {installment_number} of sale {sale.pk} already has an active payment.",
        fields={"installment_number": [installment_number]},
    )


def _insert_payment(sale, **fields):
    if _slot_is_taken(sale, fields["installment_number"]):
        raise _duplicate(sale, fields["installment_number"])
    try:
        with transaction.atomic():
            return Payment.objects.create(sale=sale, **fields)
    except IntegrityError as exc:
        raise _duplicate(sale, fields["installment_number"]) from exc


def record_payment(*, sale_id, method, installment_number=None, amount_cents=None, payment_date=None, notes="", actor=None):
    """
    Record a pending payment for one installment of a sale.

    When `installment_number` is omitted the lowest free slot is used; a
    missing amount or date is taken from the sale's planned schedule.
    """
    _validate_method(method)
    with transaction.atomic():
        sale = _lock_sale(sale_id)
        if not sale.is_financed:
            raise ValidationError(f"Sale {sale.pk} was paid in full and has no installments.")

        if installment_number is None:
            installment_number = _next_free_slot(sale)
        if not 1 <= installment_number <= sale.installment_count:
            raise ValidationError(
                f"Sale {sale.pk} has installments 1 to {sale.installment_count}.",
                fields={"installment_number": [f"Must be between 1 and {sale.installment_count}."]},
            )
        if _slot_is_taken(sale, installment_number):
            raise _duplicate(sale, installment_number)

        if amount_cents is None or payment_date is None:
            slot = _planned_slot(sale, installment_number)
            if slot is None:
                raise ValidationError(
                    f"Sale {sale.pk} has no initial payment; amount_cents and payment_date are required.",
                )
            amount_cents = slot.amount_cents if amount_cents is None else amount_cents
            payment_date = slot.due_date if payment_date is None else payment_date
        _validate_amount(amount_cents)

        payment = _insert_payment(
            sale,
            installment_number=installment_number,
            amount_cents=amount_cents,
            method=method,
            payment_date=as_date(payment_date),
            notes=(notes or "").strip(),
            status=PaymentStatus.PENDING,
            created_by=_user_or_none(actor),
        )
        record_audit(
            actor=actor,
            action="payment.record",
            entity_type="payment",
            entity_id=payment.id,
            payload={
                "sale_id": sale.pk,
                "installment_number": installment_number,
                "amount_cents": amount_cents,
                "payment_date": payment.payment_date.isoformat(),
            },
        )

    logger.info(
        "payment.recorded",
        payment_id=str(payment.id),
        sale_id=sale.pk,
        installment_number=installment_number,
        amount_cents=amount_cents,
    )
    return payment


def record_initial_payment(*, sale, amount_cents, method, payment_date, notes="", actor=None):
    """Slot 1, created already completed: the down payment received at sale time."""
    _validate_method(method)
    _validate_amount(amount_cents)
    if not sale.is_financed:
        raise ValidationError(f"Sale {sale.pk} was paid in full and has no installments.")
    if sale.installment_count == 1 and amount_cents != sale.total_cents:
        raise ValidationError(
            "A single-installment sale is settled by one payment of the full total.",
            fields={"amount_cents": [f"Must equal {sale.total_cents}."]},
        )
    generate_plan(
        total_cents=sale.total_cents,
        installment_count=sale.installment_count,
        initial_amount_cents=amount_cents,
        initial_date=payment_date,
    )

    user = _user_or_none(actor)
    with transaction.atomic():
        payment = _insert_payment(
            sale,
            installment_number=1,
            amount_cents=amount_cents,
            method=method,
            payment_date=as_date(payment_date),
            notes=(notes or "").strip(),
            status=PaymentStatus.COMPLETED,
            created_by=user,
            processed_by=user,
            processed_at=timezone.now(),
        )
        record_audit(
            actor=actor,
            action="payment.record_initial",
            entity_type="payment",
            entity_id=payment.id,
            payload={"sale_id": sale.pk, "amount_cents": amount_cents},
        )

    logger.info("payment.recorded", payment_id=str(payment.id), sale_id=sale.pk, installment_number=1, initial=True)
    return payment


def process_payment(*, payment_id, method, payment_date, notes="", actor=None):
    """
    Complete a pending payment.

    Method and date recorded at creation were provisional and get replaced;
    notes are replaced only when new ones are given.
    """
    _validate_method(method)
    paid_on = as_date(payment_date)
    with transaction.atomic():
        payment = _lock_payment(payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise AlreadyProcessedError(f"Payment {payment.id} is already {payment.status}.")

        payment.method = method
        payment.payment_date = paid_on
        if notes and notes.strip():
            payment.notes = notes.strip()
        payment.status = PaymentStatus.COMPLETED
        payment.processed_by = _user_or_none(actor)
        payment.processed_at = timezone.now()
        payment.save(
            update_fields=["method", "payment_date", "notes", "status", "processed_by", "processed_at", "updated_at"]
        )
        record_audit(
            actor=actor,
            action="payment.process",
            entity_type="payment",
            entity_id=payment.id,
            payload={"method": method, "payment_date": paid_on.isoformat()},
        )

    logger.info("payment.processed", payment_id=str(payment.id), sale_id=payment.sale_id, method=method)
    return payment


def cancel_payment(*, payment_id, actor=None):
    with transaction.atomic():
        payment = _lock_payment(payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise AlreadyProcessedError(f"Payment {payment.id} is already {payment.status}.")

        payment.status = PaymentStatus.CANCELLED
        payment.cancelled_at = timezone.now()
        payment.save(update_fields=["status", "cancelled_at", "updated_at"])
        record_audit(
            actor=actor,
            action="payment.cancel",
            entity_type="payment",
            entity_id=payment.id,
            payload={"sale_id": payment.sale_id, "installment_number": payment.installment_number},
        )

    logger.info(
        "payment.cancelled",
        payment_id=str(payment.id),
        sale_id=payment.sale_id,
        installment_number=payment.installment_number,
    )
    return payment

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.audit.services import record_audit
from apps.billing.exceptions import ValidationError
from apps.billing.planner import validate_terms
from apps.billing.registry import record_initial_payment
from apps.sales.models import Sale

logger = structlog.get_logger(__name__)

FOLIO_ATTEMPTS = 5


def next_sale_id(year=None):
    year = year or timezone.localdate().year
    prefix = f"{settings.SALE_FOLIO_PREFIX}-{year}-"
    seq = Sale.objects.filter(id__startswith=prefix).count() + 1
    while Sale.objects.filter(pk=f"{prefix}{seq:03d}").exists():
        seq += 1
    return f"{prefix}{seq:03d}"


def _sale_id_taken(sale_id):
    return Sale.objects.filter(pk=sale_id).exists()


def _id_in_use(sale_id):
    return ValidationError(f"Sale {sale_id} already exists.", fields={"id": ["Already in use."]})


def _insert_sale(sale_id, **fields):
    try:
        with transaction.atomic():
            return Sale.objects.create(id=sale_id, **fields)
    except IntegrityError:
        logger.info("sale.id_collision", sale_id=sale_id)
        return None


def create_sale(*, client, total_cents, installment_count, description="", initial_payment=None, sale_id=None, actor=None):
    """
    Register a sale handed over by the point of sale.

    Financed sales (installment_count >= 1) need the down payment, which is
    stored as the completed slot-1 payment in the same transaction. A sale
    paid in full (installment_count == 0) has no ledger rows.

    A generated folio that loses a race to a concurrent sale is regenerated;
    a folio supplied by the caller is rejected instead.
    """
    validate_terms(total_cents, installment_count)
    if installment_count >= 1 and initial_payment is None:
        raise ValidationError(
            "Financed sales require an initial payment.",
            fields={"initial_payment": ["This field is required when installment_count >= 1."]},
        )
    if installment_count == 0 and initial_payment and initial_payment["amount_cents"] != total_cents:
        raise ValidationError(
            "A sale without installments is paid in full at purchase.",
            fields={"initial_payment": [f"amount_cents must equal {total_cents}."]},
        )

    requested_id = (sale_id or "").strip()
    fields = {
        "client": client,
        "client_name": client.name,
        "description": (description or "").strip(),
        "total_cents": total_cents,
        "installment_count": installment_count,
        "created_by": actor if actor is not None and actor.is_authenticated else None,
    }

    with transaction.atomic():
        if requested_id:
            if _sale_id_taken(requested_id):
                raise _id_in_use(requested_id)
            sale = _insert_sale(requested_id, **fields)
            if sale is None:
                raise _id_in_use(requested_id)
        else:
            sale = None
            for _ in range(FOLIO_ATTEMPTS):
                sale = _insert_sale(next_sale_id(), **fields)
                if sale is not None:
                    break
            if sale is None:
                raise ValidationError("Could not assign a sale folio, try again.", fields={"id": ["Folio collision."]})

        if installment_count >= 1:
            record_initial_payment(sale=sale, actor=actor, **initial_payment)

        record_audit(
            actor=actor,
            action="sale.create",
            entity_type="sale",
            entity_id=sale.id,
            payload={"total_cents": total_cents, "installment_count": installment_count, "client_id": str(client.id)},
        )

    logger.info("sale.created", sale_id=sale.id, total_cents=total_cents, installment_count=installment_count)
    return sale

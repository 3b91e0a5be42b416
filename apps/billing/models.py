import uuid

from django.db import models

from apps.common.money import from_cents


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class DerivedStatus(models.TextChoices):
    PENDING = "pending", "Pendiente"
    COMPLETED = "completed", "Completado"
    OVERDUE = "overdue", "Vencido"


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Efectivo"
    DEBIT_CARD = "DEBIT_CARD", "Tarjeta de Debito"
    CREDIT_CARD = "CREDIT_CARD", "Tarjeta de Credito"
    BANK_TRANSFER = "BANK_TRANSFER", "Transferencia Bancaria"


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey("sales.Sale", on_delete=models.PROTECT, related_name="payments")
    installment_number = models.PositiveSmallIntegerField()
    amount_cents = models.PositiveBigIntegerField()
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    payment_date = models.DateField()
    notes = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="recorded_payments",
    )
    processed_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="processed_payments",
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sale_id", "installment_number", "created_at"]
        indexes = [
            models.Index(fields=["status", "payment_date"], name="payment_status_date_idx"),
            models.Index(fields=["sale", "installment_number"], name="payment_sale_slot_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount_cents__gt=0), name="payment_amount_gt_zero"),
            models.CheckConstraint(condition=models.Q(installment_number__gte=1), name="payment_installment_gte_one"),
            models.UniqueConstraint(
                fields=["sale", "installment_number"],
                condition=~models.Q(status="cancelled"),
                name="payment_one_active_per_slot",
            ),
        ]

    @property
    def amount(self):
        return from_cents(self.amount_cents)

    def __str__(self):
        return f"{self.sale_id} #{self.installment_number} ({self.status})"

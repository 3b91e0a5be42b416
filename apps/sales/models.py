import re
import uuid

from django.core.exceptions import ValidationError
from django.db import models

from apps.common.money import from_cents


def normalize_phone(value):
    raw = str(value or "").strip()
    normalized = re.sub(r"\D+", "", raw)
    return normalized or raw


class Client(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=50, blank=True)
    phone_normalized = models.CharField(max_length=50, blank=True)
    email = models.EmailField(blank=True)
    notes = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["phone_normalized"], name="client_phone_norm_idx"),
            models.Index(fields=["name"], name="client_name_idx"),
        ]

    def clean(self):
        if not self.name:
            raise ValidationError("name is required")

    def save(self, *args, **kwargs):
        self.name = str(self.name or "").strip()
        self.phone = str(self.phone or "").strip()
        self.phone_normalized = normalize_phone(self.phone) if self.phone else ""
        self.full_clean()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class Sale(models.Model):
    id = models.CharField(primary_key=True, max_length=32)
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="sales")
    client_name = models.CharField(max_length=255)
    description = models.CharField(max_length=255, blank=True)
    total_cents = models.PositiveBigIntegerField()
    installment_count = models.PositiveSmallIntegerField(default=0)
    created_by = models.ForeignKey("accounts.User", on_delete=models.PROTECT, null=True, blank=True, related_name="sales")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["client", "created_at"], name="sale_client_created_idx"),
            models.Index(fields=["client_name"], name="sale_client_name_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(total_cents__gt=0), name="sale_total_gt_zero"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Sales are immutable once created.")
        if self.client_id:
            self.client_name = self.client.name
        super().save(*args, **kwargs)

    @property
    def total(self):
        return from_cents(self.total_cents)

    @property
    def is_financed(self):
        return self.installment_count > 0

    def __str__(self):
        return f"{self.id} ({self.client_name})"

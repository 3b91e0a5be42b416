from django.contrib import admin

from apps.billing.models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("sale", "installment_number", "amount_cents", "method", "payment_date", "status", "processed_at")
    list_filter = ("status", "method", "payment_date")
    search_fields = ("sale__id", "sale__client_name")
    list_select_related = ("sale",)

    # The ledger only changes through apps.billing.registry.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

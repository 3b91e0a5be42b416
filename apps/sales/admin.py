from django.contrib import admin

from apps.sales.models import Client, Sale


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "phone", "email", "updated_at")
    search_fields = ("name", "phone", "phone_normalized", "email")


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ("id", "client_name", "total_cents", "installment_count", "created_by", "created_at")
    list_filter = ("installment_count",)
    search_fields = ("id", "client_name", "client__name")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

from django.contrib import admin, messages

from .models import InvoiceMapping, OrderPayment, TransactionLog


@admin.register(TransactionLog)
class TransactionLogAdmin(admin.ModelAdmin):
    list_display = ("id", "order_id", "action", "created_at")
    search_fields = ("order_id", "action")
    list_filter = ("action", "created_at")
    readonly_fields = ("order_id", "action", "data", "details", "created_at")
    ordering = ("-created_at",)
    actions = ["truncate_log"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Delete the whole transaction history")
    def truncate_log(self, request, queryset):
        if not request.user.is_superuser:
            self.message_user(request, "Only superusers can clear the history.", messages.ERROR)
            return
        deleted, _ = TransactionLog.objects.all().delete()
        self.message_user(request, f"Deleted {deleted} entries.", messages.SUCCESS)


@admin.register(InvoiceMapping)
class InvoiceMappingAdmin(admin.ModelAdmin):
    list_display = ("invoice_id", "order_id", "custom_order_id", "created_at")
    search_fields = ("invoice_id", "order_id", "custom_order_id")
    readonly_fields = ("invoice_id", "order_id", "custom_order_id", "created_at")


@admin.register(OrderPayment)
class OrderPaymentAdmin(admin.ModelAdmin):
    list_display = ("order", "state", "invoice_id", "updated_at")
    list_filter = ("state",)
    search_fields = ("invoice_id",)
    readonly_fields = ("hash_key", "form_html", "created_at", "updated_at")

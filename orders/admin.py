from django.contrib import admin

from .models import Order, OrderItem, OrderNote, Product


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


class OrderNoteInline(admin.TabularInline):
    model = OrderNote
    extra = 0
    readonly_fields = ("created_at",)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "status", "total", "currency", "billing_email", "created_at", "updated_at")
    search_fields = ("id", "order_key", "billing_email", "transaction_id")
    list_filter = ("status", "currency", "created_at")
    readonly_fields = ("order_key", "paid_at", "created_at", "updated_at")
    inlines = [OrderItemInline, OrderNoteInline]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "installment_limit")

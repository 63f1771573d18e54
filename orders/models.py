from decimal import Decimal

from django.db import models
from django.utils.crypto import get_random_string


def _order_key():
    return "wc_order_" + get_random_string(13)


class Product(models.Model):
    name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    # 0 means "use the gateway default"
    installment_limit = models.PositiveSmallIntegerField(default=0)

    def __str__(self):
        return self.name


class Order(models.Model):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (PROCESSING, "Processing"),
        (PAID, "Paid"),
        (FAILED, "Failed"),
        (CANCELLED, "Cancelled"),
    ]

    order_key = models.CharField(max_length=32, default=_order_key, db_index=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING, db_index=True)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    currency = models.CharField(max_length=3, default="TRY")

    billing_first_name = models.CharField(max_length=100, blank=True, default="")
    billing_last_name = models.CharField(max_length=100, blank=True, default="")
    billing_email = models.EmailField(blank=True, default="")
    billing_phone = models.CharField(max_length=32, blank=True, default="")

    transaction_id = models.CharField(max_length=64, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"#{self.pk} ({self.status})"

    def has_status(self, statuses) -> bool:
        return self.status in set(statuses)

    def add_note(self, text: str) -> "OrderNote":
        return self.notes.create(text=text)

    def update_status(self, status: str, note: str = "") -> None:
        self.status = status
        self.save(update_fields=["status", "updated_at"])
        if note:
            self.add_note(note)


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="+", null=True, blank=True)
    name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    total_tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    def __str__(self):
        return f"{self.name} x{self.quantity}"


class OrderNote(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="notes")
    text = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("created_at", "id")

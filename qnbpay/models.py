from django.db import models


class InvoiceMapping(models.Model):
    """Provider-facing invoice id minted for one payment attempt. Never updated."""

    order_id = models.PositiveBigIntegerField(db_index=True)
    custom_order_id = models.PositiveBigIntegerField(unique=True)
    invoice_id = models.CharField(max_length=128, unique=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ("-created_at", "-id")

    def __str__(self):
        return self.invoice_id


class TransactionLog(models.Model):
    order_id = models.PositiveBigIntegerField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    action = models.CharField(max_length=32, db_index=True)
    data = models.JSONField(blank=True, null=True)
    details = models.JSONField(blank=True, null=True)

    class Meta:
        ordering = ("-created_at", "-id")

    def __str__(self):
        return f"#{self.order_id} {self.action}"


class OrderPayment(models.Model):
    """Payment state and gateway annotations for one order."""

    INITIATED = "initiated"
    TOKEN_ACQUIRED = "token_acquired"
    SUBMITTED = "submitted"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING_RETRY = "pending_retry"
    STATE_CHOICES = [
        (INITIATED, "Initiated"),
        (TOKEN_ACQUIRED, "Token acquired"),
        (SUBMITTED, "Submitted"),
        (AWAITING_CONFIRMATION, "Awaiting confirmation"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
        (PENDING_RETRY, "Pending retry"),
    ]
    TERMINAL = (COMPLETED, FAILED)

    order = models.OneToOneField("orders.Order", on_delete=models.CASCADE, related_name="qnbpay")
    state = models.CharField(max_length=24, choices=STATE_CHOICES, default=INITIATED, db_index=True)
    invoice_id = models.CharField(max_length=128, blank=True, default="")
    hash_key = models.TextField(blank=True, default="")
    form_html = models.TextField(blank=True, default="")
    error_message = models.TextField(blank=True, default="")
    recheck_message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"#{self.order_id} {self.state}"

    @property
    def is_terminal(self) -> bool:
        return self.state in self.TERMINAL


class GatewayOption(models.Model):
    """Install-level values that must survive restarts (webhook hash, debug file)."""

    name = models.CharField(max_length=64, unique=True)
    value = models.CharField(max_length=255, blank=True, default="")
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @classmethod
    def get(cls, name, default=None):
        row = cls.objects.filter(name=name).first()
        return row.value if row else default

    @classmethod
    def put(cls, name, value):
        cls.objects.update_or_create(name=name, defaults={"value": value})
        return value

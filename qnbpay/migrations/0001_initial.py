import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="InvoiceMapping",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order_id", models.PositiveBigIntegerField(db_index=True)),
                ("custom_order_id", models.PositiveBigIntegerField(unique=True)),
                ("invoice_id", models.CharField(max_length=128, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={"ordering": ("-created_at", "-id")},
        ),
        migrations.CreateModel(
            name="TransactionLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order_id", models.PositiveBigIntegerField(db_index=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("action", models.CharField(db_index=True, max_length=32)),
                ("data", models.JSONField(blank=True, null=True)),
                ("details", models.JSONField(blank=True, null=True)),
            ],
            options={"ordering": ("-created_at", "-id")},
        ),
        migrations.CreateModel(
            name="GatewayOption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=64, unique=True)),
                ("value", models.CharField(blank=True, default="", max_length=255)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="OrderPayment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("state", models.CharField(choices=[("initiated", "Initiated"), ("token_acquired", "Token acquired"), ("submitted", "Submitted"), ("awaiting_confirmation", "Awaiting confirmation"), ("completed", "Completed"), ("failed", "Failed"), ("pending_retry", "Pending retry")], db_index=True, default="initiated", max_length=24)),
                ("invoice_id", models.CharField(blank=True, default="", max_length=128)),
                ("hash_key", models.TextField(blank=True, default="")),
                ("form_html", models.TextField(blank=True, default="")),
                ("error_message", models.TextField(blank=True, default="")),
                ("recheck_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="qnbpay", to="orders.order")),
            ],
        ),
    ]

from django.apps import AppConfig


class QnbpayConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "qnbpay"
    verbose_name = "QNBPay"

    def ready(self):
        from .conf import get_config

        # fail at startup rather than on the first payment
        get_config()

"""Validated QNBPay configuration.

``settings.QNBPAY`` is read once into a frozen :class:`QNBPayConfig`.  The
cached instance is dropped whenever Django reports a settings change so
``override_settings`` works in tests.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver

VERSION = "1.0.0"

PRODUCTION_API_HOST = "https://portal.qnbpay.com.tr/ccpayment/api/"
TEST_API_HOST = "https://test.qnbpay.com.tr/ccpayment/api/"

ORDER_PREFIX_RE = re.compile(r"^[A-Z0-9]+$")
WEBHOOK_KEY_RE = re.compile(r"^[a-zA-Z0-9]+$")
ORDER_STATUSES = ("pending", "processing", "paid", "failed", "cancelled")


@dataclass(frozen=True)
class QNBPayConfig:
    merchant_key: str = ""
    merchant_id: str = ""
    app_key: str = ""
    app_secret: str = ""
    test_mode: bool = True
    enable_3d: bool = True
    installment: bool = True
    installment_limit: int = 12
    limit_by_product: bool = False
    limit_by_cart: bool = False
    cart_threshold: Decimal = Decimal("0")
    order_prefix: str = "QNBPAY"
    success_status: str = "paid"
    sale_web_hook_key: str = ""
    debug: bool = False
    timeout: int = 25

    @property
    def api_host(self) -> str:
        return TEST_API_HOST if self.test_mode else PRODUCTION_API_HOST

    @property
    def charge_method(self) -> str:
        return "paySmart3D" if self.enable_3d else "paySmart2D"

    @property
    def paid_statuses(self) -> frozenset:
        return frozenset({"processing", "paid", self.success_status})

    @property
    def has_credentials(self) -> bool:
        return all((self.merchant_id, self.merchant_key, self.app_key, self.app_secret))


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def build_config(raw: dict) -> QNBPayConfig:
    """Validate a ``QNBPAY`` settings dict and return a config object."""
    raw = {str(k).upper(): v for k, v in (raw or {}).items()}

    try:
        limit = int(raw.get("INSTALLMENT_LIMIT", 12))
    except (TypeError, ValueError):
        raise ImproperlyConfigured("QNBPAY['INSTALLMENT_LIMIT'] must be an integer")
    if not 1 <= limit <= 12:
        raise ImproperlyConfigured("QNBPAY['INSTALLMENT_LIMIT'] must be between 1 and 12")

    try:
        threshold = Decimal(str(raw.get("CART_THRESHOLD") or "0"))
    except InvalidOperation:
        raise ImproperlyConfigured("QNBPAY['CART_THRESHOLD'] must be a number")
    if threshold < 0:
        raise ImproperlyConfigured("QNBPAY['CART_THRESHOLD'] must not be negative")

    prefix = str(raw.get("ORDER_PREFIX") or "")
    if not prefix:
        raise ImproperlyConfigured("QNBPAY['ORDER_PREFIX'] is required")
    if not ORDER_PREFIX_RE.match(prefix):
        raise ImproperlyConfigured("QNBPAY['ORDER_PREFIX'] must contain only uppercase letters and numbers")

    webhook_key = str(raw.get("SALE_WEB_HOOK_KEY") or "")
    if webhook_key and not WEBHOOK_KEY_RE.match(webhook_key):
        raise ImproperlyConfigured("QNBPAY['SALE_WEB_HOOK_KEY'] must contain only letters and numbers")

    success_status = str(raw.get("SUCCESS_STATUS") or "paid")
    if success_status not in ORDER_STATUSES:
        raise ImproperlyConfigured(f"QNBPAY['SUCCESS_STATUS'] must be one of {', '.join(ORDER_STATUSES)}")

    try:
        timeout = int(raw.get("TIMEOUT", 25))
    except (TypeError, ValueError):
        raise ImproperlyConfigured("QNBPAY['TIMEOUT'] must be an integer")

    return QNBPayConfig(
        merchant_key=str(raw.get("MERCHANT_KEY") or ""),
        merchant_id=str(raw.get("MERCHANT_ID") or ""),
        app_key=str(raw.get("APP_KEY") or ""),
        app_secret=str(raw.get("APP_SECRET") or ""),
        test_mode=_as_bool(raw.get("TEST_MODE", True)),
        enable_3d=_as_bool(raw.get("ENABLE_3D", True)),
        installment=_as_bool(raw.get("INSTALLMENT", True)),
        installment_limit=limit,
        limit_by_product=_as_bool(raw.get("LIMIT_BY_PRODUCT", False)),
        limit_by_cart=_as_bool(raw.get("LIMIT_BY_CART", False)),
        cart_threshold=threshold,
        order_prefix=prefix,
        success_status=success_status,
        sale_web_hook_key=webhook_key,
        debug=_as_bool(raw.get("DEBUG", False)),
        timeout=timeout,
    )


_config = None


def get_config() -> QNBPayConfig:
    global _config
    if _config is None:
        _config = build_config(getattr(settings, "QNBPAY", None) or {})
    return _config


@receiver(setting_changed)
def _reset_config(*, setting, **kwargs):
    global _config
    if setting == "QNBPAY":
        _config = None

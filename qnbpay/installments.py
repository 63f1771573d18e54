import logging
from decimal import Decimal

from django.template.loader import render_to_string
from django.utils import timezone

from .client import QNBPayClient, installment_counts
from .conf import get_config
from .exceptions import AuthFailure, LookupFailure, ValidationError

logger = logging.getLogger(__name__)

CART = "cart"
ORDER = "order"


class InstallmentPolicy:
    """Merchant-side installment limits: global cap, product caps, cart threshold."""

    def __init__(self, enabled=True, limit=12, by_product=False, by_cart=False, threshold=Decimal("0")):
        self.enabled = enabled
        self.limit = limit
        self.by_product = by_product
        self.by_cart = by_cart
        self.threshold = Decimal(threshold)

    @classmethod
    def from_config(cls, config=None):
        config = config or get_config()
        return cls(
            enabled=config.installment,
            limit=config.installment_limit,
            by_product=config.limit_by_product,
            by_cart=config.limit_by_cart,
            threshold=config.cart_threshold,
        )

    def _context(self, context, order, cart):
        if context == ORDER and order is not None:
            products = [item.product for item in order.items.select_related("product") if item.product_id]
            return products, order.total
        if context == CART and cart is not None:
            return cart.products(), cart.total
        return [], None

    def max_installments(self, context=CART, order=None, cart=None) -> int:
        if not self.enabled:
            return 1

        maximum = int(self.limit)
        products, total = self._context(context, order, cart)

        if self.by_product:
            caps = [int(p.installment_limit) for p in products if p.installment_limit and int(p.installment_limit) > 0]
            if caps:
                maximum = min(maximum, min(caps))

        if self.by_cart and self.threshold > 0 and total is not None:
            if Decimal(total) < self.threshold:
                maximum = 1

        return maximum

    @staticmethod
    def reconcile(selected, provider_options, maximum) -> int:
        """Clamp the buyer's choice down to ``maximum``; never raise it."""
        try:
            selected = int(selected)
        except (TypeError, ValueError):
            selected = 1
        if selected not in installment_counts(provider_options):
            logger.info("Installment %s not offered for this card", selected)
        return max(1, min(selected, int(maximum)))

    @staticmethod
    def render(provider_options, maximum, state=CART) -> str:
        rows = [n for n in sorted(set(installment_counts(provider_options))) if 1 <= n <= int(maximum)]
        single = int(maximum) == 1 or not rows
        return render_to_string("qnbpay/installments.html", {
            "state": state,
            "single": single,
            "rows": rows,
        })

    def validate_bin(self, bin_number, state=CART, order=None, cart=None, total=None, currency=None, client=None) -> dict:
        """Look up a card's BIN and build the installment picker for it.

        Raises ``ValidationError`` for a malformed BIN before any network call.
        A provider failure is reported in ``message`` with an empty picker.
        """
        bin_number = str(bin_number or "").replace(" ", "")[:8]
        if len(bin_number) != 8:
            raise ValidationError("Credit card number is required.", code="required")
        if not bin_number.isdigit():
            raise ValidationError("Credit card number is invalid.", code="invalid")

        maximum = self.max_installments(state, order=order, cart=cart)
        if total is None:
            total = order.total if state == ORDER and order is not None else (cart.total if cart else Decimal("0"))
        if not currency:
            currency = order.currency if state == ORDER and order is not None else (cart.currency if cart else "TRY")

        client = client or QNBPayClient()
        options, message = [], "Success"
        try:
            options = client.request_bin(bin_number, amount=total, currency=currency)
        except (AuthFailure, LookupFailure) as e:
            logger.warning("BIN lookup failed for %s: %s", bin_number[:6], e.message)
            message = e.message

        return {
            "time": timezone.localtime().strftime("%d.%m.%Y %H:%M:%S"),
            "status": True,
            "message": message,
            "cardInformation": options,
            "maxInstallment": maximum,
            "html": self.render(options, maximum, state),
        }

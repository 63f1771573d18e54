"""Session cart used by the checkout page and the BIN lookup in cart context."""

from decimal import Decimal

from .models import Product

SESSION_KEY = "cart"


class CartLine:
    def __init__(self, product, quantity):
        self.product = product
        self.quantity = quantity

    @property
    def total(self) -> Decimal:
        return self.product.price * self.quantity


class Cart:
    def __init__(self, lines=None, currency="TRY"):
        self.lines = list(lines or [])
        self.currency = currency

    @classmethod
    def from_session(cls, session, currency="TRY"):
        raw = session.get(SESSION_KEY) or {}
        ids = [int(pk) for pk in raw]
        products = Product.objects.in_bulk(ids)
        lines = [
            CartLine(products[int(pk)], int(qty))
            for pk, qty in raw.items()
            if int(pk) in products and int(qty) > 0
        ]
        return cls(lines, currency=currency)

    def products(self):
        return [line.product for line in self.lines]

    @property
    def total(self) -> Decimal:
        return sum((line.total for line in self.lines), Decimal("0"))

    def empty(self, session):
        session.pop(SESSION_KEY, None)

import json
from decimal import Decimal

import requests
from django.conf import settings
from django.test import override_settings

from orders.models import Order, OrderItem, Product
from qnbpay import crypto

APP_SECRET = "app-secret"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def ok(data=None, **extra):
    return FakeResponse(200, {"status_code": 100, "status_description": "Successful", "data": data, **extra})


def token_ok(token="tok"):
    return FakeResponse(200, {"status_code": 100, "data": {"token": token, "is_3d": 4}})


def status_reply(md_status=1, status_code=100, description="Successful"):
    return FakeResponse(200, {"mdStatus": md_status, "status_code": status_code, "status_description": description})


BIN_OPTIONS = [
    {"installments_number": n, "card_program": "WORLD", "payable_amount": 100}
    for n in (1, 2, 3, 6, 9, 12)
]


class FakeGateway:
    """Stands in for ``requests.post``; answers by API method name."""

    def __init__(self, **replies):
        self.replies = {"token": token_ok(), "getpos": ok(BIN_OPTIONS)}
        self.replies.update(replies)
        self.calls = []

    def __call__(self, url, json=None, headers=None, timeout=None):
        method = url.rsplit("/", 1)[-1]
        self.calls.append({"method": method, "json": json, "headers": headers, "timeout": timeout})
        reply = self.replies[method]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def methods(self):
        return [c["method"] for c in self.calls]


def transport_error():
    return requests.ConnectionError("connection refused")


def qnbpay_settings(**overrides):
    return override_settings(QNBPAY={**settings.QNBPAY, **overrides})


def make_order(pk=None, total="100.00", status=Order.PENDING, products=()):
    order = Order.objects.create(
        pk=pk,
        total=Decimal(total),
        status=status,
        billing_first_name="Ada",
        billing_last_name="Lovelace",
        billing_email="ada@example.com",
        billing_phone="5551112233",
    )
    for product in products:
        OrderItem.objects.create(order=order, product=product, name=product.name, quantity=1, total=product.price)
    return order


def make_product(name="Book", price="100.00", installment_limit=0):
    return Product.objects.create(name=name, price=Decimal(price), installment_limit=installment_limit)


def result_hash(invoice_id, order_id, status="1", total="100.00", currency="TRY"):
    return crypto.PAYMENT_RESULT.encode({
        "status": status,
        "total": total,
        "invoice_id": invoice_id,
        "order_id": order_id,
        "currency_code": currency,
    }, APP_SECRET)

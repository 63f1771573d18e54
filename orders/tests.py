import re
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase

from qnbpay.models import OrderPayment
from qnbpay.tests.utils import FakeGateway, FakeResponse, make_order, make_product

from .cart import Cart
from .models import Order

CARD = {
    "qnbpay-name-oncard": "Ada Lovelace",
    "qnbpay-card-number": "4546711234567894",
    "qnbpay-card-expiry": "12/30",
    "qnbpay-card-cvc": "123",
    "qnbpay-installment": "1",
}


class OrderModelTests(TestCase):
    def test_order_key_format(self):
        order = make_order()
        self.assertTrue(order.order_key.startswith("wc_order_"))
        self.assertEqual(len(order.order_key), len("wc_order_") + 13)

    def test_update_status_adds_note(self):
        order = make_order()
        order.update_status(Order.FAILED, "Declined")
        order.refresh_from_db()
        self.assertTrue(order.has_status([Order.FAILED]))
        self.assertEqual(order.notes.get().text, "Declined")


class CartTests(TestCase):
    def test_from_session_skips_unknown_products(self):
        product = make_product(price="40.00")
        cart = Cart.from_session({"cart": {str(product.pk): 2, "9999": 1}})
        self.assertEqual(cart.products(), [product])
        self.assertEqual(cart.total, Decimal("80.00"))


class CheckoutViewTests(TestCase):
    def test_cart_becomes_pending_order(self):
        product = make_product(price="75.50")
        session = self.client.session
        session["cart"] = {str(product.pk): 2}
        session.save()

        resp = self.client.post("/checkout/", {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
            "phone": "5551112233",
        })

        order = Order.objects.get()
        self.assertEqual(order.status, Order.PENDING)
        self.assertEqual(order.total, Decimal("151.00"))
        self.assertEqual(order.items.get().quantity, 2)
        self.assertTrue(resp["Location"].startswith(f"/orders/{order.pk}/pay/"))
        self.assertNotIn("cart", self.client.session)

    def test_empty_cart_is_rejected(self):
        resp = self.client.post("/checkout/", {"first_name": "A", "last_name": "B", "email": "a@b.co"})
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(Order.objects.exists())


class PayViewTests(TestCase):
    def setUp(self):
        cache.clear()
        self.order = make_order(products=[make_product()])
        self.url = f"/orders/{self.order.pk}/pay/?key={self.order.order_key}"

    def test_wrong_key_is_not_found(self):
        resp = self.client.get(f"/orders/{self.order.pk}/pay/?key=wc_order_nope")
        self.assertEqual(resp.status_code, 404)

    def test_submit_redirects_to_form_relay(self):
        with patch("qnbpay.client.requests.post", side_effect=FakeGateway()):
            resp = self.client.post(self.url, CARD)
        self.assertEqual(resp["Location"], f"/qnbpay/form/{self.order.pk}/?key={self.order.order_key}")
        self.assertEqual(OrderPayment.objects.get().state, OrderPayment.SUBMITTED)

    def test_page_renders_everything_a_payment_needs(self):
        page = self.client.get(self.url).content.decode()
        self.assertIn('name="qnbpay-installment" value="1"', page)
        self.assertIn("/static/qnbpay/qnbpay.js", page)

        fields = dict(re.findall(r'<input[^>]*name="([^"]+)"[^>]*value="([^"]*)"', page))
        for name in ("qnbpay-name-oncard", "qnbpay-card-number", "qnbpay-card-expiry", "qnbpay-card-cvc"):
            self.assertIn(f'name="{name}"', page)
            fields[name] = CARD[name]

        with patch("qnbpay.client.requests.post", side_effect=FakeGateway()):
            resp = self.client.post(self.url, fields)
        self.assertEqual(resp["Location"], f"/qnbpay/form/{self.order.pk}/?key={self.order.order_key}")

    def test_recheck_notice_loads_poller(self):
        OrderPayment.objects.create(order=self.order, recheck_message="Please wait")
        page = self.client.get(self.url + "&qnbpayrecheck=1")
        self.assertContains(page, 'data-qnbpayrecheck="1"')
        self.assertContains(page, "/static/qnbpay/qnbpay.js")

    def test_card_errors_are_shown(self):
        resp = self.client.post(self.url, {**CARD, "qnbpay-card-number": ""})
        self.assertContains(resp, "Card Number is required.")

    def test_token_failure_is_shown(self):
        gateway = FakeGateway(token=FakeResponse(500, None, text="down"))
        with patch("qnbpay.client.requests.post", side_effect=gateway):
            with self.assertLogs("qnbpay", level="ERROR"):
                resp = self.client.post(self.url, CARD)
        self.assertContains(resp, "Could not start payment process.")

    def test_paid_order_goes_to_receipt(self):
        self.order.update_status(Order.PAID)
        resp = self.client.get(self.url)
        self.assertTrue(resp["Location"].startswith(f"/orders/{self.order.pk}/received/"))


class ReceivedViewTests(TestCase):
    def test_success_banner(self):
        order = make_order(status=Order.PAID)
        resp = self.client.get(f"/orders/{order.pk}/received/", {"key": order.order_key, "qnbpaysuccess": "1"})
        self.assertContains(resp, "Your order has been paid successfully.")

    def test_wrong_key(self):
        order = make_order()
        resp = self.client.get(f"/orders/{order.pk}/received/", {"key": "x"})
        self.assertEqual(resp.status_code, 404)

import json
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase

from orders.models import Order
from qnbpay import crypto
from qnbpay.checkout import COMPLETED_NOTE, NOT_CONFIRMED, PAID, PaymentProcessor
from qnbpay.conf import TEST_API_HOST
from qnbpay.exceptions import AlreadyProcessed, AuthFailure, ValidationError
from qnbpay.models import InvoiceMapping, OrderPayment, TransactionLog

from .utils import (
    APP_SECRET,
    FakeGateway,
    FakeResponse,
    make_order,
    make_product,
    qnbpay_settings,
    status_reply,
    transport_error,
)

CARD = {
    "qnbpay-name-oncard": "Ada Lovelace",
    "qnbpay-card-number": "4546 7112 3456 7894",
    "qnbpay-card-expiry": "12 / 30",
    "qnbpay-card-cvc": "123",
    "qnbpay-installment": "6",
}


class ProcessPaymentTests(TestCase):
    def setUp(self):
        cache.clear()
        self.order = make_order(products=[make_product(price="100.00")])

    def _pay(self, gateway, data=CARD, **kwargs):
        with patch("qnbpay.client.requests.post", side_effect=gateway):
            return PaymentProcessor(**kwargs).process_payment(
                self.order, data, client_ip="10.0.0.1", base_url="https://shop.example"
            )

    def test_builds_signed_form_and_returns_relay_url(self):
        url = self._pay(FakeGateway())

        self.assertEqual(url, f"/qnbpay/form/{self.order.pk}/?key={self.order.order_key}")
        payment = self.order.qnbpay
        payment.refresh_from_db()
        mapping = InvoiceMapping.objects.get(order_id=self.order.pk)
        self.assertEqual(payment.state, OrderPayment.SUBMITTED)
        self.assertEqual(payment.invoice_id, mapping.invoice_id)
        self.assertIn(f'id="qnb_{mapping.invoice_id}"', payment.form_html)
        self.assertIn(f'action="{TEST_API_HOST}paySmart3D"', payment.form_html)
        self.assertIn('name="is_3d" value="yes"', payment.form_html)
        self.assertIn('name="expiry_year" value="2030"', payment.form_html)
        self.assertIn(
            f'value="https://shop.example/qnbpay/result/{self.order.pk}/?key={self.order.order_key}"',
            payment.form_html,
        )
        self.assertEqual(
            crypto.CHARGE_REQUEST.decode(payment.hash_key, APP_SECRET),
            {
                "total": "100.00",
                "installment": "6",
                "currency_code": "TRY",
                "merchant_key": "$2y$10$merchantkey",
                "invoice_id": mapping.invoice_id,
            },
        )

    def test_format_order_is_logged_with_card_data_masked(self):
        self._pay(FakeGateway())
        entry = TransactionLog.objects.get(action="formatOrder")
        self.assertEqual(entry.data["cc_no"], "45467112XXXXXXXX")
        self.assertEqual(entry.data["cvv"], "XXXXXXXX")
        self.assertEqual(entry.data["hash_key"], "XXXXXXXX")
        self.assertEqual(entry.details["qnbpay-card-number"], "45467112XXXXXXXX")
        items = json.loads(entry.data["items"])
        self.assertEqual(items, [{"name": "Book", "price": "100.00", "quantity": 1, "description": "Book"}])

    def test_token_failure_stops_before_any_charge(self):
        gateway = FakeGateway(token=FakeResponse(500, None, text="down"))
        with self.assertLogs("qnbpay.client", level="ERROR"):
            with self.assertRaises(AuthFailure):
                self._pay(gateway)

        self.assertEqual(gateway.methods(), ["token"])
        self.assertFalse(InvoiceMapping.objects.exists())
        payment = OrderPayment.objects.get(order=self.order)
        self.assertEqual(payment.state, OrderPayment.FAILED)
        self.assertEqual(payment.form_html, "")
        self.assertTrue(TransactionLog.objects.filter(action="tokenFailed").exists())

    def test_invalid_card_is_rejected_before_network(self):
        gateway = FakeGateway()
        with self.assertRaises(ValidationError) as ctx:
            self._pay(gateway, data={**CARD, "qnbpay-card-expiry": "13/30", "qnbpay-card-cvc": ""})
        self.assertEqual(gateway.calls, [])
        self.assertIn("Card CVC is required.", ctx.exception.messages)
        self.assertIn("Card Expiry is invalid.", ctx.exception.messages)

    def test_installment_is_clamped_to_policy(self):
        with qnbpay_settings(INSTALLMENT_LIMIT=3):
            self._pay(FakeGateway())
        payment = OrderPayment.objects.get(order=self.order)
        self.assertEqual(crypto.CHARGE_REQUEST.decode(payment.hash_key, APP_SECRET)["installment"], "3")

    def test_single_payment_skips_bin_lookup(self):
        gateway = FakeGateway()
        with qnbpay_settings(INSTALLMENT=False, ENABLE_3D=False, SALE_WEB_HOOK_KEY="hook1"):
            self._pay(gateway)
        self.assertEqual(gateway.methods(), ["token"])
        payment = OrderPayment.objects.get(order=self.order)
        self.assertIn("paySmart2D", payment.form_html)
        self.assertNotIn('name="is_3d"', payment.form_html)
        self.assertIn('name="sale_web_hook_key" value="hook1"', payment.form_html)
        self.assertEqual(crypto.CHARGE_REQUEST.decode(payment.hash_key, APP_SECRET)["installment"], "1")

    def test_resubmission_starts_a_new_attempt(self):
        self._pay(FakeGateway())
        self._pay(FakeGateway())
        self.assertEqual(InvoiceMapping.objects.filter(order_id=self.order.pk).count(), 2)
        payment = OrderPayment.objects.get(order=self.order)
        self.assertEqual(payment.invoice_id, InvoiceMapping.objects.filter(order_id=self.order.pk).first().invoice_id)

    def test_paid_order_cannot_be_charged_again(self):
        self.order.update_status(Order.PAID)
        with self.assertRaises(AlreadyProcessed):
            self._pay(FakeGateway())


class RelayFormTests(TestCase):
    def setUp(self):
        self.order = make_order()
        OrderPayment.objects.create(order=self.order, state=OrderPayment.SUBMITTED, form_html="<form></form>")

    def test_key_must_match(self):
        self.assertIsNone(PaymentProcessor().relay_form(self.order.pk, "wc_order_wrong"))

    def test_serves_stored_form_and_waits_for_confirmation(self):
        html = PaymentProcessor().relay_form(self.order.pk, self.order.order_key)
        self.assertEqual(html, "<form></form>")
        self.assertEqual(OrderPayment.objects.get().state, OrderPayment.AWAITING_CONFIRMATION)

    def test_view_renders_page(self):
        resp = self.client.get(f"/qnbpay/form/{self.order.pk}/", {"key": self.order.order_key})
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "<form></form>", html=False)

    def test_view_redirects_home_without_form(self):
        OrderPayment.objects.update(form_html="")
        resp = self.client.get(f"/qnbpay/form/{self.order.pk}/", {"key": self.order.order_key})
        self.assertRedirects(resp, "/", fetch_redirect_response=False)


class CompleteTests(TestCase):
    def setUp(self):
        self.order = make_order()
        self.payment = OrderPayment.objects.create(
            order=self.order, state=OrderPayment.AWAITING_CONFIRMATION, form_html="<form></form>"
        )

    def test_completes_once(self):
        processor = PaymentProcessor()
        processor.complete(self.order, transaction_id="PFX_1_1")
        with self.assertRaises(AlreadyProcessed):
            processor.complete(Order.objects.get(pk=self.order.pk))

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.PAID)
        self.assertEqual(self.order.transaction_id, "PFX_1_1")
        self.assertIsNotNone(self.order.paid_at)
        self.assertEqual(self.order.notes.filter(text=COMPLETED_NOTE).count(), 1)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.state, OrderPayment.COMPLETED)
        self.assertEqual(self.payment.form_html, "")

    def test_stale_order_object_cannot_complete_twice(self):
        stale = Order.objects.get(pk=self.order.pk)
        PaymentProcessor().complete(self.order)
        self.assertEqual(stale.status, Order.PENDING)
        with self.assertRaises(AlreadyProcessed):
            PaymentProcessor().complete(stale)

    def test_confirmed_payment_overrides_failed_attempt(self):
        OrderPayment.objects.update(state=OrderPayment.FAILED)
        with self.assertLogs("qnbpay.checkout", level="WARNING"):
            PaymentProcessor().complete(self.order)
        self.assertEqual(OrderPayment.objects.get().state, OrderPayment.COMPLETED)

    def test_any_ended_attempt_is_reported_on_completion(self):
        OrderPayment.objects.update(state=OrderPayment.COMPLETED)
        self.assertTrue(OrderPayment.objects.get().is_terminal)
        with self.assertLogs("qnbpay.checkout", level="WARNING") as logs:
            PaymentProcessor().complete(self.order)
        self.assertIn("ended as completed", logs.output[0])

    def test_custom_success_status(self):
        with qnbpay_settings(SUCCESS_STATUS="processing"):
            PaymentProcessor().complete(self.order)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.PROCESSING)


class RecheckTests(TestCase):
    def setUp(self):
        cache.clear()
        self.order = make_order()
        self.payment = OrderPayment.objects.create(
            order=self.order,
            state=OrderPayment.PENDING_RETRY,
            invoice_id=f"PFX_{self.order.pk}_1234567890",
            form_html="<form></form>",
            recheck_message="Your payment is being processed. Please wait...",
        )

    def _recheck(self, reply):
        with patch("qnbpay.client.requests.post", side_effect=FakeGateway(checkstatus=reply)):
            return PaymentProcessor().recheck(self.order)

    def test_confirmed_payment_completes_order(self):
        result = self._recheck(status_reply())
        self.assertTrue(result["status"])
        self.assertEqual(result["message"], PAID)
        self.assertIn("qnbpaysuccess=1", result["url"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.PAID)
        self.assertTrue(TransactionLog.objects.filter(action="recheckstatus").exists())

    def test_transport_failure_asks_client_to_retry(self):
        with self.assertLogs("qnbpay.client", level="ERROR"):
            result = self._recheck(transport_error())
        self.assertTrue(result["retry"])
        self.assertFalse(result["status"])
        self.assertEqual(Order.objects.get().status, Order.PENDING)

    def test_unconfirmed_payment_sends_buyer_back(self):
        result = self._recheck(status_reply(0, 100))
        self.assertFalse(result["retry"])
        self.assertEqual(result["message"], NOT_CONFIRMED)
        self.assertIn("qnbpayerror=1", result["url"])
        self.assertEqual(OrderPayment.objects.get().state, OrderPayment.PENDING_RETRY)
        self.assertEqual(Order.objects.get().status, Order.PENDING)

    def test_repeated_rechecks_are_idempotent(self):
        self._recheck(status_reply())
        result = self._recheck(status_reply())
        self.assertTrue(result["status"])
        self.assertEqual(self.order.notes.filter(text=COMPLETED_NOTE).count(), 1)

    def test_without_invoice(self):
        OrderPayment.objects.update(invoice_id="")
        result = PaymentProcessor().recheck(self.order)
        self.assertFalse(result["status"])
        self.assertEqual(result["message"], "Order identifier not found.")


class NoticeTests(TestCase):
    def setUp(self):
        self.order = make_order()
        OrderPayment.objects.create(
            order=self.order,
            state=OrderPayment.FAILED,
            error_message="Insufficient funds",
            recheck_message="Your payment is being processed. Please wait...",
        )

    def test_each_notice_is_shown_once(self):
        processor = PaymentProcessor()
        flags = {"qnbpayerror": "1", "qnbpayrecheck": "1"}
        self.assertEqual(processor.notices(self.order, flags), [
            ("error", "Insufficient funds"),
            ("recheck", "Your payment is being processed. Please wait..."),
        ])
        self.assertEqual(processor.notices(self.order, flags), [])

    def test_flags_are_required(self):
        self.assertEqual(PaymentProcessor().notices(self.order, {}), [])

    def test_only_for_pending_orders(self):
        self.order.update_status(Order.CANCELLED)
        self.assertEqual(PaymentProcessor().notices(self.order, {"qnbpayerror": "1"}), [])

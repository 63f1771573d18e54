"""Payment lifecycle for one order.

Three entry points can race on the same order: the charge form submission,
the browser returning from the provider, and the provider's webhook.  The
webhook and the return never trust the payload they carry; both ask
``checkstatus`` and only then try to complete the order.  Completion is a
conditional UPDATE, so whichever path gets there second is a no-op.
"""

import json
import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from urllib.parse import urlencode

from django.db import transaction
from django.urls import reverse
from django.utils import timezone
from django.utils.crypto import constant_time_compare, get_random_string

from orders.models import Order

from . import audit, crypto, invoices
from .client import QNBPayClient
from .conf import get_config
from .exceptions import (
    AlreadyProcessed,
    AuthFailure,
    InvalidPayload,
    LookupFailure,
    OrderNotFound,
    ValidationError,
)
from .forms import CardForm
from .installments import ORDER, InstallmentPolicy
from .models import GatewayOption, OrderPayment

logger = logging.getLogger(__name__)

WEBHOOK_OPTION = "webhook_hash"

REJECTED = "Payment for your order has been rejected by the payment broker."
NO_IDENTIFIER = "Order identifier not found."
NOT_CONFIRMED = "Payment has not been confirmed."
PROCESSING = "Your payment is being processed. Please wait..."
PAID = "Your order has been paid successfully."
RECHECK_AGAIN = "Check result not found. Trying again."
WEBHOOK_UNKNOWN_ERROR = "Unknown error reported by webhook."

COMPLETED_NOTE = "Payment completed via QNBPay."
WEBHOOK_COMPLETED_NOTE = "Payment completed via QNBPay Webhook."

S = OrderPayment
TRANSITIONS = {
    S.INITIATED: {S.TOKEN_ACQUIRED, S.FAILED},
    S.TOKEN_ACQUIRED: {S.SUBMITTED, S.FAILED},
    S.SUBMITTED: {S.AWAITING_CONFIRMATION, S.COMPLETED, S.FAILED, S.PENDING_RETRY},
    S.AWAITING_CONFIRMATION: {S.COMPLETED, S.FAILED, S.PENDING_RETRY},
    S.PENDING_RETRY: {S.COMPLETED, S.FAILED, S.PENDING_RETRY},
    S.COMPLETED: set(),
    # a provider-confirmed payment still wins over a failed attempt
    S.FAILED: {S.COMPLETED},
}


@dataclass
class ReturnResult:
    url: str
    message: str = ""


@dataclass
class WebhookResult:
    status: int
    message: str


def get_webhook_secret() -> str:
    """Per-install secret embedded in the webhook URL; created once."""
    secret = GatewayOption.get(WEBHOOK_OPTION)
    if not secret:
        secret = GatewayOption.put(WEBHOOK_OPTION, get_random_string(12))
    return secret


def parse_webhook_payload(body: bytes, post=None) -> dict:
    """JSON body first, form fields otherwise."""
    try:
        data = json.loads(body.decode("utf-8")) if body else None
    except (UnicodeDecodeError, ValueError):
        data = None
    if isinstance(data, dict) and data:
        return data
    return post.dict() if hasattr(post, "dict") else dict(post or {})


def get_order(order_id, order_key=None) -> Order:
    """Load an order, checking its key when one is given."""
    try:
        order = Order.objects.filter(pk=int(order_id)).first()
    except (TypeError, ValueError):
        order = None
    if order is None:
        raise OrderNotFound()
    if order_key is not None and not constant_time_compare(order.order_key, order_key):
        raise OrderNotFound()
    return order


def _money(value) -> str:
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_DOWN))


def _url(name, order, **query) -> str:
    url = reverse(name, args=[order.pk]) if order is not None else reverse(name)
    return f"{url}?{urlencode(query)}" if query else url


class PaymentProcessor:
    def __init__(self, config=None, client=None, policy=None):
        self.config = config or get_config()
        self.client = client or QNBPayClient(self.config)
        self.policy = policy or InstallmentPolicy.from_config(self.config)

    # ---------- urls ----------
    def pay_url(self, order, **flags) -> str:
        return _url("orders:pay", order, key=order.order_key, **flags)

    def received_url(self, order, **flags) -> str:
        return _url("orders:received", order, key=order.order_key, **flags)

    def checkout_url(self) -> str:
        return reverse("orders:checkout")

    def form_url(self, order) -> str:
        return _url("qnbpay:form", order, key=order.order_key)

    def result_url(self, order) -> str:
        return _url("qnbpay:result", order, key=order.order_key)

    # ---------- state ----------
    def is_paid(self, order) -> bool:
        return order.has_status(self.config.paid_statuses)

    def _payment(self, order) -> OrderPayment:
        payment, _ = OrderPayment.objects.get_or_create(order=order)
        return payment

    def _move(self, payment, state, **fields) -> OrderPayment:
        if state != payment.state and state not in TRANSITIONS[payment.state]:
            logger.warning(
                "Ignoring %s -> %s for order #%s", payment.state, state, payment.order_id
            )
        else:
            payment.state = state
        for name, value in fields.items():
            setattr(payment, name, value)
        payment.save()
        return payment

    def start_attempt(self, order) -> OrderPayment:
        """Reset per-attempt state; every new card submission is a new attempt."""
        if self.is_paid(order):
            raise AlreadyProcessed()
        payment = self._payment(order)
        payment.state = OrderPayment.INITIATED
        payment.invoice_id = ""
        payment.hash_key = ""
        payment.form_html = ""
        payment.error_message = ""
        payment.recheck_message = ""
        payment.save()
        return payment

    # ---------- form submission ----------
    def _items(self, order) -> list:
        items = []
        for item in order.items.all():
            quantity = item.quantity or 1
            price = (item.total + item.total_tax) / quantity
            items.append({
                "name": item.name,
                "price": _money(price),
                "quantity": quantity,
                "description": item.name,
            })
        return items

    def build_charge(self, order, card, installment, mapping, base_url="", client_ip="") -> dict:
        total = _money(order.total)
        hash_key = crypto.CHARGE_REQUEST.encode({
            "total": total,
            "installment": installment,
            "currency_code": order.currency,
            "merchant_key": self.config.merchant_key,
            "invoice_id": mapping.invoice_id,
        }, self.config.app_secret)
        return_url = base_url + self.result_url(order)
        month, year = card["card_expiry"]

        params = {
            "cc_holder_name": card["name_oncard"],
            "cc_no": card["card_number"],
            "expiry_month": month,
            "expiry_year": year,
            "cvv": card["card_cvc"],
            "currency_code": order.currency,
            "installments_number": installment,
            "invoice_id": mapping.invoice_id,
            "invoice_description": "Order Payment OrderId:%s - CustomOrderId:%s - InvoiceId:%s" % (
                order.pk, mapping.custom_order_id, mapping.invoice_id,
            ),
            "total": total,
            "merchant_key": self.config.merchant_key,
            "items": json.dumps(self._items(order), ensure_ascii=False),
            "name": order.billing_first_name,
            "surname": order.billing_last_name,
            "cancel_url": return_url,
            "return_url": return_url,
            "hash_key": hash_key,
            "transaction_type": "Auth",
            "is_comission_from_user": 0,
            "response_method": "POST",
            "bill_email": order.billing_email,
            "bill_phone": order.billing_phone,
            "ip": client_ip,
        }
        if self.config.sale_web_hook_key:
            params["sale_web_hook_key"] = self.config.sale_web_hook_key
        if self.config.enable_3d:
            params["is_3d"] = "yes"
        return params

    def process_payment(self, order, data, client_ip="", base_url="") -> str:
        """Prepare the self-submitting charge form and return the relay URL.

        Raises ``ValidationError`` for bad card input and ``AuthFailure`` when no
        token can be had; in both cases no charge is attempted.
        """
        form = CardForm(data, require_installment=self.config.installment)
        if not form.is_valid():
            raise ValidationError([e for errors in form.errors.values() for e in errors])
        card = form.cleaned_data

        payment = self.start_attempt(order)
        try:
            self.client.get_token()
        except AuthFailure as e:
            audit.record(order.pk, "tokenFailed", data, {"error": e.message})
            self._move(payment, OrderPayment.FAILED, error_message=e.message)
            raise
        self._move(payment, OrderPayment.TOKEN_ACQUIRED)

        maximum = self.policy.max_installments(ORDER, order=order)
        options = []
        if maximum > 1:
            try:
                options = self.client.request_bin(card["card_number"][:8], amount=_money(order.total), currency=order.currency)
            except LookupFailure as e:
                logger.warning("BIN lookup failed for order #%s: %s", order.pk, e.message)
        installment = self.policy.reconcile(card["installment"], options, maximum)

        mapping = invoices.mint(order.pk, self.config.order_prefix)
        params = self.build_charge(order, card, installment, mapping, base_url=base_url, client_ip=client_ip)
        audit.record(order.pk, "formatOrder", params, data)

        html = self.client.render_charge_form(params, f"qnb_{mapping.invoice_id}")
        self._move(
            payment,
            OrderPayment.SUBMITTED,
            invoice_id=mapping.invoice_id,
            hash_key=params["hash_key"],
            form_html=html,
        )
        return self.form_url(order)

    def relay_form(self, order_id, order_key):
        payment = OrderPayment.objects.select_related("order").filter(order_id=order_id).first()
        if payment is None or not payment.form_html:
            return None
        if not constant_time_compare(payment.order.order_key, order_key or ""):
            return None
        if payment.state == OrderPayment.SUBMITTED:
            self._move(payment, OrderPayment.AWAITING_CONFIRMATION)
        return payment.form_html

    # ---------- verification / completion ----------
    def verify(self, order, invoice_id, action, details=None):
        try:
            status = self.client.check_status(invoice_id)
        except (AuthFailure, LookupFailure) as e:
            audit.record(order.pk, action, {"invoice_id": invoice_id, "error": e.message, "body": e.body}, details)
            raise
        audit.record(order.pk, action, status.raw, details)
        return status

    def complete(self, order, note=COMPLETED_NOTE, transaction_id=""):
        """Mark ``order`` paid exactly once; raise ``AlreadyProcessed`` otherwise."""
        now = timezone.now()
        with transaction.atomic():
            updated = (
                Order.objects.filter(pk=order.pk)
                .exclude(status__in=self.config.paid_statuses)
                .update(
                    status=self.config.success_status,
                    transaction_id=transaction_id,
                    paid_at=now,
                    updated_at=now,
                )
            )
            if not updated:
                raise AlreadyProcessed()
            order.refresh_from_db()
            order.add_note(note)

            payment = OrderPayment.objects.select_for_update().filter(order=order).first()
            if payment is None:
                payment = OrderPayment(order=order)
            elif payment.is_terminal:
                logger.warning("Order #%s confirmed paid after its attempt ended as %s", order.pk, payment.state)
            payment.state = OrderPayment.COMPLETED
            payment.form_html = ""
            payment.error_message = ""
            payment.recheck_message = ""
            payment.save()
        logger.info("Order #%s paid via QNBPay (%s)", order.pk, transaction_id)
        return order

    def _fail_order(self, order, reason, transaction_id):
        with transaction.atomic():
            updated = (
                Order.objects.filter(pk=order.pk)
                .exclude(status__in=self.config.paid_statuses)
                .update(status=Order.FAILED, updated_at=timezone.now())
            )
            if not updated:
                raise AlreadyProcessed()
            order.refresh_from_db()
            order.add_note("QNBPay status confirmed as Failed via checkstatus. Reason: %s" % reason)
            order.add_note(
                "QNBPay payment failed confirmation via checkstatus. Transaction ID: %s. Reason: %s"
                % (transaction_id, reason)
            )
            self._move(self._payment(order), OrderPayment.FAILED, error_message=reason, form_html="")

    # ---------- redirect return ----------
    def _reject(self, order, payment, message) -> ReturnResult:
        order.update_status(Order.PENDING, message)
        self._move(payment, OrderPayment.FAILED, error_message=message)
        return ReturnResult(self.pay_url(order, qnbpayerror=1, pay_for_order="true"), message)

    def _unconfirmed(self, order, payment, message) -> ReturnResult:
        """checkstatus did not confirm the payment; keep the attempt open for reconcile."""
        order.update_status(Order.PENDING, message)
        self._move(payment, OrderPayment.PENDING_RETRY, error_message=message, recheck_message="")
        return ReturnResult(self.pay_url(order, qnbpayerror=1, pay_for_order="true"), message)

    def handle_return(self, order_id, order_key, method, post) -> ReturnResult:
        order = Order.objects.filter(pk=order_id).first()
        payment = OrderPayment.objects.filter(order_id=order_id).first()
        if order is None or payment is None or not constant_time_compare(order.order_key, order_key or ""):
            return ReturnResult(self.checkout_url())

        if self.is_paid(order):
            if payment.form_html:
                payment.form_html = ""
                payment.save(update_fields=["form_html", "updated_at"])
            return ReturnResult(self.received_url(order))
        if not payment.form_html:
            return ReturnResult(self.checkout_url())

        post = dict(post.items()) if method == "POST" and post else {}
        audit.record(order.pk, "qnbReply", post)

        if str(post.get("payment_status", "0")).strip() != "1":
            return self._reject(order, payment, post.get("status_description") or REJECTED)

        invoice_id = post.get("invoice_id")
        if not invoice_id:
            return self._reject(order, payment, NO_IDENTIFIER)
        try:
            _, invoice_order_id, _ = invoices.parse_invoice_id(invoice_id)
        except InvalidPayload:
            invoice_order_id = 0
        if invoice_order_id != order.pk:
            logger.warning("Return for order #%s carried foreign invoice %s", order.pk, invoice_id)
            return self._reject(order, payment, NO_IDENTIFIER)

        payment.invoice_id = invoice_id
        payment.save(update_fields=["invoice_id", "updated_at"])

        try:
            status = self.verify(order, invoice_id, "checkstatus", post)
        except (AuthFailure, LookupFailure):
            order.update_status(Order.PENDING, PROCESSING)
            self._move(payment, OrderPayment.PENDING_RETRY, recheck_message=PROCESSING)
            return ReturnResult(self.pay_url(order, qnbpayrecheck=1), PROCESSING)

        if status.paid:
            try:
                self.complete(order, COMPLETED_NOTE, transaction_id=invoice_id)
            except AlreadyProcessed:
                logger.info("Order #%s was completed by another request", order.pk)
            return ReturnResult(self.received_url(order, qnbpaysuccess=1), PAID)

        return self._unconfirmed(order, payment, post.get("status_description") or NOT_CONFIRMED)

    # ---------- webhook ----------
    def handle_webhook(self, key, payload) -> WebhookResult:
        if not key:
            return WebhookResult(403, "Missing key")
        if not constant_time_compare(str(key), get_webhook_secret()):
            return WebhookResult(403, "Invalid key")

        hash_key = payload.get("hash_key")
        if not hash_key:
            logger.warning("Webhook missing hash_key")
            return WebhookResult(400, "Missing hash_key")
        try:
            decoded = crypto.PAYMENT_RESULT.decode(hash_key, self.config.app_secret)
        except InvalidPayload as e:
            logger.warning("Webhook hash_key rejected: %s", e.message)
            return WebhookResult(403, "Invalid hash_key")

        invoice_id = payload.get("invoice_id")
        payment_status = payload.get("payment_status")
        order_no = payload.get("order_no") or ""
        reason = payload.get("error") or WEBHOOK_UNKNOWN_ERROR
        if not invoice_id or payment_status is None:
            logger.warning("Webhook missing invoice_id or payment_status: %s", reason)
            return WebhookResult(400, "Missing parameters")

        try:
            _, order_id, _ = invoices.parse_invoice_id(invoice_id)
        except InvalidPayload:
            logger.warning("Webhook invalid invoice_id format: %s", invoice_id)
            return WebhookResult(400, "Invalid invoice_id format")
        if not order_id:
            logger.warning("Webhook invalid order id in invoice %s", invoice_id)
            return WebhookResult(200, "Order ID not valid")

        try:
            order = get_order(order_id)
        except OrderNotFound:
            logger.warning("Webhook for unknown order #%s (invoice %s)", order_id, invoice_id)
            return WebhookResult(200, "Order not found")

        audit.record(order.pk, "handle_webhook", payload, {"decoded": decoded})
        if self.is_paid(order):
            return WebhookResult(200, "Order already processed")

        try:
            self.client.get_token()
        except AuthFailure:
            logger.error("Webhook could not get a token for order #%s", order.pk)
            return WebhookResult(500, "Cannot get token")
        try:
            status = self.verify(order, invoice_id, "checkstatus", payload)
        except (AuthFailure, LookupFailure):
            logger.error("Webhook checkstatus failed for order #%s", order.pk)
            return WebhookResult(500, "Checkstatus request failed")

        if status.paid:
            try:
                self.complete(order, WEBHOOK_COMPLETED_NOTE, transaction_id=order_no or invoice_id)
            except AlreadyProcessed:
                return WebhookResult(200, "Order already processed")
            return WebhookResult(200, "OK")

        try:
            self._fail_order(order, reason, order_no)
        except AlreadyProcessed:
            return WebhookResult(200, "Order already processed")
        logger.info("Order #%s failed per checkstatus: %s", order.pk, reason)
        return WebhookResult(200, "OK")

    # ---------- client-driven recheck ----------
    def recheck(self, order) -> dict:
        result = {"status": False, "message": False, "retry": False, "url": False}
        if self.is_paid(order):
            result.update(status=True, message=PAID, url=self.received_url(order, qnbpaysuccess=1))
            return result

        payment = self._payment(order)
        if not payment.invoice_id:
            result["message"] = NO_IDENTIFIER
            return result

        try:
            status = self.verify(order, payment.invoice_id, "recheckstatus", {"orderid": order.pk})
        except (AuthFailure, LookupFailure):
            result.update(retry=True, message=RECHECK_AGAIN)
            return result

        if status.paid:
            try:
                self.complete(order, COMPLETED_NOTE, transaction_id=payment.invoice_id)
            except AlreadyProcessed:
                pass
            result.update(status=True, message=PAID, url=self.received_url(order, qnbpaysuccess=1))
            return result

        result.update(message=NOT_CONFIRMED, url=self._unconfirmed(order, payment, NOT_CONFIRMED).url)
        return result

    # ---------- order-pay notices ----------
    def notices(self, order, flags) -> list:
        """Messages to show once on the order-pay page while the order is pending."""
        if order.status != Order.PENDING:
            return []
        payment = OrderPayment.objects.filter(order=order).first()
        if payment is None:
            return []
        out, changed = [], []
        if str(flags.get("qnbpayerror")) == "1" and payment.error_message:
            out.append(("error", payment.error_message))
            payment.error_message = ""
            changed.append("error_message")
        if str(flags.get("qnbpayrecheck")) == "1" and payment.recheck_message:
            out.append(("recheck", payment.recheck_message))
            payment.recheck_message = ""
            changed.append("recheck_message")
        if changed:
            payment.save(update_fields=changed + ["updated_at"])
        return out

import logging

from django.db import transaction
from django.http import Http404, HttpResponseBadRequest
from django.shortcuts import get_object_or_404, redirect, render
from django.utils.crypto import constant_time_compare
from django.utils.safestring import mark_safe
from django.views.decorators.http import require_http_methods

from qnbpay.checkout import PaymentProcessor
from qnbpay.exceptions import AlreadyProcessed, AuthFailure, ExhaustedRetries, ValidationError
from qnbpay.installments import ORDER
from qnbpay.views import get_client_ip

from .cart import Cart
from .forms import BillingForm
from .models import Order

logger = logging.getLogger(__name__)


def _order_for_key(request, order_id):
    order = get_object_or_404(Order, pk=order_id)
    if not constant_time_compare(order.order_key, request.GET.get("key", "")):
        raise Http404("Unknown order")
    return order


@require_http_methods(["GET", "POST"])
def checkout_view(request):
    """Turn the session cart into a pending order and send the buyer to pay for it."""
    cart = Cart.from_session(request.session)
    form = BillingForm(request.POST or None)
    if request.method == "POST":
        if not cart.lines:
            return HttpResponseBadRequest("Cart is empty")
        if form.is_valid():
            data = form.cleaned_data
            with transaction.atomic():
                order = Order.objects.create(
                    total=cart.total,
                    currency=cart.currency,
                    billing_first_name=data["first_name"],
                    billing_last_name=data["last_name"],
                    billing_email=data["email"],
                    billing_phone=data["phone"],
                )
                for line in cart.lines:
                    order.items.create(
                        product=line.product,
                        name=line.product.name,
                        quantity=line.quantity,
                        total=line.total,
                    )
            cart.empty(request.session)
            return redirect(PaymentProcessor().pay_url(order))
    return render(request, "orders/checkout.html", {"cart": cart, "form": form})


@require_http_methods(["GET", "POST"])
def order_pay_view(request, order_id: int):
    order = _order_for_key(request, order_id)
    processor = PaymentProcessor()
    if processor.is_paid(order):
        return redirect(processor.received_url(order))

    errors = []
    if request.method == "POST":
        try:
            url = processor.process_payment(
                order,
                request.POST,
                client_ip=get_client_ip(request),
                base_url=request.build_absolute_uri("/").rstrip("/"),
            )
            return redirect(url)
        except ValidationError as e:
            errors = e.messages
        except AuthFailure:
            errors = ["Could not start payment process."]
        except AlreadyProcessed:
            return redirect(processor.received_url(order))
        except ExhaustedRetries:
            logger.exception("Could not mint an invoice id for order #%s", order.pk)
            errors = ["Could not start payment process."]

    notices = processor.notices(order, request.GET)
    maximum = processor.policy.max_installments(ORDER, order=order)
    return render(request, "orders/pay.html", {
        "order": order,
        "errors": errors,
        "notices": notices,
        "installment_enabled": processor.config.installment,
        "installments": mark_safe(processor.policy.render([], maximum, ORDER)),
    })


def order_received_view(request, order_id: int):
    order = _order_for_key(request, order_id)
    return render(request, "orders/received.html", {
        "order": order,
        "success": request.GET.get("qnbpaysuccess") == "1",
    })

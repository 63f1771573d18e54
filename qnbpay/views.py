import ipaddress
import logging
import uuid

from django.contrib.admin.views.decorators import staff_member_required
from django.http import FileResponse, HttpResponse, JsonResponse
from django.shortcuts import redirect, render
from django.utils.safestring import mark_safe
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from orders.cart import Cart

from .audit import debug_log
from .checkout import PaymentProcessor, get_order, parse_webhook_payload
from .client import run_self_test
from .exceptions import OrderNotFound, ValidationError
from .installments import CART, ORDER, InstallmentPolicy

logger = logging.getLogger(__name__)


def _valid_ip(value):
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    return value.strip()


def get_client_ip(request) -> str:
    """Best guess at the buyer's address behind Cloudflare or a proxy."""
    meta = request.META
    for header in ("HTTP_CF_CONNECTING_IP", "HTTP_CLIENT_IP", "HTTP_X_FORWARDED_FOR"):
        value = meta.get(header)
        if value:
            ip = _valid_ip(value.split(",")[0])
            if ip:
                return ip
    return _valid_ip(meta.get("REMOTE_ADDR", "")) or "127.0.0.1"


@csrf_exempt
@require_POST
def webhook_view(request):
    """Provider notification. Acknowledged with a bounded status, never a traceback."""
    try:
        payload = parse_webhook_payload(request.body, request.POST)
        debug_log.write("webhook", {"payload": payload}, client_ip=get_client_ip(request))
        result = PaymentProcessor().handle_webhook(request.GET.get("key"), payload)
    except Exception:
        logger.exception("QNBPay webhook failed")
        return HttpResponse("Internal error", status=500, content_type="text/plain")
    return HttpResponse(result.message, status=result.status, content_type="text/plain")


@csrf_exempt
@require_http_methods(["GET", "POST"])
def result_view(request, order_id: int):
    processor = PaymentProcessor()
    try:
        result = processor.handle_return(order_id, request.GET.get("key", ""), request.method, request.POST)
    except Exception:
        logger.exception("QNBPay return handling failed for order #%s", order_id)
        return redirect(processor.checkout_url())
    return redirect(result.url)


def form_view(request, order_id: int):
    try:
        html = PaymentProcessor().relay_form(order_id, request.GET.get("key", ""))
    except Exception:
        logger.exception("QNBPay form relay failed for order #%s", order_id)
        html = None
    if not html:
        return redirect("/")
    return render(request, "qnbpay/form_relay.html", {"form": mark_safe(html)})


def _order_from_request(request):
    try:
        return get_order(request.POST.get("order") or 0, request.POST.get("key", ""))
    except OrderNotFound:
        return None


@require_POST
def bin_view(request):
    state = ORDER if request.POST.get("state") == ORDER else CART
    order = _order_from_request(request) if state == ORDER else None
    cart = Cart.from_session(request.session) if state == CART else None
    if state == ORDER and order is None:
        return JsonResponse({"status": False, "message": "Order not found."}, status=404)
    try:
        result = InstallmentPolicy.from_config().validate_bin(
            request.POST.get("binNumber", ""),
            state=state,
            order=order,
            cart=cart,
        )
    except ValidationError as e:
        return JsonResponse({"status": False, "message": e.messages[0]}, status=400)
    return JsonResponse(result)


@require_POST
def recheck_view(request):
    if not request.POST.get("orderid"):
        return JsonResponse({"status": False, "message": "Order ID is required.", "retry": False, "url": False})
    try:
        order = get_order(request.POST.get("orderid"), request.POST.get("key", ""))
    except OrderNotFound:
        return JsonResponse({"status": False, "message": "Order not found.", "retry": False, "url": False})
    try:
        result = PaymentProcessor().recheck(order)
    except Exception:
        logger.exception("QNBPay recheck failed for order #%s", order.pk)
        result = {"status": False, "message": "Check result not found. Trying again.", "retry": True, "url": False}
    return JsonResponse(result)


@staff_member_required
@require_POST
def debug_download_view(request):
    if not debug_log.exists():
        return JsonResponse({"status": False, "message": "Cant find debug file"}, status=404)
    return FileResponse(open(debug_log.path, "rb"), as_attachment=True, filename=f"{uuid.uuid4()}.log")


@staff_member_required
@require_POST
def debug_clear_view(request):
    if debug_log.clear():
        return JsonResponse({"status": True, "message": "Success"})
    return JsonResponse({"status": False, "message": "Cant find debug file"})


@staff_member_required
@require_POST
def gateway_test_view(request):
    return JsonResponse(run_self_test())

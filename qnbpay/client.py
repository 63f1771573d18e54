import logging
import random
import time
from dataclasses import dataclass, field

import requests
from django.core.cache import cache as default_cache
from django.template.loader import render_to_string
from django.utils.text import slugify
from requests import RequestException

from . import crypto
from .audit import debug_log
from .conf import VERSION, get_config
from .exceptions import AuthFailure, LookupFailure

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = "qnbpay_token"
TOKEN_TTL = 60 * 60
SUCCESS_CODE = 100

TEST_CARDS = [
    "4546711234567894",
    "5571135571135575",
    "6501738564461396",
    "4159560047417732",
    "4506349043174632",
]


@dataclass
class PaymentStatus:
    md_status: int = 0
    status_code: int = 0
    description: str = ""
    raw: dict = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        return self.md_status == 1 and self.status_code == SUCCESS_CODE


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class QNBPayClient:
    """Thin wrapper around the QNBPay ccpayment API.

    No call is retried here; the caller decides what a failure means.
    """

    def __init__(self, config=None, cache=None):
        self.config = config or get_config()
        self.cache = cache if cache is not None else default_cache

    # ---------- transport ----------
    def _post(self, method: str, params: dict, token: str = None) -> requests.Response:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"qnbpay-storefront/{VERSION}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = self.config.api_host + method
        try:
            resp = requests.post(url, json=params, headers=headers, timeout=self.config.timeout)
        except RequestException as e:
            logger.exception("QNBPay %s request failed", method)
            debug_log.write(f"request {method}", {"params": params, "headers": headers, "error": str(e)})
            raise LookupFailure(f"Gateway request failed: {e}")
        debug_log.write(
            f"request {method}",
            {"params": params, "headers": headers, "code": resp.status_code, "body": resp.text},
        )
        return resp

    def _json(self, resp) -> dict:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _call(self, method: str, params: dict) -> dict:
        """POST an authenticated call and return ``data`` of a status_code 100 reply."""
        token = self.get_token()
        resp = self._post(method, params, token=token)
        if resp.status_code != 200:
            logger.error("QNBPay %s failed: status=%s text=%s", method, resp.status_code, resp.text[:500])
            raise LookupFailure("Cant connect to payment agent.", code=resp.status_code)
        body = self._json(resp)
        if "status_code" not in body:
            raise LookupFailure("Cant get any results from payment agent.", code=resp.status_code, body=body)
        if _as_int(body.get("status_code")) != SUCCESS_CODE:
            raise LookupFailure(
                body.get("status_description") or "Payment agent rejected the request.",
                code=body.get("status_code"),
                body=body,
            )
        return body.get("data")

    # ---------- API ----------
    def get_token(self) -> str:
        token = self.cache.get(TOKEN_CACHE_KEY)
        if token:
            return token

        params = {"app_id": self.config.app_key, "app_secret": self.config.app_secret}
        try:
            resp = self._post("token", params)
        except LookupFailure as e:
            raise AuthFailure(e.message)
        if resp.status_code != 200:
            logger.error("QNBPay token request failed: status=%s", resp.status_code)
            raise AuthFailure(code=resp.status_code)
        token = (self._json(resp).get("data") or {}).get("token")
        if not token:
            raise AuthFailure(code=resp.status_code)
        self.cache.set(TOKEN_CACHE_KEY, token, TOKEN_TTL)
        return token

    def request_bin(self, credit_card: str, amount="100", currency: str = "TRY") -> list:
        data = self._call("getpos", {
            "credit_card": credit_card,
            "amount": str(amount),
            "currency_code": currency,
            "merchant_key": self.config.merchant_key,
            "is_comission_from_user": 0,
        })
        return list(data or [])

    def get_commissions(self, currency: str = "TRY"):
        return self._call("commissions", {"currency_code": currency})

    def check_status(self, invoice_id: str, include_pending: bool = True) -> PaymentStatus:
        token = self.get_token()
        params = {
            "invoice_id": invoice_id,
            "merchant_key": self.config.merchant_key,
            "hash_key": crypto.STATUS_REQUEST.encode(
                {"invoice_id": invoice_id, "merchant_key": self.config.merchant_key},
                self.config.app_secret,
            ),
            "include_pending_status": include_pending,
        }
        resp = self._post("checkstatus", params, token=token)
        body = self._json(resp)
        if resp.status_code != 200 or not body:
            logger.error("QNBPay checkstatus failed for %s: status=%s", invoice_id, resp.status_code)
            raise LookupFailure("Check result not found.", code=resp.status_code, body=body)
        return PaymentStatus(
            md_status=_as_int(body.get("mdStatus")),
            status_code=_as_int(body.get("status_code")),
            description=str(body.get("status_description") or ""),
            raw=body,
        )

    # ---------- browser-driven charge ----------
    def charge_endpoint(self) -> str:
        return self.config.api_host + self.config.charge_method

    def render_charge_form(self, params: dict, form_id: str) -> str:
        return render_to_string("qnbpay/charge_form.html", {
            "form_id": form_id,
            "action": self.charge_endpoint(),
            "fields": list(params.items()),
        })


def installment_counts(options) -> list:
    return [_as_int(o.get("installments_number")) for o in options or [] if isinstance(o, dict)]


def format_installment_response(response) -> dict:
    """Group commission rates by card program; ``"x"`` marks an inactive rate."""
    output = {}
    if not response:
        return output
    for count, cards in dict(response).items():
        for card in cards or []:
            slug = slugify(card.get("card_program") or "")
            group = output.setdefault(slug, {"groupName": slug, "rates": {}})
            commission = card.get("merchant_commission_percentage")
            if commission != "x":
                group["rates"][count] = {"active": 1, "value": commission}
    return output


def run_self_test(client=None) -> dict:
    """Commission lookup plus a BIN lookup with a random test card."""
    client = client or QNBPayClient()
    result = {
        "time": int(time.time()),
        "status": False,
        "commissioncheck": False,
        "bincheck": False,
        "remote": True,
        "message": False,
    }
    if not client.config.has_credentials:
        result["message"] = "The test function can be performed after saving the merchant information."
        return result

    try:
        result["commissiondata"] = format_installment_response(client.get_commissions())
        result["commissioncheck"] = True
    except (AuthFailure, LookupFailure) as e:
        result["commissiondata"] = {"message": e.message}

    result["credit_card"] = random.choice(TEST_CARDS)
    try:
        result["bindata"] = client.request_bin(result["credit_card"][:8])
        result["bincheck"] = True
    except (AuthFailure, LookupFailure) as e:
        result["bindata"] = {"message": e.message}

    result["status"] = True
    return result

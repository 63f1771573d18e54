"""Provider-facing invoice ids: ``<prefix>_<order_id>_<custom_order_id>``."""

import logging
import secrets

from django.db import IntegrityError, transaction

from .conf import get_config
from .exceptions import ExhaustedRetries, InvalidPayload, MappingNotFound
from .models import InvoiceMapping

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10
LOOKUP_FIELDS = ("order_id", "custom_order_id", "invoice_id")


def _draw() -> int:
    # ten digits, never a leading zero
    return 1000000000 + secrets.randbelow(9000000000)


def mint(order_id, prefix=None) -> InvoiceMapping:
    prefix = prefix or get_config().order_prefix
    for attempt in range(1, MAX_ATTEMPTS + 1):
        custom_order_id = _draw()
        if InvoiceMapping.objects.filter(custom_order_id=custom_order_id).exists():
            logger.info("custom order id collision on attempt %s", attempt)
            continue
        invoice_id = f"{prefix}_{order_id}_{custom_order_id}"
        try:
            with transaction.atomic():
                return InvoiceMapping.objects.create(
                    order_id=order_id,
                    custom_order_id=custom_order_id,
                    invoice_id=invoice_id,
                )
        except IntegrityError:
            logger.info("invoice id %s taken concurrently, retrying", invoice_id)
    raise ExhaustedRetries(f"No free order identifier for order {order_id} after {MAX_ATTEMPTS} attempts")


def lookup(by: str, value) -> InvoiceMapping:
    if by not in LOOKUP_FIELDS:
        raise ValueError(f"Cannot look up invoice mappings by {by!r}")
    mapping = InvoiceMapping.objects.filter(**{by: value}).order_by("-created_at", "-id").first()
    if mapping is None:
        raise MappingNotFound()
    return mapping


def parse_invoice_id(invoice_id: str):
    """Split an invoice id into ``(prefix, order_id, custom_order_id)``.

    ``order_id`` is an int, or 0 when that segment is not a positive number.
    """
    parts = str(invoice_id or "").split("_")
    if len(parts) != 3:
        raise InvalidPayload("Invalid invoice_id format.")
    prefix, order_part, custom_part = parts
    try:
        order_id = int(order_part)
    except ValueError:
        order_id = 0
    return prefix, max(order_id, 0), custom_part

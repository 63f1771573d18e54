"""Transaction audit trail and the optional plaintext debug file."""

import json, logging, socket, uuid
from pathlib import Path

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from .conf import VERSION, get_config
from .models import GatewayOption, TransactionLog

logger = logging.getLogger(__name__)

MASK = "XXXXXXXX"
CARD_NUMBER_KEYS = {"qnbpay-card-number", "cc_no", "credit_card"}
SECRET_KEYS = {
    "app_secret",
    "app_key",
    "password",
    "token",
    "hash_key",
    "cvv",
    "qnbpay-card-cvc",
    "authorization",
}


class _LenientEncoder(DjangoJSONEncoder):
    def default(self, o):
        try:
            return super().default(o)
        except TypeError:
            return str(o)


def _mask_leaf(key, value):
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return value
    lower_key = str(key).lower()
    if lower_key in CARD_NUMBER_KEYS:
        digits = "".join(str(value).split())
        if digits.isdigit() and len(digits) > 8:
            return digits[:8] + "X" * (len(digits) - 8)
        return value
    if lower_key in SECRET_KEYS:
        return MASK
    return value


def mask_sensitive_data(data):
    """Return a copy of ``data`` with card numbers truncated and secrets hidden.

    Dicts, lists and tuples are walked recursively; any other leaf is returned
    unchanged.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if isinstance(value, (dict, list, tuple)):
                masked[key] = mask_sensitive_data(value)
            else:
                masked[key] = _mask_leaf(key, value)
        return masked
    if isinstance(data, (list, tuple)):
        return [mask_sensitive_data(item) for item in data]
    return data


def to_json_value(data):
    """Coerce ``data`` into something a JSONField stores without complaint."""
    return json.loads(json.dumps(data, cls=_LenientEncoder))


def _safe_masked(data):
    try:
        return to_json_value(mask_sensitive_data(data))
    except (TypeError, ValueError, RecursionError):
        logger.warning("Could not mask audit payload of type %s; storing repr", type(data).__name__)
        return repr(data)


def record(order_id, action, data, details=None) -> TransactionLog:
    entry = TransactionLog.objects.create(
        order_id=int(order_id or 0),
        action=action,
        data=_safe_masked(data),
        details=_safe_masked(details if details is not None else []),
    )
    debug_log.write(f"{action} #{order_id}", {"data": data, "details": details})
    return entry


class DebugLog:
    """Append-only plaintext trace written only when ``QNBPAY['DEBUG']`` is on.

    The file name is random, persisted, and regenerated whenever the package
    version changes.
    """

    FILE_OPTION = "debug_file"
    VERSION_OPTION = "debug_version"

    @property
    def directory(self) -> Path:
        return Path(getattr(settings, "QNBPAY_DEBUG_DIR", "."))

    def filename(self) -> str:
        current = GatewayOption.get(self.FILE_OPTION)
        version = GatewayOption.get(self.VERSION_OPTION, "0.0.0")
        if current and version == VERSION:
            return current
        current = f"{uuid.uuid4()}.qnbpay"
        GatewayOption.put(self.FILE_OPTION, current)
        GatewayOption.put(self.VERSION_OPTION, VERSION)
        return current

    @property
    def path(self) -> Path:
        return self.directory / self.filename()

    def write(self, kind: str, data, client_ip: str = None) -> bool:
        if not get_config().debug:
            return False
        try:
            server_ip = socket.gethostbyname(socket.gethostname())
        except OSError:
            server_ip = "N/A"
        body = json.dumps(mask_sensitive_data(data), cls=_LenientEncoder, indent=4, ensure_ascii=False)
        line = " ".join([
            f"[{timezone.localtime():%Y-%m-%d %H:%M:%S}]",
            f"[{kind}]",
            f"[Server IP: {server_ip}]",
            f"[Client IP: {client_ip or 'N/A'}]",
            body,
        ])
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write("\n" + line + "\n")
        except OSError:
            logger.exception("Could not write QNBPay debug file")
            return False
        return True

    def exists(self) -> bool:
        return self.path.exists()

    def clear(self) -> bool:
        path = self.path
        if not path.exists():
            return False
        path.unlink()
        return True


debug_log = DebugLog()

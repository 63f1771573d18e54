"""QNBPay ``hash_key`` codec.

A hash key is ``iv:salt:ciphertext`` where the plaintext is the ``|``-joined
field values.  Only values travel, so the field order of each schema is the
whole contract with the provider.
"""

import base64, binascii, hashlib, secrets
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

from .exceptions import InvalidPayload

SEPARATOR = "|"
Fields = Union[Mapping[str, object], Iterable[tuple]]


def _key(app_secret: str, salt: str) -> bytes:
    password = hashlib.sha1(app_secret.encode()).hexdigest()
    # The provider feeds the 64-char hex digest to OpenSSL, which keeps 32 bytes.
    return hashlib.sha256((password + salt).encode()).hexdigest()[:32].encode()


def _values(fields: Fields) -> list:
    items = fields.items() if isinstance(fields, Mapping) else fields
    return ["" if value is None else str(value) for _, value in items]


def encode(fields: Fields, app_secret: str) -> str:
    iv = secrets.token_hex(8)
    salt = secrets.token_hex(2)
    plain = SEPARATOR.join(_values(fields))
    cipher = AES.new(_key(app_secret, salt), AES.MODE_CBC, iv=iv.encode())
    encrypted = base64.b64encode(cipher.encrypt(pad(plain.encode(), AES.block_size))).decode()
    return f"{iv}:{salt}:{encrypted}".replace("/", "__")


def decode(bundle: str, app_secret: str) -> list:
    """Return the decrypted field values or raise :class:`InvalidPayload`."""
    components = str(bundle or "").replace("__", "/").split(":")
    if len(components) < 3:
        raise InvalidPayload("Invalid hash_key format.")
    iv, salt, encrypted = components[0], components[1], components[2]
    if len(iv.encode()) != AES.block_size:
        raise InvalidPayload("Invalid hash_key format.")
    try:
        data = base64.b64decode(encrypted, validate=True)
        cipher = AES.new(_key(app_secret, salt), AES.MODE_CBC, iv=iv.encode())
        plain = unpad(cipher.decrypt(data), AES.block_size).decode()
    except (binascii.Error, ValueError, UnicodeDecodeError):
        raise InvalidPayload("Decryption failed or data format incorrect.")
    if SEPARATOR not in plain:
        raise InvalidPayload("Decryption failed or data format incorrect.")
    return plain.split(SEPARATOR)


@dataclass(frozen=True)
class HashSchema:
    """Named, ordered field list for one kind of hash key.

    ``version`` is local bookkeeping; the wire format carries no marker, so a
    new field order must get a new schema rather than edit an existing one.
    """

    name: str
    version: int
    fields: tuple

    def encode(self, data: Mapping, app_secret: str) -> str:
        missing = [f for f in self.fields if f not in data]
        if missing:
            raise KeyError(f"{self.name} hash is missing fields: {', '.join(missing)}")
        return encode([(f, data[f]) for f in self.fields], app_secret)

    def decode(self, bundle: str, app_secret: str) -> dict:
        values = decode(bundle, app_secret)
        if len(values) < len(self.fields):
            raise InvalidPayload(
                f"{self.name} hash has {len(values)} fields, expected {len(self.fields)}"
            )
        return dict(zip(self.fields, values))


CHARGE_REQUEST = HashSchema(
    "charge", 1, ("total", "installment", "currency_code", "merchant_key", "invoice_id")
)
STATUS_REQUEST = HashSchema("checkstatus", 1, ("invoice_id", "merchant_key"))
PAYMENT_RESULT = HashSchema(
    "payment_result", 1, ("status", "total", "invoice_id", "order_id", "currency_code")
)

import base64
import hashlib

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad
from django.test import SimpleTestCase

from qnbpay import crypto
from qnbpay.exceptions import InvalidPayload

SECRET = "app-secret"


def provider_bundle(plain, secret=SECRET, iv="0123456789abcdef", salt="a1b2"):
    """Build a hash key the way the provider's PHP/OpenSSL side does."""
    password = hashlib.sha1(secret.encode()).hexdigest()
    key = hashlib.sha256((password + salt).encode()).hexdigest()[:32].encode()
    encrypted = AES.new(key, AES.MODE_CBC, iv=iv.encode()).encrypt(pad(plain.encode(), 16))
    return f"{iv}:{salt}:{base64.b64encode(encrypted).decode()}".replace("/", "__")


class CodecTests(SimpleTestCase):
    def test_values_survive_a_round_trip_in_order(self):
        fields = [("total", "100.00"), ("installment", 3), ("currency_code", "TRY")]
        bundle = crypto.encode(fields, SECRET)
        self.assertEqual(crypto.decode(bundle, SECRET), ["100.00", "3", "TRY"])

    def test_every_encode_uses_a_fresh_iv_and_salt(self):
        fields = {"invoice_id": "PFX_1_1234567890", "merchant_key": "mk"}
        first, second = crypto.encode(fields, SECRET), crypto.encode(fields, SECRET)
        self.assertNotEqual(first, second)
        iv, salt, _ = first.replace("__", "/").split(":", 2)
        self.assertEqual(len(iv), 16)
        self.assertEqual(len(salt), 4)

    def test_bundle_is_url_safe(self):
        for _ in range(20):
            self.assertNotIn("/", crypto.encode([("a", "x" * 40), ("b", "y")], SECRET))

    def test_decodes_provider_generated_bundle(self):
        bundle = provider_bundle("1|100.00|PFX_1045_8823991204|1045|TRY")
        self.assertEqual(crypto.decode(bundle, SECRET), ["1", "100.00", "PFX_1045_8823991204", "1045", "TRY"])

    def test_fewer_than_three_segments_is_invalid(self):
        for bundle in ("", "abc", "0123456789abcdef:a1b2"):
            with self.assertRaises(InvalidPayload):
                crypto.decode(bundle, SECRET)

    def test_wrong_secret_is_invalid(self):
        bundle = crypto.encode([("a", "1"), ("b", "2")], SECRET)
        with self.assertRaises(InvalidPayload):
            crypto.decode(bundle, "another-secret")

    def test_garbage_ciphertext_is_invalid(self):
        with self.assertRaises(InvalidPayload):
            crypto.decode("0123456789abcdef:a1b2:not base64!", SECRET)
        with self.assertRaises(InvalidPayload):
            crypto.decode("short:a1b2:AAAA", SECRET)

    def test_plaintext_without_separator_is_invalid(self):
        bundle = crypto.encode([("only", "value")], SECRET)
        with self.assertRaises(InvalidPayload):
            crypto.decode(bundle, SECRET)


class HashSchemaTests(SimpleTestCase):
    def test_payment_result_maps_positions_to_names(self):
        bundle = provider_bundle("1|100.00|PFX_1045_8823991204|1045|TRY")
        self.assertEqual(
            crypto.PAYMENT_RESULT.decode(bundle, SECRET),
            {
                "status": "1",
                "total": "100.00",
                "invoice_id": "PFX_1045_8823991204",
                "order_id": "1045",
                "currency_code": "TRY",
            },
        )

    def test_charge_request_encodes_in_schema_order(self):
        data = {
            "invoice_id": "PFX_7_1234567890",
            "merchant_key": "mk",
            "currency_code": "TRY",
            "installment": 6,
            "total": "250.00",
        }
        bundle = crypto.CHARGE_REQUEST.encode(data, SECRET)
        self.assertEqual(crypto.decode(bundle, SECRET), ["250.00", "6", "TRY", "mk", "PFX_7_1234567890"])

    def test_encode_requires_every_field(self):
        with self.assertRaises(KeyError):
            crypto.STATUS_REQUEST.encode({"invoice_id": "PFX_1_1"}, SECRET)

    def test_decode_rejects_short_payloads(self):
        bundle = crypto.encode([("status", "1"), ("total", "100.00")], SECRET)
        with self.assertRaises(InvalidPayload):
            crypto.PAYMENT_RESULT.decode(bundle, SECRET)

    def test_decode_ignores_trailing_values(self):
        bundle = crypto.encode([("invoice_id", "PFX_1_1"), ("merchant_key", "mk"), ("extra", "x")], SECRET)
        self.assertEqual(
            crypto.STATUS_REQUEST.decode(bundle, SECRET),
            {"invoice_id": "PFX_1_1", "merchant_key": "mk"},
        )

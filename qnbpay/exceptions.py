from django.core.exceptions import ValidationError  # noqa: F401  re-exported for callers


class QNBPayError(Exception):
    default_message = "Unexpected error occurred."

    def __init__(self, message=None, code=None, body=None):
        self.message = message or self.default_message
        self.code = code
        self.body = body
        super().__init__(self.message)


class AuthFailure(QNBPayError):
    default_message = "Cant get token from payment agent."


class LookupFailure(QNBPayError):
    default_message = "Cant get any results from payment agent."


class InvalidPayload(QNBPayError):
    default_message = "Invalid hash_key format."


class AlreadyProcessed(QNBPayError):
    default_message = "Order already processed."


class OrderNotFound(QNBPayError):
    default_message = "Order not found."


class MappingNotFound(QNBPayError):
    default_message = "Order identifier not found."


class ExhaustedRetries(QNBPayError):
    default_message = "Could not allocate a unique order identifier."

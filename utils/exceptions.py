"""Errors raised by the fulfilment services.

Each error carries the HTTP status the API views answer with, so views can
turn any of them into ``{"error": message}`` without a lookup table.
"""


class FulfilmentError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class ValidationError(FulfilmentError):
    default_message = "Invalid request"


class EmptyCart(ValidationError):
    default_message = "Cart is empty"


class UnknownNetwork(ValidationError):
    default_message = "Unknown network"


class UnsupportedVolume(ValidationError):
    default_message = "Volume not available"


class InsufficientFunds(FulfilmentError):
    default_message = "Insufficient wallet balance"


class Forbidden(FulfilmentError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(FulfilmentError):
    status_code = 404
    default_message = "Not found"


class VendorError(FulfilmentError):
    status_code = 502
    default_message = "Vendor request failed"


class GatewayError(FulfilmentError):
    status_code = 502
    default_message = "Paystack initialization failed"


class ConfigurationError(FulfilmentError):
    status_code = 500
    default_message = "Service not configured"


class SignatureMismatch(FulfilmentError):
    default_message = "Invalid signature"

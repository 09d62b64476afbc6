"""
Errors raised by the pricing and delivery engine.

Every error inherits PricingError and carries a stable `code` which the HTTP
layer maps to a status code and a JSON body. The core never logs or retries
on its own, that is left to the caller.
"""
from typing import Optional


class PricingError(Exception):
    code = "pricing_error"
    retryable = False

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        out = {"error": self.code, "detail": self.message}
        if self.field:
            out["field"] = self.field
        return out


class InvalidInput(PricingError):
    """Malformed ZIP/address, or a destination we cannot deliver to."""
    code = "invalid_input"


class InvalidQuantity(PricingError):
    code = "invalid_quantity"


class InvalidAmount(PricingError):
    code = "invalid_amount"


class ServiceUnavailable(PricingError):
    """The distance lookup could not be reached. Safe to retry with backoff."""
    code = "service_unavailable"
    retryable = True

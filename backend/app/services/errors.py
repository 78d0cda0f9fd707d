# Overview: Domain error taxonomy shared by the cart, checkout, order and payment services.

"""
Every error raised by a mutating service aborts its transaction; the
services roll the session back before the error leaves them. Routes turn
these into JSON bodies with `to_dict()` and `http_status`.
"""


class CommerceError(Exception):
    """Base for business-rule failures surfaced to API callers."""
    code = "COMMERCE_ERROR"
    http_status = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.default_message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class InsufficientStockError(CommerceError):
    """Inventory ledger refused a decrement."""
    code = "INSUFFICIENT_STOCK"
    default_message = "Not enough stock to deduct for this order"


class ProductInactiveError(CommerceError):
    code = "PRODUCT_INACTIVE"
    default_message = "Product is no longer for sale"


class OutOfStockError(CommerceError):
    code = "OUT_OF_STOCK"
    default_message = "Requested quantity exceeds available stock"


class EmptyCartError(CommerceError):
    code = "EMPTY_CART"
    default_message = "Cart is empty"


class CartInactivePrunedError(CommerceError):
    """Inactive products were removed from the cart; caller must re-view it."""
    code = "CART_INACTIVE_PRUNED"
    default_message = "Some products are no longer for sale and were removed from the cart"


class NotFoundError(CommerceError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Not found"


class InvalidStatusError(CommerceError):
    code = "INVALID_STATUS"
    default_message = "Unrecognized status"


class InvalidTransitionError(CommerceError):
    code = "INVALID_TRANSITION"
    http_status = 409
    default_message = "Status transition not allowed"


class ForbiddenError(CommerceError):
    code = "FORBIDDEN"
    http_status = 403
    default_message = "Not allowed"


class TransientError(CommerceError):
    """Lock wait or transaction failure; safe to retry."""
    code = "TRANSIENT"
    http_status = 503
    default_message = "Temporary database contention, please retry"

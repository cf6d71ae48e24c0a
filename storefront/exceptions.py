"""
Custom exceptions for the storefront cart/checkout core.
"""
from typing import Dict, Optional


class StorefrontError(Exception):
    """Base exception for cart and checkout operations"""
    pass


class AuthenticationRequired(StorefrontError):
    """Raised when a cart mutation is attempted without a session"""
    def __init__(self, message: str = "You should login first"):
        self.message = message
        super().__init__(message)


class ValidationError(StorefrontError):
    """Raised when form or request validation fails.

    ``errors`` maps a field name to its message so callers can render
    the problems next to the offending inputs.
    """
    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        self.message = message
        self.errors = dict(errors or {})
        super().__init__(message)

    @classmethod
    def from_errors(cls, errors: Dict[str, str]) -> "ValidationError":
        first = next(iter(errors.values()), "Validation failed")
        return cls(first, errors)


class StockExceeded(StorefrontError):
    """Raised when the requested quantity is more than is available"""
    def __init__(self, message: str, available: Optional[int] = None):
        self.message = message
        self.available = available
        super().__init__(message)


class PaymentDeclined(StorefrontError):
    """Raised when the payment gateway rejects a payment"""
    def __init__(self, message: str, reason: Optional[str] = None):
        self.message = message
        self.reason = reason
        super().__init__(message)


class SubmissionFailed(StorefrontError):
    """Raised when the order service rejects an order or cannot be reached"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class CartServiceError(StorefrontError):
    """Raised when the cart service or its Redis backend fails"""
    pass


class LimitExceededError(StorefrontError):
    """Raised when cart limits are exceeded"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ProductNotFoundError(StorefrontError):
    """Raised when a product is not found in the catalog or the cart"""
    def __init__(self, product_id: str, message: Optional[str] = None):
        self.product_id = product_id
        super().__init__(message or f"Product not found: {product_id}")

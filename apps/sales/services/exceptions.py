"""
Domain-specific exceptions for sales app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class SalesServiceError(Exception):
    """Base exception for all sales service errors."""
    pass


class InvalidCartError(SalesServiceError):
    """Raised when a cart is empty or contains an invalid line."""
    pass


class ProductUnavailableError(InvalidCartError):
    """Raised when a cart references an unknown or inactive product."""
    pass


class InsufficientStockError(InvalidCartError):
    """Raised when a cart asks for more units than are on the shelf."""
    pass


class SaleNumberCollisionError(SalesServiceError):
    """Raised when no unique sale number could be generated."""
    pass

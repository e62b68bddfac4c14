"""
Sales app services layer.

Cart snapshots are built at checkout; sales are recorded only once the
payment behind them is confirmed.
"""

from .exceptions import (
    SalesServiceError,
    InvalidCartError,
    ProductUnavailableError,
    InsufficientStockError,
    SaleNumberCollisionError,
)

from .cart import (
    build_cart_snapshot,
    cart_total,
)

from .sale_recording import (
    generate_sale_number,
    record_sale,
)


__all__ = [
    # Exceptions
    'SalesServiceError',
    'InvalidCartError',
    'ProductUnavailableError',
    'InsufficientStockError',
    'SaleNumberCollisionError',

    # Cart
    'build_cart_snapshot',
    'cart_total',

    # Sale recording
    'generate_sale_number',
    'record_sale',
]

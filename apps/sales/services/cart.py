"""
Cart snapshot building.

A snapshot is the frozen list of cart lines stored on a payment record
until the payment is confirmed. Prices are taken from the catalog at
checkout time so later price edits do not change what the customer pays.
"""

from decimal import Decimal
from typing import Iterable, List, Tuple
from uuid import UUID

from django.core.exceptions import ValidationError

from apps.inventory.models import Product

from .exceptions import (
    InvalidCartError,
    ProductUnavailableError,
    InsufficientStockError,
)


def build_cart_snapshot(*, items: Iterable[dict]) -> Tuple[List[dict], Decimal]:
    """
    Validate cart lines against the catalog and freeze them.

    Args:
        items: Iterable of ``{'product_id': ..., 'quantity': ...}`` dicts.
            Lines for the same product are merged.

    Returns:
        Tuple of (snapshot, total) where snapshot is a JSON-serialisable
        list of ``{product_id, name, quantity, unit_price}`` dicts.

    Raises:
        InvalidCartError: If the cart is empty or a quantity is not positive
        ProductUnavailableError: If a product is unknown or inactive
        InsufficientStockError: If a quantity exceeds current stock
    """
    quantities = {}
    for item in items or []:
        try:
            product_id = UUID(str(item['product_id']))
            quantity = int(item['quantity'])
        except (KeyError, TypeError, ValueError):
            raise InvalidCartError("Each cart line needs a product_id and a quantity.")
        if quantity <= 0:
            raise InvalidCartError("Cart quantities must be positive.")
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    if not quantities:
        raise InvalidCartError("Cart is empty.")

    try:
        products = Product.objects.in_bulk(list(quantities.keys()))
    except ValidationError:
        raise ProductUnavailableError("Cart references an unknown product.")

    snapshot = []
    total = Decimal('0.00')
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise ProductUnavailableError(f"Product {product_id} is not available for sale.")
        if quantity > product.stock_quantity:
            raise InsufficientStockError(
                f"Only {product.stock_quantity} of {product.name} left in stock."
            )

        snapshot.append({
            'product_id': str(product.id),
            'name': product.name,
            'quantity': quantity,
            'unit_price': str(product.selling_price),
        })
        total += product.selling_price * quantity

    return snapshot, total


def cart_total(cart: List[dict]) -> Decimal:
    """Sum a stored snapshot."""
    return sum(
        (Decimal(line['unit_price']) * int(line['quantity']) for line in cart),
        Decimal('0.00')
    )

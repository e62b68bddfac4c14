"""
Sale recording service.

Turns a confirmed cart snapshot into a Sale with its items and takes the
sold units off the shelf.
"""

import logging
import random
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from django.db import transaction, IntegrityError
from django.db.models import F
from django.utils import timezone

from apps.accounts.models import User
from apps.inventory.models import Product
from apps.sales.models import Sale, SaleItem

from .cart import cart_total
from .exceptions import InvalidCartError, ProductUnavailableError, SaleNumberCollisionError

logger = logging.getLogger(__name__)


def generate_sale_number() -> str:
    """Return a ``SALE-YYYYMMDDHHMMSS-NNNN`` number."""
    stamp = timezone.localtime().strftime('%Y%m%d%H%M%S')
    return f"SALE-{stamp}-{random.randint(1000, 9999)}"


@transaction.atomic
def record_sale(
    *,
    cart: List[dict],
    payment_method: str,
    amount_paid: Decimal,
    cashier: Optional[User] = None,
    customer_name: str = '',
    customer_phone: str = '',
    mpesa_receipt_number: str = '',
    max_retries: int = 5
) -> Sale:
    """
    Persist a sale for a paid cart and decrement stock.

    Stock is decremented with F() expressions. A product dropping below
    zero is logged rather than refused because the money has already
    been taken.

    Args:
        cart: Snapshot as produced by build_cart_snapshot()
        payment_method: PaymentMethod value
        amount_paid: Amount actually received
        cashier: Staff user credited with the sale
        customer_name: Optional customer name
        customer_phone: Optional customer phone
        mpesa_receipt_number: Provider receipt
        max_retries: Attempts at a unique sale number

    Returns:
        Created Sale instance

    Raises:
        InvalidCartError: If the snapshot is empty
        ProductUnavailableError: If a product was deleted since checkout
        SaleNumberCollisionError: If no unique sale number could be generated
    """
    if not cart:
        raise InvalidCartError("Cannot record a sale without items.")

    total = cart_total(cart)
    amount_paid = Decimal(amount_paid)
    cashier_name = cashier.get_display_name() if cashier else ''

    for attempt in range(max_retries):
        try:
            with transaction.atomic():
                sale = Sale.objects.create(
                    sale_number=generate_sale_number(),
                    cashier=cashier,
                    cashier_name=cashier_name,
                    customer_name=customer_name or '',
                    customer_phone=customer_phone or '',
                    payment_method=payment_method,
                    total_amount=total,
                    amount_paid=amount_paid,
                    change_given=max(Decimal('0.00'), amount_paid - total),
                    mpesa_receipt_number=mpesa_receipt_number or '',
                )
                break
        except IntegrityError:
            if attempt == max_retries - 1:
                raise SaleNumberCollisionError(
                    f"Failed to generate unique sale number after {max_retries} attempts"
                )
            continue

    products = Product.objects.in_bulk([line['product_id'] for line in cart])
    for line in cart:
        product = products.get(UUID(str(line['product_id'])))
        if product is None:
            raise ProductUnavailableError(f"Product {line['product_id']} no longer exists.")

        quantity = int(line['quantity'])
        unit_price = Decimal(line['unit_price'])
        SaleItem.objects.create(
            sale=sale,
            product=product,
            product_name=line['name'],
            quantity=quantity,
            unit_price=unit_price,
            total_price=unit_price * quantity,
        )

        Product.objects.filter(pk=product.pk).update(
            stock_quantity=F('stock_quantity') - quantity
        )
        product.refresh_from_db(fields=['stock_quantity'])
        if product.stock_quantity < 0:
            logger.warning(
                "Stock for %s (%s) is negative after sale %s: %s",
                product.name, product.sku, sale.sale_number, product.stock_quantity
            )

    logger.info(
        "Recorded sale %s for KES %s via %s", sale.sale_number, total, payment_method
    )
    return sale

"""
Sale finalization.

Converts a confirmed payment's cart snapshot into a Sale exactly once.
"""

import logging
from typing import Optional, Union

from django.db import transaction

from apps.accounts.models import User
from apps.payments.models import PendingTransaction, QRCodePayment, TransactionStatus
from apps.sales.models import Sale, PaymentMethod
from apps.sales.services import record_sale, SalesServiceError

from .exceptions import PaymentNotConfirmedError, PaymentServiceError

logger = logging.getLogger(__name__)


def _settlement(payment):
    """
    Payment method and amount received for a confirmed payment.

    Payments settled from a typed-in SMS are recorded as manual sales with
    the entry's amount, which may exceed what was asked for.
    """
    entry = payment.manual_entries.order_by('created_at').first()
    if entry is not None:
        return PaymentMethod.MPESA_MANUAL, max(entry.amount, payment.amount)
    return payment.payment_method, payment.amount


def finalize_sale(
    payment: Union[PendingTransaction, QRCodePayment],
    *,
    cashier: Optional[User] = None
) -> Optional[Sale]:
    """
    Persist the sale for a confirmed payment.

    The payment row is locked for the duration so concurrent callers
    serialise; whoever comes second finds the sale link set and gets the
    same sale back.

    Args:
        payment: Confirmed PendingTransaction or QRCodePayment
        cashier: Staff user credited with the sale, defaults to whoever
            initiated the payment

    Returns:
        The linked Sale, or None when the payment carries no cart

    Raises:
        PaymentNotConfirmedError: If the payment is not confirmed
        PaymentServiceError: If the cart snapshot can no longer be recorded
    """
    model = type(payment)

    with transaction.atomic():
        locked = model.objects.select_for_update().get(pk=payment.pk)

        if locked.sale_id:
            payment.sale = locked.sale
            return locked.sale

        if locked.status != TransactionStatus.CONFIRMED:
            raise PaymentNotConfirmedError(
                f"Payment {locked.pk} is {locked.status}, not confirmed."
            )

        if not locked.cart:
            logger.info("%s %s confirmed without a cart, no sale recorded", model.__name__, locked.pk)
            return None

        payment_method, amount_paid = _settlement(locked)
        try:
            sale = record_sale(
                cart=locked.cart,
                payment_method=payment_method,
                amount_paid=amount_paid,
                cashier=cashier or locked.initiated_by,
                customer_name=locked.customer_name,
                customer_phone=locked.phone_number,
                mpesa_receipt_number=locked.mpesa_receipt_number,
            )
        except SalesServiceError as e:
            logger.error("Could not record sale for %s %s: %s", model.__name__, locked.pk, e)
            raise PaymentServiceError(str(e)) from e

        model.objects.filter(pk=locked.pk).update(sale=sale)

    payment.sale = sale
    logger.info(
        "Finalized %s %s as sale %s", model.__name__, payment.pk, sale.sale_number
    )
    return sale

"""
STK push payment intents.

A PendingTransaction is written before the provider is called so every
charge attempt leaves a record, even one the provider never answers.
"""

import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from django.conf import settings
from django.utils import timezone

from apps.accounts.models import User
from apps.payments.models import PendingTransaction, TransactionStatus
from apps.sales.services import build_cart_snapshot, InvalidCartError

from . import transitions
from .exceptions import InvalidPaymentRequestError, MpesaProviderError
from .mpesa_client import get_mpesa_client
from .phone import normalize_phone_number

logger = logging.getLogger(__name__)


def parse_amount(amount) -> Decimal:
    """Return a positive two-place Decimal or raise InvalidPaymentRequestError."""
    try:
        value = Decimal(str(amount)).quantize(Decimal('0.01'))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidPaymentRequestError('Amount must be a number.')
    if value <= 0:
        raise InvalidPaymentRequestError('Amount must be greater than zero.')
    return value


def validate_cart(items: Iterable[dict], amount: Decimal):
    """
    Snapshot the cart and check it adds up to ``amount``.

    Returns:
        The cart snapshot

    Raises:
        InvalidPaymentRequestError: For any cart problem or an amount mismatch
    """
    try:
        cart, total = build_cart_snapshot(items=items)
    except InvalidCartError as e:
        raise InvalidPaymentRequestError(str(e))

    if total != amount:
        raise InvalidPaymentRequestError(
            f"Amount {amount} does not match cart total {total}."
        )
    return cart


def initiate_stk_payment(
    *,
    amount,
    phone_number: str,
    items: Iterable[dict],
    session_id: str = '',
    customer_name: str = '',
    initiated_by: Optional[User] = None,
    client=None
) -> PendingTransaction:
    """
    Record a pending charge and send the STK push prompt.

    Args:
        amount: Amount to charge, must equal the cart total
        phone_number: Payer's phone in any common Kenyan format
        items: Cart lines ``[{'product_id': ..., 'quantity': ...}]``
        session_id: Optional till session identifier
        customer_name: Optional customer name
        initiated_by: Cashier starting the checkout
        client: MpesaClient to use, defaults to one built from settings

    Returns:
        PendingTransaction in ``awaiting_confirmation``

    Raises:
        InvalidPaymentRequestError: If amount, phone or cart is invalid
        MpesaProviderError: If the provider call fails. The record is
            left in ``failed`` and its id is included in the error detail.
    """
    amount = parse_amount(amount)
    phone_number = normalize_phone_number(phone_number)
    cart = validate_cart(items, amount)

    payment = PendingTransaction.objects.create(
        amount=amount,
        phone_number=phone_number,
        cart=cart,
        session_id=session_id or '',
        customer_name=customer_name or '',
        initiated_by=initiated_by,
        status=TransactionStatus.CREATED,
        expires_at=timezone.now() + timedelta(seconds=settings.MPESA_STK_TIMEOUT_SECONDS),
    )

    client = client or get_mpesa_client()
    try:
        response = client.stk_push(
            phone_number=phone_number,
            amount=amount,
            account_reference=settings.MPESA_ACCOUNT_REFERENCE,
            transaction_desc=settings.MPESA_TRANSACTION_DESC,
        )
    except MpesaProviderError as e:
        transitions.fail(payment, result_desc=str(e)[:255])
        logger.warning("STK push for %s failed: %s", payment.pk, e)
        raise MpesaProviderError({
            'detail': str(e),
            'transaction_id': str(payment.pk),
            'status': payment.status,
        })

    transitions.transition(
        payment,
        from_statuses=[TransactionStatus.CREATED],
        to_status=TransactionStatus.AWAITING_CONFIRMATION,
        checkout_request_id=response['CheckoutRequestID'],
        merchant_request_id=response.get('MerchantRequestID', ''),
        result_code=str(response.get('ResponseCode', '')),
        result_desc=(response.get('ResponseDescription') or '')[:255],
    )

    logger.info(
        "STK push sent for %s: KES %s to %s (checkout %s)",
        payment.pk, amount, phone_number, payment.checkout_request_id
    )
    return payment

"""
Payment status lookups and expiry.
"""

import logging

from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.payments.models import (
    PendingTransaction,
    QRCodePayment,
    TransactionStatus,
    OPEN_STATUSES,
)

from . import transitions
from .exceptions import MpesaProviderError, PaymentNotFoundError, PaymentServiceError
from .mpesa_client import get_mpesa_client
from .sale_finalization import finalize_sale

logger = logging.getLogger(__name__)


def get_pending_transaction(*, transaction_id) -> PendingTransaction:
    try:
        return PendingTransaction.objects.select_related('sale').get(pk=transaction_id)
    except (PendingTransaction.DoesNotExist, ValidationError, ValueError):
        raise PaymentNotFoundError()


def expire_if_overdue(payment, now=None) -> bool:
    """Expire ``payment`` if it is open and past its expiry time."""
    if payment.is_overdue(now):
        return transitions.expire(payment, now=now)
    return False


def get_payment_status(*, transaction_id, refresh: bool = False, client=None) -> PendingTransaction:
    """
    Return the current state of an STK payment.

    An overdue record is expired on the way out. With ``refresh`` the
    provider is asked for the outcome of a still-open push and the answer
    goes through the same conditional transitions as a callback. Provider
    errors during a refresh are logged and the stored status returned.

    Raises:
        PaymentNotFoundError: If no such transaction exists
    """
    payment = get_pending_transaction(transaction_id=transaction_id)

    if expire_if_overdue(payment):
        return payment

    if refresh and payment.status == TransactionStatus.AWAITING_CONFIRMATION and payment.checkout_request_id:
        try:
            query_stk_status(payment, client=client)
        except MpesaProviderError as e:
            logger.warning("STK query for %s failed: %s", payment.pk, e)

    return payment


def query_stk_status(payment: PendingTransaction, client=None) -> bool:
    """
    Apply the provider's STK query answer to ``payment``.

    Returns:
        True if the payment changed state
    """
    client = client or get_mpesa_client()
    data = client.stk_query(checkout_request_id=payment.checkout_request_id)

    if 'errorCode' in data or 'ResultCode' not in data:
        # Payer has not answered yet
        logger.debug("STK query for %s still pending: %s", payment.pk, data.get('errorMessage'))
        return False

    result_code = str(data.get('ResultCode'))
    outcome = {
        'result_code': result_code,
        'result_desc': (data.get('ResultDesc') or '')[:255],
    }

    if result_code == '0':
        # The query carries no receipt; the callback fills it in later
        changed = transitions.confirm(payment, receipt_number='', **outcome)
        if changed:
            try:
                finalize_sale(payment)
            except PaymentServiceError as e:
                logger.error("Sale finalization after STK query failed for %s: %s", payment.pk, e)
        return changed

    return transitions.fail(payment, **outcome)


def expire_stale_payments(now=None) -> dict:
    """
    Expire every open STK and QR payment past its expiry time.

    Returns:
        dict with the number of expired records per model
    """
    now = now or timezone.now()
    counts = {}
    for model in (PendingTransaction, QRCodePayment):
        counts[model.__name__] = model.objects.filter(
            status__in=OPEN_STATUSES,
            expires_at__lte=now,
        ).update(status=TransactionStatus.EXPIRED, updated_at=now)

    if any(counts.values()):
        logger.info("Expired stale payments: %s", counts)
    return counts


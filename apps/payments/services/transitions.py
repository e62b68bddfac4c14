"""
Conditional status transitions.

Every status change is a single ``UPDATE ... WHERE status IN (...)``.
When a callback, a poll and the expiry sweep race for the same record,
exactly one of them updates the row; the others see a row count of zero
and leave it alone.
"""

import logging

from django.utils import timezone

from apps.payments.models import PendingTransaction, TransactionStatus, OPEN_STATUSES

logger = logging.getLogger(__name__)


def transition(payment, *, from_statuses, to_status, extra_filters=None, **fields) -> bool:
    """
    Move ``payment`` to ``to_status`` if it is still in one of ``from_statuses``.

    On success the in-memory instance is updated to match the row.

    Returns:
        True if this call performed the transition
    """
    now = timezone.now()
    filters = {'pk': payment.pk, 'status__in': list(from_statuses)}
    if extra_filters:
        filters.update(extra_filters)

    updated = type(payment).objects.filter(**filters).update(
        status=to_status,
        updated_at=now,
        **fields
    )
    if updated:
        payment.status = to_status
        payment.updated_at = now
        for name, value in fields.items():
            setattr(payment, name, value)
        logger.info("%s %s -> %s", type(payment).__name__, payment.pk, to_status)
    return bool(updated)


def confirm(payment, *, receipt_number, **fields) -> bool:
    """
    Confirm an open, unexpired payment.

    An STK intent must carry the provider's checkout request id; one that
    never got past the push request cannot be confirmed by any route.
    """
    now = timezone.now()
    guards = {'expires_at__gt': now}
    if isinstance(payment, PendingTransaction):
        guards['checkout_request_id__isnull'] = False
    return transition(
        payment,
        from_statuses=OPEN_STATUSES,
        to_status=TransactionStatus.CONFIRMED,
        extra_filters=guards,
        mpesa_receipt_number=receipt_number or '',
        confirmed_at=now,
        **fields
    )


def fail(payment, **fields) -> bool:
    return transition(
        payment,
        from_statuses=OPEN_STATUSES,
        to_status=TransactionStatus.FAILED,
        **fields
    )


def expire(payment, *, now=None, **fields) -> bool:
    """Expire an open payment whose expiry time has passed."""
    now = now or timezone.now()
    return transition(
        payment,
        from_statuses=OPEN_STATUSES,
        to_status=TransactionStatus.EXPIRED,
        extra_filters={'expires_at__lte': now},
        **fields
    )

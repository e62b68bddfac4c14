"""
Provider callback handling.

STK callbacks settle PendingTransactions; C2B confirmations are stored
for QR auto-matching. The functions here never raise for a bad payload:
they return the ``{"ResultCode": ..., "ResultDesc": ...}`` envelope the
provider expects.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.sales.models import Sale
from apps.payments.models import (
    PendingTransaction,
    C2BConfirmation,
    TransactionStatus,
)

from . import transitions
from .exceptions import InvalidCallbackError, PaymentServiceError
from .sale_finalization import finalize_sale

logger = logging.getLogger(__name__)


def envelope(result_code, result_desc):
    return {'ResultCode': result_code, 'ResultDesc': result_desc}


def parse_stk_callback(payload) -> dict:
    """
    Flatten an STK callback body.

    Returns:
        dict with checkout_request_id, merchant_request_id, result_code,
        result_desc and the CallbackMetadata items keyed by name

    Raises:
        InvalidCallbackError: If Body.stkCallback or CheckoutRequestID is missing
    """
    if not isinstance(payload, dict):
        raise InvalidCallbackError('Callback body must be a JSON object.')

    stk = (payload.get('Body') or {}).get('stkCallback')
    if not isinstance(stk, dict):
        raise InvalidCallbackError('Invalid callback structure - missing stkCallback.')

    checkout_request_id = stk.get('CheckoutRequestID')
    if not checkout_request_id:
        raise InvalidCallbackError('Missing CheckoutRequestID.')

    try:
        result_code = int(stk.get('ResultCode'))
    except (TypeError, ValueError):
        result_code = -1

    metadata = {}
    for item in (stk.get('CallbackMetadata') or {}).get('Item') or []:
        if isinstance(item, dict) and 'Name' in item:
            metadata[item['Name']] = item.get('Value')

    return {
        'checkout_request_id': checkout_request_id,
        'merchant_request_id': stk.get('MerchantRequestID') or '',
        'result_code': result_code,
        'result_desc': stk.get('ResultDesc') or '',
        'metadata': metadata,
    }


def apply_stk_callback(payload) -> dict:
    """
    Apply an STK callback to its PendingTransaction.

    Success (ResultCode 0 with a receipt number) confirms the record and
    finalizes the sale; anything else fails it. Callbacks for records that
    are already terminal are acknowledged and ignored. A callback arriving
    after ``expires_at`` expires the record instead of confirming it.

    Returns:
        Provider response envelope
    """
    try:
        callback = parse_stk_callback(payload)
    except InvalidCallbackError as e:
        logger.warning("Rejected STK callback: %s", e)
        return envelope(1, str(e))

    payment = PendingTransaction.objects.filter(
        checkout_request_id=callback['checkout_request_id']
    ).first()
    if payment is None:
        logger.warning("STK callback for unknown checkout %s", callback['checkout_request_id'])
        return envelope(1, 'Transaction record not found')

    receipt = str(callback['metadata'].get('MpesaReceiptNumber') or '')
    succeeded = callback['result_code'] == 0 and bool(receipt)

    if payment.is_terminal:
        _backfill_receipt(payment, receipt if succeeded else '')
        logger.info(
            "Ignoring callback for %s, already %s", payment.pk, payment.status
        )
        return envelope(0, 'Already processed')

    outcome = {
        'result_code': str(callback['result_code']),
        'result_desc': callback['result_desc'][:255],
        'raw_callback': payload,
    }

    if payment.is_overdue():
        transitions.expire(payment, **outcome)
        if succeeded:
            logger.warning(
                "Payment %s confirmed by provider after expiry (receipt %s); needs manual reconciliation",
                payment.pk, receipt
            )
        return envelope(0, 'Transaction expired')

    if succeeded:
        _check_paid_amount(payment, callback['metadata'].get('Amount'))
        if transitions.confirm(payment, receipt_number=receipt, **outcome):
            try:
                finalize_sale(payment)
            except PaymentServiceError as e:
                # Payment stays confirmed; the sale can be retried from the finalize endpoint
                logger.error("Sale finalization after callback failed for %s: %s", payment.pk, e)
            return envelope(0, 'Success')
    else:
        if callback['result_code'] == 0:
            outcome['result_desc'] = 'Missing receipt number'
        if transitions.fail(payment, **outcome):
            logger.info(
                "Payment %s failed: %s %s",
                payment.pk, callback['result_code'], callback['result_desc']
            )
            return envelope(0, 'Success')

    # Lost the race to another callback, poll or the expiry sweep
    payment.refresh_from_db(fields=['status'])
    logger.info("Callback for %s arrived after it became %s", payment.pk, payment.status)
    return envelope(0, 'Already processed')


def _backfill_receipt(payment, receipt):
    """A refresh query can confirm before the callback delivers the receipt."""
    if not receipt or payment.status != TransactionStatus.CONFIRMED:
        return
    updated = PendingTransaction.objects.filter(
        pk=payment.pk,
        status=TransactionStatus.CONFIRMED,
        mpesa_receipt_number=''
    ).update(mpesa_receipt_number=receipt, updated_at=timezone.now())
    if updated and payment.sale_id:
        Sale.objects.filter(
            pk=payment.sale_id, mpesa_receipt_number=''
        ).update(mpesa_receipt_number=receipt)


def _check_paid_amount(payment, paid):
    if paid is None:
        return
    try:
        paid = Decimal(str(paid))
        mismatch = paid.quantize(Decimal('1')) != payment.amount.quantize(Decimal('1'))
    except InvalidOperation:
        logger.warning("Payment %s callback carried unusable amount %r", payment.pk, paid)
        return
    if mismatch:
        logger.warning(
            "Payment %s paid KES %s but KES %s was requested", payment.pk, paid, payment.amount
        )


def validate_c2b(payload) -> dict:
    """C2B validation: every payment to the till is accepted."""
    logger.debug("C2B validation for %s", (payload or {}).get('TransID'))
    return envelope(0, 'Accepted')


def record_c2b_confirmation(payload) -> dict:
    """
    Store a C2B confirmation for the configured till.

    Confirmations for other short codes and duplicates are acknowledged
    and dropped.

    Returns:
        Provider response envelope
    """
    if not isinstance(payload, dict) or not payload.get('TransID'):
        logger.warning("Rejected C2B confirmation without TransID")
        return envelope(1, 'Missing TransID')

    till = str(payload.get('BusinessShortCode') or '')
    if till != str(settings.MPESA_TILL_NUMBER):
        logger.info("Ignoring C2B confirmation %s for till %s", payload['TransID'], till)
        return envelope(0, 'Accepted')

    try:
        amount = Decimal(str(payload.get('TransAmount')))
        if not amount.is_finite():
            raise InvalidOperation
    except InvalidOperation:
        logger.warning("C2B confirmation %s has invalid amount %r", payload['TransID'], payload.get('TransAmount'))
        return envelope(1, 'Invalid TransAmount')

    name = ' '.join(
        part for part in (payload.get('FirstName'), payload.get('MiddleName'), payload.get('LastName')) if part
    )

    try:
        with transaction.atomic():
            C2BConfirmation.objects.create(
                transaction_code=str(payload['TransID']).upper(),
                till_number=till,
                amount=amount,
                phone_number=str(payload.get('MSISDN') or ''),
                customer_name=name,
                bill_ref_number=str(payload.get('BillRefNumber') or '')[:50],
                raw_payload=payload,
            )
    except IntegrityError:
        logger.info("Duplicate C2B confirmation %s", payload['TransID'])
        return envelope(0, 'Accepted')

    logger.info("Recorded C2B confirmation %s for KES %s", payload['TransID'], amount)
    return envelope(0, 'Accepted')

"""
Manual M-Pesa entries.

When neither the STK callback nor a C2B confirmation arrives, the cashier
can type in the confirmation SMS the customer received. A manager checks
it against the till statement, and a verified entry can then settle one
open payment.
"""

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from django.conf import settings
from django.db import transaction, IntegrityError
from django.db.models import Q
from django.utils import timezone

from apps.accounts.models import User
from apps.payments.models import (
    ManualMpesaEntry,
    ManualEntryStatus,
    PendingTransaction,
    QRCodePayment,
)

from . import transitions
from .exceptions import (
    UnparseableMessageError,
    DuplicateTransactionCodeError,
    ManualEntryStateError,
    InsufficientEntryAmountError,
    PaymentAlreadyClosedError,
    PaymentNotFoundError,
    PaymentServiceError,
)
from .sale_finalization import finalize_sale

logger = logging.getLogger(__name__)

# Transaction codes are 10 characters mixing letters and digits
CODE_RE = re.compile(r'\b(?=[A-Z0-9]*\d)(?=[A-Z0-9]*[A-Z])([A-Z0-9]{10})\b', re.IGNORECASE)
AMOUNT_RE = re.compile(r'Ksh\s*([0-9,]+\.?\d*)', re.IGNORECASE)
PHONE_RE = re.compile(r'(254\d{9})')
NAME_RE = re.compile(r'from\s+([A-Z\s]+)\s+254\d{9}', re.IGNORECASE)
DATE_RE = re.compile(r'(\d{1,2})/(\d{1,2})/(\d{4})')


def parse_mpesa_message(message: str) -> dict:
    """
    Pull the payment details out of an M-Pesa confirmation SMS.

    Missing details come back as None (or '' for text fields); callers
    decide which ones they need.

    Example::

        >>> parse_mpesa_message(
        ...     "QWE1234RTY Confirmed. Ksh1,250.00 received from JANE DOE "
        ...     "254712345678 on 3/2/2025 at 10:15 AM."
        ... )['amount']
        Decimal('1250.00')
    """
    message = message or ''
    parsed = {
        'transaction_code': None,
        'amount': None,
        'sender_phone': '',
        'sender_name': '',
        'transaction_date': None,
    }

    match = CODE_RE.search(message)
    if match:
        parsed['transaction_code'] = match.group(1).upper()

    match = AMOUNT_RE.search(message)
    if match:
        try:
            parsed['amount'] = Decimal(match.group(1).replace(',', '').rstrip('.')).quantize(Decimal('0.01'))
        except InvalidOperation:
            pass

    match = PHONE_RE.search(message)
    if match:
        parsed['sender_phone'] = match.group(1)

    match = NAME_RE.search(message)
    if match:
        parsed['sender_name'] = ' '.join(match.group(1).split())

    match = DATE_RE.search(message)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            parsed['transaction_date'] = date(year, month, day)
        except ValueError:
            pass

    return parsed


def create_manual_entry(
    *,
    message: str = '',
    transaction_code: Optional[str] = None,
    amount=None,
    entered_by: Optional[User] = None
) -> ManualMpesaEntry:
    """
    Record a manual M-Pesa entry from an SMS.

    Explicit ``transaction_code`` and ``amount`` override what is parsed
    from the message.

    Raises:
        UnparseableMessageError: If no transaction code or amount is available
        DuplicateTransactionCodeError: If the code was already entered
    """
    parsed = parse_mpesa_message(message)

    code = (transaction_code or parsed['transaction_code'] or '').strip().upper()
    if amount is not None:
        try:
            amount = Decimal(str(amount)).quantize(Decimal('0.01'))
        except InvalidOperation:
            amount = None
    else:
        amount = parsed['amount']

    if not code or amount is None or amount <= 0:
        raise UnparseableMessageError()

    try:
        with transaction.atomic():
            entry = ManualMpesaEntry.objects.create(
                raw_message=message or '',
                transaction_code=code,
                amount=amount,
                sender_phone=parsed['sender_phone'],
                sender_name=parsed['sender_name'][:100],
                transaction_date=parsed['transaction_date'],
                till_number=settings.MPESA_TILL_NUMBER,
                entered_by=entered_by,
            )
    except IntegrityError:
        raise DuplicateTransactionCodeError()

    logger.info("Recorded manual M-Pesa entry %s for KES %s", code, amount)
    return entry


def get_manual_entry(*, entry_id) -> ManualMpesaEntry:
    try:
        return ManualMpesaEntry.objects.get(pk=entry_id)
    except ManualMpesaEntry.DoesNotExist:
        raise PaymentNotFoundError('Manual entry not found.')


def verify_manual_entry(
    *,
    entry_id,
    is_valid: bool,
    verified_by: User,
    notes: str = ''
) -> ManualMpesaEntry:
    """
    Mark a pending entry as verified or invalid.

    Raises:
        PaymentNotFoundError: If the entry does not exist
        ManualEntryStateError: If the entry is no longer pending
    """
    entry = get_manual_entry(entry_id=entry_id)
    now = timezone.now()
    new_status = ManualEntryStatus.VERIFIED if is_valid else ManualEntryStatus.INVALID

    updated = ManualMpesaEntry.objects.filter(
        pk=entry.pk,
        status=ManualEntryStatus.PENDING,
    ).update(
        status=new_status,
        verification_notes=notes or '',
        verified_by=verified_by,
        verified_at=now,
        updated_at=now,
    )
    if not updated:
        raise ManualEntryStateError(f"Entry {entry.transaction_code} is already {entry.status}.")

    entry.refresh_from_db()
    logger.info("Manual entry %s marked %s by %s", entry.transaction_code, new_status, verified_by.email)
    return entry


def confirm_payment_with_entry(
    *,
    entry_id,
    payment: Union[PendingTransaction, QRCodePayment],
    confirmed_by: Optional[User] = None
) -> ManualMpesaEntry:
    """
    Settle an open payment with a verified manual entry.

    The entry is claimed first (verified -> linked) and the payment then
    confirmed; if the payment turns out to be closed the claim is rolled
    back so the entry stays usable.

    Raises:
        PaymentNotFoundError: If the entry does not exist
        ManualEntryStateError: If the entry is not verified
        InsufficientEntryAmountError: If the entry is less than the payment
        PaymentAlreadyClosedError: If the payment is already terminal or expired
    """
    entry = get_manual_entry(entry_id=entry_id)

    if entry.status != ManualEntryStatus.VERIFIED:
        raise ManualEntryStateError(
            f"Entry {entry.transaction_code} is {entry.status}; only verified entries can confirm a payment."
        )
    if entry.amount < payment.amount:
        raise InsufficientEntryAmountError(
            f"Entry amount {entry.amount} is less than payment amount {payment.amount}."
        )

    link = {'pending_transaction': payment} if isinstance(payment, PendingTransaction) else {'qr_payment': payment}
    extra = {'transaction_code': entry.transaction_code} if isinstance(payment, QRCodePayment) else {}

    with transaction.atomic():
        claimed = ManualMpesaEntry.objects.filter(
            pk=entry.pk,
            status=ManualEntryStatus.VERIFIED,
        ).update(status=ManualEntryStatus.LINKED, updated_at=timezone.now(), **link)
        if not claimed:
            raise ManualEntryStateError(f"Entry {entry.transaction_code} was used concurrently.")

        if not transitions.confirm(payment, receipt_number=entry.transaction_code, **extra):
            payment.refresh_from_db(fields=['status'])
            raise PaymentAlreadyClosedError(f"Payment is {payment.status}.")

    try:
        sale = finalize_sale(payment, cashier=confirmed_by)
    except PaymentServiceError as e:
        logger.error("Sale finalization failed after manual confirmation of %s: %s", payment.pk, e)
        sale = None

    if sale is not None:
        ManualMpesaEntry.objects.filter(pk=entry.pk).update(sale=sale)

    entry.refresh_from_db()
    logger.info(
        "Manual entry %s confirmed %s %s", entry.transaction_code, type(payment).__name__, payment.pk
    )
    return entry


def get_pending_manual_entries():
    """Entries still awaiting verification or a payment to settle."""
    return ManualMpesaEntry.objects.filter(
        Q(status=ManualEntryStatus.PENDING) | Q(status=ManualEntryStatus.VERIFIED)
    ).select_related('entered_by').order_by('created_at')

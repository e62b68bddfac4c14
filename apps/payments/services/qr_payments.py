"""
Pay-to-till QR payments.

The till shows a QR code carrying the till number, amount and a unique
reference. The customer pays the till from their phone and the provider
reports the payment to the C2B confirmation URL. A QR payment is matched
to an unused confirmation of the same amount received while the QR code
was valid.
"""

import base64
import logging
import random
from datetime import timedelta
from decimal import Decimal
from io import BytesIO
from typing import Iterable, Optional

import qrcode
from django.conf import settings
from django.db import transaction, IntegrityError
from django.utils import timezone

from apps.accounts.models import User
from apps.payments.models import (
    QRCodePayment,
    C2BConfirmation,
    TransactionStatus,
)

from . import transitions
from .exceptions import PaymentNotFoundError, PaymentServiceError
from .payment_intents import parse_amount, validate_cart
from .phone import normalize_phone_number
from .sale_finalization import finalize_sale
from .status import expire_if_overdue

logger = logging.getLogger(__name__)

# C2B amounts are compared with this tolerance
AMOUNT_TOLERANCE = Decimal('0.01')


def generate_qr_reference() -> str:
    """Return a ``QR`` + ``YYYYMMDDHHMMSS`` (till local time) + 4 random digits reference."""
    stamp = timezone.localtime().strftime('%Y%m%d%H%M%S')
    return f"QR{stamp}{random.randint(1000, 9999)}"


def generate_qr_image_base64(data: str) -> str:
    """
    Render ``data`` as a PNG QR code and return it base64 encoded.

    Uses error correction level M, as most phone scanners read it
    reliably at till-screen sizes.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return base64.b64encode(buffer.getvalue()).decode('ascii')


def create_qr_payment(
    *,
    amount,
    items: Optional[Iterable[dict]] = None,
    phone_number: str = '',
    customer_name: str = '',
    description: str = '',
    created_by: Optional[User] = None,
    max_retries: int = 5
) -> QRCodePayment:
    """
    Create a QR payment awaiting a matching C2B confirmation.

    Args:
        amount: Amount the customer should pay
        items: Optional cart lines; when given they must add up to ``amount``
        phone_number: Optional customer phone
        customer_name: Optional customer name
        description: Free text shown in the QR payload
        created_by: Cashier creating the QR code
        max_retries: Attempts at a unique reference

    Returns:
        QRCodePayment in ``awaiting_confirmation``

    Raises:
        InvalidPaymentRequestError: If amount, phone or cart is invalid
        PaymentServiceError: If no unique reference could be generated
    """
    amount = parse_amount(amount)
    cart = validate_cart(items, amount) if items else []
    phone_number = normalize_phone_number(phone_number) if phone_number else ''
    expires_at = timezone.now() + timedelta(minutes=settings.MPESA_QR_TIMEOUT_MINUTES)

    for attempt in range(max_retries):
        try:
            with transaction.atomic():
                payment = QRCodePayment.objects.create(
                    qr_reference=generate_qr_reference(),
                    amount=amount,
                    till_number=settings.MPESA_TILL_NUMBER,
                    cart=cart,
                    phone_number=phone_number,
                    customer_name=customer_name or '',
                    description=(description or '')[:255],
                    initiated_by=created_by,
                    status=TransactionStatus.AWAITING_CONFIRMATION,
                    expires_at=expires_at,
                )
            break
        except IntegrityError:
            if attempt == max_retries - 1:
                raise PaymentServiceError(
                    f"Failed to generate unique QR reference after {max_retries} attempts"
                )
            continue

    logger.info("Created QR payment %s for KES %s", payment.qr_reference, amount)
    return payment


def get_qr_payment(*, qr_reference: str) -> QRCodePayment:
    try:
        return QRCodePayment.objects.select_related('sale').get(qr_reference=qr_reference)
    except QRCodePayment.DoesNotExist:
        raise PaymentNotFoundError('QR payment not found.')


def find_matching_confirmation(payment: QRCodePayment) -> Optional[C2BConfirmation]:
    """Oldest unused confirmation for the amount inside the QR's validity window."""
    return C2BConfirmation.objects.filter(
        is_used=False,
        till_number=payment.till_number,
        amount__gte=payment.amount - AMOUNT_TOLERANCE,
        amount__lte=payment.amount + AMOUNT_TOLERANCE,
        received_at__gte=payment.created_at,
        received_at__lte=payment.expires_at,
    ).order_by('received_at').first()


def match_qr_payment(payment: QRCodePayment, now=None) -> bool:
    """
    Try to settle one QR payment from the stored C2B confirmations.

    The confirmation is claimed with a conditional update so two QR codes
    for the same amount can never consume the same payment.

    Returns:
        True if the payment was confirmed by this call
    """
    now = now or timezone.now()
    if payment.status != TransactionStatus.AWAITING_CONFIRMATION or payment.expires_at <= now:
        return False

    confirmation = find_matching_confirmation(payment)
    if confirmation is None:
        return False

    with transaction.atomic():
        claimed = C2BConfirmation.objects.filter(
            pk=confirmation.pk,
            is_used=False,
        ).update(is_used=True, used_by_qr=payment, used_at=now)
        if not claimed:
            return False

        confirmed = transitions.confirm(
            payment,
            receipt_number=confirmation.transaction_code,
            transaction_code=confirmation.transaction_code,
            phone_number=payment.phone_number or confirmation.phone_number,
        )
        if not confirmed:
            C2BConfirmation.objects.filter(pk=confirmation.pk).update(
                is_used=False, used_by_qr=None, used_at=None
            )
            return False

    logger.info(
        "Matched QR payment %s to C2B confirmation %s",
        payment.qr_reference, confirmation.transaction_code
    )
    try:
        finalize_sale(payment)
    except PaymentServiceError as e:
        logger.error("Sale finalization failed for QR payment %s: %s", payment.qr_reference, e)
    return True


def match_qr_payments(now=None) -> int:
    """Run auto-matching over every awaiting, unexpired QR payment."""
    now = now or timezone.now()
    matched = 0
    for payment in get_pending_qr_payments(now=now):
        if match_qr_payment(payment, now=now):
            matched += 1
    return matched


def check_qr_payment_status(*, qr_reference: str) -> QRCodePayment:
    """
    Return a QR payment after trying to match it and expiring it if overdue.

    Raises:
        PaymentNotFoundError: If the reference is unknown
    """
    payment = get_qr_payment(qr_reference=qr_reference)
    match_qr_payment(payment)
    expire_if_overdue(payment)
    return payment


def get_pending_qr_payments(now=None):
    now = now or timezone.now()
    return QRCodePayment.objects.filter(
        status=TransactionStatus.AWAITING_CONFIRMATION,
        expires_at__gt=now,
    ).order_by('created_at')

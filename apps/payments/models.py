from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid

from apps.sales.models import PaymentMethod


class TransactionStatus(models.TextChoices):
    CREATED = 'created', 'Created'
    AWAITING_CONFIRMATION = 'awaiting_confirmation', 'Awaiting Confirmation'
    CONFIRMED = 'confirmed', 'Confirmed'
    FAILED = 'failed', 'Failed'
    EXPIRED = 'expired', 'Expired'


OPEN_STATUSES = (TransactionStatus.CREATED, TransactionStatus.AWAITING_CONFIRMATION)
TERMINAL_STATUSES = (TransactionStatus.CONFIRMED, TransactionStatus.FAILED, TransactionStatus.EXPIRED)


class ManualEntryStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    VERIFIED = 'verified', 'Verified'
    INVALID = 'invalid', 'Invalid'
    LINKED = 'linked', 'Linked'


class PaymentRecord(models.Model):
    """
    Fields shared by every payment that can turn into a sale.

    Status only ever moves forward: once a record is confirmed, failed or
    expired it is never transitioned again. Transitions are made with
    conditional updates in ``apps.payments.services.transitions``.
    """

    payment_method = None

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    phone_number = models.CharField(max_length=20, blank=True)
    customer_name = models.CharField(max_length=100, blank=True)

    # Frozen cart: [{product_id, name, quantity, unit_price}]
    cart = models.JSONField(default=list, blank=True)

    status = models.CharField(
        max_length=30,
        choices=TransactionStatus.choices,
        default=TransactionStatus.CREATED
    )
    mpesa_receipt_number = models.CharField(max_length=50, blank=True, db_index=True)

    initiated_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_initiated'
    )
    sale = models.OneToOneField(
        'sales.Sale',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField()
    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        abstract = True

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def is_overdue(self, now=None):
        """True if still open but past its expiry time."""
        now = now or timezone.now()
        return self.status in OPEN_STATUSES and self.expires_at <= now


class PendingTransaction(PaymentRecord):
    """An STK push charge waiting for the provider's callback."""

    payment_method = PaymentMethod.MPESA_STK

    session_id = models.CharField(max_length=100, blank=True)
    checkout_request_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    merchant_request_id = models.CharField(max_length=100, blank=True)
    result_code = models.CharField(max_length=20, blank=True)
    result_desc = models.CharField(max_length=255, blank=True)
    raw_callback = models.JSONField(null=True, blank=True)

    class Meta:
        db_table = 'pending_transactions'
        indexes = [
            models.Index(fields=['status', 'expires_at'], name='pending_tra_status_6b2f1a_idx'),
            models.Index(fields=['created_at'], name='pending_tra_created_0e9c4d_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"STK {self.phone_number} KES {self.amount} ({self.status})"


class QRCodePayment(PaymentRecord):
    """A pay-to-till QR code waiting for a matching C2B confirmation."""

    payment_method = PaymentMethod.MPESA_QR

    qr_reference = models.CharField(max_length=30, unique=True)
    till_number = models.CharField(max_length=20)
    description = models.CharField(max_length=255, blank=True)
    transaction_code = models.CharField(max_length=20, blank=True)

    class Meta:
        db_table = 'qr_code_payments'
        indexes = [
            models.Index(fields=['status', 'expires_at'], name='qr_code_pay_status_4d8e27_idx'),
            models.Index(fields=['amount'], name='qr_code_pay_amount_91a3c5_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.qr_reference} KES {self.amount} ({self.status})"

    @property
    def qr_data(self):
        """Text encoded in the QR image."""
        data = f"Till:{self.till_number}|Amount:{self.amount}|Ref:{self.qr_reference}"
        if self.description:
            data += f"|Desc:{self.description}"
        return data


class ManualMpesaEntry(models.Model):
    """An M-Pesa confirmation SMS typed in by an operator."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    raw_message = models.TextField(blank=True)
    transaction_code = models.CharField(max_length=20, unique=True)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    sender_phone = models.CharField(max_length=20, blank=True)
    sender_name = models.CharField(max_length=100, blank=True)
    transaction_date = models.DateField(null=True, blank=True)
    till_number = models.CharField(max_length=20, blank=True)

    status = models.CharField(
        max_length=20,
        choices=ManualEntryStatus.choices,
        default=ManualEntryStatus.PENDING
    )
    verification_notes = models.TextField(blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='verified_manual_entries'
    )
    entered_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='manual_entries'
    )

    # Set once the entry has paid for something
    pending_transaction = models.ForeignKey(
        PendingTransaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='manual_entries'
    )
    qr_payment = models.ForeignKey(
        QRCodePayment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='manual_entries'
    )
    sale = models.ForeignKey(
        'sales.Sale',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='manual_entries'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'manual_mpesa_entries'
        verbose_name_plural = 'manual M-Pesa entries'
        indexes = [
            models.Index(fields=['status'], name='manual_mpes_status_2c71b0_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.transaction_code} KES {self.amount} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in (ManualEntryStatus.INVALID, ManualEntryStatus.LINKED)


class C2BConfirmation(models.Model):
    """A pay-to-till payment reported by the provider's C2B confirmation URL."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transaction_code = models.CharField(max_length=20, unique=True)
    till_number = models.CharField(max_length=20)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    phone_number = models.CharField(max_length=20, blank=True)
    customer_name = models.CharField(max_length=150, blank=True)
    bill_ref_number = models.CharField(max_length=50, blank=True)
    received_at = models.DateTimeField(default=timezone.now)
    raw_payload = models.JSONField(default=dict, blank=True)

    is_used = models.BooleanField(default=False)
    used_by_qr = models.OneToOneField(
        QRCodePayment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='c2b_confirmation'
    )
    used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'c2b_confirmations'
        indexes = [
            models.Index(fields=['is_used', 'amount'], name='c2b_confirm_is_used_7f3a92_idx'),
            models.Index(fields=['received_at'], name='c2b_confirm_receive_5b0d16_idx'),
        ]
        ordering = ['-received_at']

    def __str__(self):
        return f"{self.transaction_code} KES {self.amount}"

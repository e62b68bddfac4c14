from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid


class PaymentMethod(models.TextChoices):
    MPESA_STK = 'mpesa_stk', 'M-Pesa STK Push'
    MPESA_QR = 'mpesa_qr', 'M-Pesa QR'
    MPESA_MANUAL = 'mpesa_manual', 'M-Pesa Manual Entry'


class SaleStatus(models.TextChoices):
    COMPLETED = 'completed', 'Completed'


class Sale(models.Model):
    """
    A completed sale.

    Rows are only written once the payment behind them is confirmed and
    are never edited afterwards.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale_number = models.CharField(max_length=40, unique=True)

    cashier = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales'
    )
    cashier_name = models.CharField(max_length=100, blank=True)
    customer_name = models.CharField(max_length=100, blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)

    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2)
    change_given = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    mpesa_receipt_number = models.CharField(max_length=50, blank=True, db_index=True)

    status = models.CharField(
        max_length=20,
        choices=SaleStatus.choices,
        default=SaleStatus.COMPLETED
    )
    sale_date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sales'
        indexes = [
            models.Index(fields=['sale_date'], name='sales_sale_da_5e2b71_idx'),
            models.Index(fields=['cashier', 'sale_date'], name='sales_cashier_8d04c3_idx'),
        ]
        ordering = ['-sale_date']

    def __str__(self):
        return f"{self.sale_number} - KES {self.total_amount}"


class SaleItem(models.Model):
    """One cart line of a sale, priced as it was at checkout."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(
        'inventory.Product',
        on_delete=models.PROTECT,
        related_name='sale_items'
    )
    product_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'sale_items'

    def __str__(self):
        return f"{self.quantity} x {self.product_name}"

from django.contrib import admin
from django.utils.html import format_html
from apps.payments.models import (
    PendingTransaction,
    QRCodePayment,
    ManualMpesaEntry,
    C2BConfirmation,
    TransactionStatus,
    ManualEntryStatus,
)
from apps.payments.services import finalize_sale, expire_stale_payments, PaymentServiceError


STATUS_COLORS = {
    TransactionStatus.CREATED: '#6c757d',
    TransactionStatus.AWAITING_CONFIRMATION: '#ffc107',
    TransactionStatus.CONFIRMED: '#28a745',
    TransactionStatus.FAILED: '#dc3545',
    TransactionStatus.EXPIRED: '#343a40',
    ManualEntryStatus.PENDING: '#ffc107',
    ManualEntryStatus.VERIFIED: '#17a2b8',
    ManualEntryStatus.INVALID: '#dc3545',
    ManualEntryStatus.LINKED: '#28a745',
}


def status_badge(obj):
    color = STATUS_COLORS.get(obj.status, '#6c757d')
    return format_html(
        '<span style="background-color: {}; color: white; padding: 3px 8px; '
        'border-radius: 3px;">{}</span>',
        color,
        obj.get_status_display()
    )
status_badge.short_description = 'Status'


class PaymentRecordAdmin(admin.ModelAdmin):
    """
    Shared admin for STK and QR payments.

    Status is read-only here; it only changes through the payment
    services. Operators can retry a sale for confirmed payments and run
    the expiry sweep.
    """

    list_filter = ['status', 'created_at']
    date_hierarchy = 'created_at'
    actions = ['finalize_selected', 'expire_overdue']

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    @admin.action(description='Record sale for selected confirmed payments')
    def finalize_selected(self, request, queryset):
        finalized = 0
        for payment in queryset.filter(status=TransactionStatus.CONFIRMED, sale__isnull=True):
            try:
                if finalize_sale(payment):
                    finalized += 1
            except PaymentServiceError as e:
                self.message_user(request, f"{payment.pk}: {e}", level='error')
        self.message_user(request, f'{finalized} sale(s) recorded.')

    @admin.action(description='Expire all overdue payments')
    def expire_overdue(self, request, queryset):
        counts = expire_stale_payments()
        self.message_user(request, f'Expired: {counts}')


@admin.register(PendingTransaction)
class PendingTransactionAdmin(PaymentRecordAdmin):
    list_display = [
        'id',
        'phone_number',
        'amount',
        status_badge,
        'mpesa_receipt_number',
        'checkout_request_id',
        'created_at',
        'expires_at',
    ]
    search_fields = ['id', 'phone_number', 'checkout_request_id', 'mpesa_receipt_number']


@admin.register(QRCodePayment)
class QRCodePaymentAdmin(PaymentRecordAdmin):
    list_display = [
        'qr_reference',
        'amount',
        status_badge,
        'transaction_code',
        'created_at',
        'expires_at',
    ]
    search_fields = ['qr_reference', 'transaction_code', 'phone_number']


@admin.register(ManualMpesaEntry)
class ManualMpesaEntryAdmin(admin.ModelAdmin):
    list_display = [
        'transaction_code',
        'amount',
        'sender_name',
        'sender_phone',
        status_badge,
        'entered_by',
        'created_at',
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['transaction_code', 'sender_phone', 'sender_name']
    readonly_fields = [
        'transaction_code',
        'amount',
        'raw_message',
        'status',
        'verified_by',
        'verified_at',
        'entered_by',
        'pending_transaction',
        'qr_payment',
        'sale',
        'created_at',
        'updated_at',
    ]


@admin.register(C2BConfirmation)
class C2BConfirmationAdmin(admin.ModelAdmin):
    list_display = [
        'transaction_code',
        'amount',
        'phone_number',
        'customer_name',
        'is_used',
        'received_at',
    ]
    list_filter = ['is_used', 'received_at']
    search_fields = ['transaction_code', 'phone_number', 'customer_name']

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

from decimal import Decimal
from rest_framework import serializers
from .models import PendingTransaction, QRCodePayment, ManualMpesaEntry
from .services import generate_qr_image_base64


# =============================================================================
# Input serializers
# =============================================================================

class CartItemInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class STKInitiateInputSerializer(serializers.Serializer):
    """Body of POST /api/payments/stk/initiate/"""

    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    phone_number = serializers.CharField(max_length=20)
    cart = CartItemInputSerializer(many=True, allow_empty=False)
    session_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=100, required=False, allow_blank=True)


class StatusQuerySerializer(serializers.Serializer):
    refresh = serializers.BooleanField(required=False, default=False)


class QRCreateInputSerializer(serializers.Serializer):
    """Body of POST /api/payments/qr/"""

    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    cart = CartItemInputSerializer(many=True, required=False)
    phone_number = serializers.CharField(max_length=20, required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)


class ManualEntryInputSerializer(serializers.Serializer):
    """Body of POST /api/payments/manual-entries/"""

    message = serializers.CharField(required=False, allow_blank=True)
    transaction_code = serializers.CharField(max_length=20, required=False, allow_blank=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)

    def validate(self, attrs):
        if not attrs.get('message') and not (attrs.get('transaction_code') and attrs.get('amount')):
            raise serializers.ValidationError(
                'Provide the M-Pesa message or both transaction_code and amount.'
            )
        return attrs


class ManualEntryVerifyInputSerializer(serializers.Serializer):
    is_valid = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ManualEntryConfirmInputSerializer(serializers.Serializer):
    """Names the payment a verified entry should settle."""

    transaction_id = serializers.UUIDField(required=False)
    qr_reference = serializers.CharField(max_length=30, required=False)

    def validate(self, attrs):
        if bool(attrs.get('transaction_id')) == bool(attrs.get('qr_reference')):
            raise serializers.ValidationError('Provide exactly one of transaction_id or qr_reference.')
        return attrs


# =============================================================================
# Output serializers
# =============================================================================

class PendingTransactionSerializer(serializers.ModelSerializer):
    """STK payment state as seen by the till."""

    is_terminal = serializers.BooleanField(read_only=True)
    sale_number = serializers.CharField(source='sale.sale_number', read_only=True, default=None)

    class Meta:
        model = PendingTransaction
        fields = [
            'id',
            'status',
            'is_terminal',
            'amount',
            'phone_number',
            'customer_name',
            'session_id',
            'cart',
            'checkout_request_id',
            'merchant_request_id',
            'result_code',
            'result_desc',
            'mpesa_receipt_number',
            'sale',
            'sale_number',
            'created_at',
            'expires_at',
            'confirmed_at',
        ]
        read_only_fields = fields


class QRCodePaymentSerializer(serializers.ModelSerializer):
    """QR payment; the PNG is only included when ``include_image`` is in context."""

    is_terminal = serializers.BooleanField(read_only=True)
    qr_data = serializers.CharField(read_only=True)
    qr_image = serializers.SerializerMethodField()
    sale_number = serializers.CharField(source='sale.sale_number', read_only=True, default=None)

    class Meta:
        model = QRCodePayment
        fields = [
            'id',
            'qr_reference',
            'status',
            'is_terminal',
            'amount',
            'till_number',
            'description',
            'phone_number',
            'customer_name',
            'cart',
            'transaction_code',
            'mpesa_receipt_number',
            'qr_data',
            'qr_image',
            'sale',
            'sale_number',
            'created_at',
            'expires_at',
            'confirmed_at',
        ]
        read_only_fields = fields

    def get_qr_image(self, obj):
        if not self.context.get('include_image'):
            return None
        return generate_qr_image_base64(obj.qr_data)


class ManualMpesaEntrySerializer(serializers.ModelSerializer):
    entered_by_email = serializers.EmailField(source='entered_by.email', read_only=True, default=None)

    class Meta:
        model = ManualMpesaEntry
        fields = [
            'id',
            'transaction_code',
            'amount',
            'sender_phone',
            'sender_name',
            'transaction_date',
            'till_number',
            'status',
            'verification_notes',
            'verified_at',
            'entered_by',
            'entered_by_email',
            'pending_transaction',
            'qr_payment',
            'sale',
            'raw_message',
            'created_at',
        ]
        read_only_fields = fields


class ProviderAckSerializer(serializers.Serializer):
    """Acknowledgement envelope returned to the provider."""

    ResultCode = serializers.IntegerField()
    ResultDesc = serializers.CharField()

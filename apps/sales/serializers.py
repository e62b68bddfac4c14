from rest_framework import serializers
from .models import Sale, SaleItem


class SaleItemSerializer(serializers.ModelSerializer):

    class Meta:
        model = SaleItem
        fields = ['id', 'product', 'product_name', 'quantity', 'unit_price', 'total_price']
        read_only_fields = fields


class SaleSerializer(serializers.ModelSerializer):
    """Full sale with its items."""

    items = SaleItemSerializer(many=True, read_only=True)

    class Meta:
        model = Sale
        fields = [
            'id',
            'sale_number',
            'cashier',
            'cashier_name',
            'customer_name',
            'customer_phone',
            'payment_method',
            'total_amount',
            'amount_paid',
            'change_given',
            'mpesa_receipt_number',
            'status',
            'sale_date',
            'items',
        ]
        read_only_fields = fields


class SaleListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for sale lists."""

    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Sale
        fields = [
            'id',
            'sale_number',
            'cashier_name',
            'payment_method',
            'total_amount',
            'mpesa_receipt_number',
            'sale_date',
            'item_count',
        ]
        read_only_fields = fields


class SaleFilterSerializer(serializers.Serializer):
    """Query parameters for the sale list."""

    payment_method = serializers.ChoiceField(
        choices=['mpesa_stk', 'mpesa_qr', 'mpesa_manual'],
        required=False
    )
    receipt = serializers.CharField(required=False, allow_blank=True)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    mine = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if 'date_from' in attrs and 'date_to' in attrs:
            if attrs['date_from'] > attrs['date_to']:
                raise serializers.ValidationError({
                    'date_to': 'date_to must be after date_from.'
                })
        return attrs

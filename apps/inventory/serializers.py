from rest_framework import serializers
from .models import Category, Product


class CategorySerializer(serializers.ModelSerializer):

    class Meta:
        model = Category
        fields = ['id', 'name', 'description']
        read_only_fields = fields


class ProductSerializer(serializers.ModelSerializer):
    """Read-only product view used by the till."""

    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = [
            'id',
            'name',
            'sku',
            'category',
            'category_name',
            'selling_price',
            'stock_quantity',
            'min_stock_level',
            'is_low_stock',
            'is_active',
        ]
        read_only_fields = fields


class ProductFilterSerializer(serializers.Serializer):
    """Query parameters for the product list."""

    search = serializers.CharField(required=False, allow_blank=True)
    category = serializers.UUIDField(required=False)
    in_stock = serializers.BooleanField(required=False)

from django.contrib import admin
from django.utils.html import format_html
from apps.inventory.models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'description']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for products and stock levels."""

    list_display = [
        'name',
        'sku',
        'category',
        'selling_price',
        'stock_quantity',
        'stock_badge',
        'is_active',
    ]
    list_filter = ['category', 'is_active']
    search_fields = ['name', 'sku']
    readonly_fields = ['created_at', 'updated_at']

    fieldsets = (
        ('Product', {
            'fields': ('name', 'sku', 'category', 'is_active')
        }),
        ('Pricing', {
            'fields': ('selling_price', 'buying_price')
        }),
        ('Stock', {
            'fields': ('stock_quantity', 'min_stock_level')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def stock_badge(self, obj):
        if obj.is_low_stock:
            return format_html(
                '<span style="background-color: #dc3545; color: white; padding: 3px 8px; '
                'border-radius: 3px;">{}</span>',
                'Low'
            )
        return format_html(
            '<span style="background-color: #28a745; color: white; padding: 3px 8px; '
            'border-radius: 3px;">{}</span>',
            'OK'
        )
    stock_badge.short_description = 'Stock'

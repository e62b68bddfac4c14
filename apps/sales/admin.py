from django.contrib import admin
from apps.sales.models import Sale, SaleItem


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    can_delete = False
    fields = ['product', 'product_name', 'quantity', 'unit_price', 'total_price']
    readonly_fields = fields


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    """Admin interface for sales. Sales are read-only once recorded."""

    list_display = [
        'sale_number',
        'payment_method',
        'total_amount',
        'mpesa_receipt_number',
        'cashier_name',
        'sale_date',
    ]
    list_filter = ['payment_method', 'status', 'sale_date']
    search_fields = ['sale_number', 'mpesa_receipt_number', 'customer_phone', 'customer_name']
    date_hierarchy = 'sale_date'
    inlines = [SaleItemInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

from rest_framework import viewsets
from rest_framework.pagination import PageNumberPagination
from .models import Sale
from .serializers import SaleSerializer, SaleListSerializer, SaleFilterSerializer


class SalePagination(PageNumberPagination):
    """Custom pagination for sales."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class SaleViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Finalized sales. Sales are created by the payment workflow only.

    list: Sales filtered by method, receipt, date range or cashier
    retrieve: A sale with its items
    """

    queryset = Sale.objects.select_related('cashier').prefetch_related('items')
    serializer_class = SaleSerializer
    pagination_class = SalePagination

    def get_queryset(self):
        queryset = super().get_queryset()

        filter_serializer = SaleFilterSerializer(data=self.request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        params = filter_serializer.validated_data

        if params.get('payment_method'):
            queryset = queryset.filter(payment_method=params['payment_method'])
        if params.get('receipt'):
            queryset = queryset.filter(mpesa_receipt_number__iexact=params['receipt'])
        if 'date_from' in params:
            queryset = queryset.filter(sale_date__date__gte=params['date_from'])
        if 'date_to' in params:
            queryset = queryset.filter(sale_date__date__lte=params['date_to'])
        if params.get('mine'):
            queryset = queryset.filter(cashier=self.request.user)

        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return SaleListSerializer
        return SaleSerializer

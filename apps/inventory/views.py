from django.db.models import Q
from rest_framework import viewsets
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, OpenApiParameter
from .models import Product
from .serializers import ProductSerializer, ProductFilterSerializer


class ProductPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 200


@extend_schema(
    parameters=[
        OpenApiParameter('search', str, description='Match name or SKU'),
        OpenApiParameter('category', str, description='Category id'),
        OpenApiParameter('in_stock', bool, description='Only products with stock left'),
    ]
)
class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Active products available for sale.

    list: Products filtered by search, category and stock
    retrieve: A single product
    """

    queryset = Product.objects.filter(is_active=True).select_related('category')
    serializer_class = ProductSerializer
    pagination_class = ProductPagination

    def get_queryset(self):
        queryset = super().get_queryset()

        filter_serializer = ProductFilterSerializer(data=self.request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        params = filter_serializer.validated_data

        search = params.get('search')
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(sku__iexact=search))

        if params.get('category'):
            queryset = queryset.filter(category_id=params['category'])

        if params.get('in_stock'):
            queryset = queryset.filter(stock_quantity__gt=0)

        return queryset

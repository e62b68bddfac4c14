from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'inventory'

router = DefaultRouter()
router.register(r'products', views.ProductViewSet, basename='product')

urlpatterns = [
    # GET    /api/inventory/products/       - List active products
    # GET    /api/inventory/products/{id}/  - Get product details
    path('', include(router.urls)),
]

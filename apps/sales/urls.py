from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'sales'

router = DefaultRouter()
router.register(r'', views.SaleViewSet, basename='sale')

urlpatterns = [
    # GET    /api/sales/        - List sales
    # GET    /api/sales/{id}/   - Get sale with items
    path('', include(router.urls)),
]

import pytest
from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.inventory.models import Product
from apps.sales.models import PaymentMethod
from apps.sales.services import record_sale


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        email='cashier@example.com',
        password='TestPass123!',
        display_name='Till Cashier',
    )


@pytest.fixture
def authenticated_client(api_client, user):
    refresh = RefreshToken.for_user(user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client


@pytest.fixture
def soda(db):
    return Product.objects.create(
        name='Soda 500ml',
        sku='SODA-500',
        selling_price=Decimal('80.00'),
        stock_quantity=10,
    )


@pytest.fixture
def bread(db):
    return Product.objects.create(
        name='Bread 400g',
        sku='BREAD-400',
        selling_price=Decimal('65.00'),
        stock_quantity=3,
    )


@pytest.fixture
def sale(db, user, soda):
    """A recorded STK sale of two sodas."""
    cart = [{
        'product_id': str(soda.id),
        'name': soda.name,
        'quantity': 2,
        'unit_price': '80.00',
    }]
    return record_sale(
        cart=cart,
        payment_method=PaymentMethod.MPESA_STK,
        amount_paid=Decimal('160.00'),
        cashier=user,
        mpesa_receipt_number='QWE123RTY4',
    )

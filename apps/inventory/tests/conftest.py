import pytest
from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.inventory.models import Category, Product


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
def category(db):
    return Category.objects.create(name='Beverages')


@pytest.fixture
def product(db, category):
    """A stocked product."""
    return Product.objects.create(
        name='Soda 500ml',
        sku='SODA-500',
        category=category,
        selling_price=Decimal('80.00'),
        buying_price=Decimal('55.00'),
        stock_quantity=24,
        min_stock_level=5,
    )


@pytest.fixture
def product_out_of_stock(db, category):
    return Product.objects.create(
        name='Juice 1L',
        sku='JUICE-1L',
        category=category,
        selling_price=Decimal('250.00'),
        stock_quantity=0,
        min_stock_level=2,
    )


@pytest.fixture
def product_inactive(db):
    return Product.objects.create(
        name='Discontinued Biscuit',
        sku='BISC-OLD',
        selling_price=Decimal('20.00'),
        stock_quantity=10,
        is_active=False,
    )

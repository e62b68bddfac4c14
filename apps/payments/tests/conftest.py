import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User, StaffRole
from apps.inventory.models import Product
from apps.payments.models import (
    PendingTransaction,
    QRCodePayment,
    TransactionStatus,
)


# =============================================================================
# Users and clients
# =============================================================================

@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    """A cashier."""
    return User.objects.create_user(
        email='cashier@example.com',
        password='TestPass123!',
        display_name='Till Cashier',
    )


@pytest.fixture
def manager(db):
    return User.objects.create_user(
        email='manager@example.com',
        password='TestPass123!',
        display_name='Shop Manager',
        role=StaffRole.MANAGER,
    )


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def authenticated_client(user):
    return _client_for(user)


@pytest.fixture
def manager_client(manager):
    return _client_for(manager)


@pytest.fixture(autouse=True)
def mpesa_settings(settings):
    """Deterministic provider settings for every payments test."""
    settings.MPESA_ENVIRONMENT = 'sandbox'
    settings.MPESA_CONSUMER_KEY = 'test-key'
    settings.MPESA_CONSUMER_SECRET = 'test-secret'
    settings.MPESA_SHORTCODE = '174379'
    settings.MPESA_PASSKEY = 'test-passkey'
    settings.MPESA_CALLBACK_URL = 'https://pos.example.com/api/payments/mpesa/callback/'
    settings.MPESA_TILL_NUMBER = '6509715'
    settings.MPESA_STK_TIMEOUT_SECONDS = 180
    settings.MPESA_QR_TIMEOUT_MINUTES = 30
    settings.MPESA_CALLBACK_ALLOWED_IPS = []
    settings.MPESA_CALLBACK_TRUSTED_PROXIES = 0
    cache.clear()
    return settings


# =============================================================================
# Catalog
# =============================================================================

@pytest.fixture
def product(db):
    """Sells at 250, twenty on the shelf."""
    return Product.objects.create(
        name='Maize Flour 2kg',
        sku='FLOUR-2KG',
        selling_price=Decimal('250.00'),
        stock_quantity=20,
    )


@pytest.fixture
def cart_items(product):
    """Two units, total 500."""
    return [{'product_id': str(product.id), 'quantity': 2}]


@pytest.fixture
def cart_snapshot(product):
    return [{
        'product_id': str(product.id),
        'name': product.name,
        'quantity': 2,
        'unit_price': '250.00',
    }]


# =============================================================================
# Provider
# =============================================================================

@pytest.fixture
def stk_accepted_response():
    return {
        'MerchantRequestID': '29115-34620561-1',
        'CheckoutRequestID': 'ws_CO_191220191020363925',
        'ResponseCode': '0',
        'ResponseDescription': 'Success. Request accepted for processing',
        'CustomerMessage': 'Success. Request accepted for processing',
    }


@pytest.fixture
def mpesa_client(stk_accepted_response):
    """Stand-in for MpesaClient."""
    client = MagicMock()
    client.stk_push.return_value = stk_accepted_response
    return client


def make_stk_callback(checkout_request_id, result_code=0, receipt='QWE123RTY4', amount=500):
    """Build an STK callback body as the provider sends it."""
    callback = {
        'MerchantRequestID': '29115-34620561-1',
        'CheckoutRequestID': checkout_request_id,
        'ResultCode': result_code,
        'ResultDesc': 'The service request is processed successfully.' if result_code == 0
        else 'Request cancelled by user',
    }
    if result_code == 0:
        items = [
            {'Name': 'Amount', 'Value': amount},
            {'Name': 'TransactionDate', 'Value': 20250203101500},
            {'Name': 'PhoneNumber', 'Value': 254712345678},
        ]
        if receipt:
            items.insert(1, {'Name': 'MpesaReceiptNumber', 'Value': receipt})
        callback['CallbackMetadata'] = {'Item': items}
    return {'Body': {'stkCallback': callback}}


@pytest.fixture
def stk_callback():
    return make_stk_callback


# =============================================================================
# Payment records
# =============================================================================

@pytest.fixture
def awaiting_transaction(db, user, cart_snapshot):
    """STK payment of 500 waiting for its callback."""
    return PendingTransaction.objects.create(
        amount=Decimal('500.00'),
        phone_number='254712345678',
        cart=cart_snapshot,
        status=TransactionStatus.AWAITING_CONFIRMATION,
        checkout_request_id='ws_CO_191220191020363925',
        merchant_request_id='29115-34620561-1',
        initiated_by=user,
        expires_at=timezone.now() + timedelta(minutes=3),
    )


@pytest.fixture
def overdue_transaction(db, user, cart_snapshot):
    return PendingTransaction.objects.create(
        amount=Decimal('500.00'),
        phone_number='254712345678',
        cart=cart_snapshot,
        status=TransactionStatus.AWAITING_CONFIRMATION,
        checkout_request_id='ws_CO_OVERDUE',
        initiated_by=user,
        expires_at=timezone.now() - timedelta(seconds=1),
    )


@pytest.fixture
def confirmed_transaction(db, user, cart_snapshot):
    return PendingTransaction.objects.create(
        amount=Decimal('500.00'),
        phone_number='254712345678',
        cart=cart_snapshot,
        status=TransactionStatus.CONFIRMED,
        checkout_request_id='ws_CO_CONFIRMED',
        mpesa_receipt_number='QWE123RTY4',
        initiated_by=user,
        confirmed_at=timezone.now(),
        expires_at=timezone.now() + timedelta(minutes=3),
    )


@pytest.fixture
def qr_payment(db, user, cart_snapshot):
    return QRCodePayment.objects.create(
        qr_reference='QR202502031015001234',
        amount=Decimal('500.00'),
        till_number='6509715',
        cart=cart_snapshot,
        status=TransactionStatus.AWAITING_CONFIRMATION,
        initiated_by=user,
        expires_at=timezone.now() + timedelta(minutes=30),
    )

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from django.utils import timezone
from apps.inventory.models import Product
from apps.payments.models import PendingTransaction, QRCodePayment, TransactionStatus
from apps.payments.services import (
    initiate_stk_payment,
    get_payment_status,
    finalize_sale,
    expire_stale_payments,
    normalize_phone_number,
    InvalidPaymentRequestError,
    MpesaProviderError,
    PaymentNotConfirmedError,
    PaymentNotFoundError,
)
from apps.payments.services import transitions
from apps.sales.models import Sale, PaymentMethod


# =============================================================================
# Phone numbers
# =============================================================================

class TestNormalizePhoneNumber:

    @pytest.mark.parametrize('raw', [
        '0712345678',
        '+254712345678',
        '254712345678',
        '712345678',
        '0712 345 678',
        '254-712-345-678',
    ])
    def test_accepted_formats(self, raw):
        assert normalize_phone_number(raw) == '254712345678'

    def test_airtel_style_prefix(self):
        assert normalize_phone_number('0110123456') == '254110123456'

    @pytest.mark.parametrize('raw', ['', '12345', '0812345678', '25471234567', 'phone'])
    def test_rejected(self, raw):
        with pytest.raises(InvalidPaymentRequestError):
            normalize_phone_number(raw)


# =============================================================================
# Initiation
# =============================================================================

@pytest.mark.django_db
class TestInitiateStkPayment:

    def test_initiate_success(self, user, cart_items, mpesa_client):
        payment = initiate_stk_payment(
            amount='500',
            phone_number='0712345678',
            items=cart_items,
            initiated_by=user,
            client=mpesa_client,
        )

        assert payment.status == TransactionStatus.AWAITING_CONFIRMATION
        assert payment.checkout_request_id == 'ws_CO_191220191020363925'
        assert payment.phone_number == '254712345678'
        assert payment.cart[0]['quantity'] == 2

        stored = PendingTransaction.objects.get(pk=payment.pk)
        assert stored.status == TransactionStatus.AWAITING_CONFIRMATION
        assert stored.expires_at > timezone.now()

        kwargs = mpesa_client.stk_push.call_args.kwargs
        assert kwargs['phone_number'] == '254712345678'
        assert kwargs['amount'] == Decimal('500.00')

    def test_provider_failure_marks_failed(self, cart_items, mpesa_client):
        mpesa_client.stk_push.side_effect = MpesaProviderError('Invalid Access Token')

        with pytest.raises(MpesaProviderError) as exc_info:
            initiate_stk_payment(
                amount=500,
                phone_number='254712345678',
                items=cart_items,
                client=mpesa_client,
            )

        payment = PendingTransaction.objects.get()
        assert payment.status == TransactionStatus.FAILED
        assert payment.result_desc == 'Invalid Access Token'
        assert exc_info.value.detail['status'] == 'failed'
        assert exc_info.value.detail['transaction_id'] == str(payment.pk)

    @pytest.mark.parametrize('amount', [0, -10, 'abc'])
    def test_invalid_amount_rejected(self, cart_items, mpesa_client, amount):
        with pytest.raises(InvalidPaymentRequestError):
            initiate_stk_payment(
                amount=amount,
                phone_number='254712345678',
                items=cart_items,
                client=mpesa_client,
            )

        assert PendingTransaction.objects.count() == 0
        mpesa_client.stk_push.assert_not_called()

    def test_empty_cart_rejected(self, mpesa_client):
        with pytest.raises(InvalidPaymentRequestError):
            initiate_stk_payment(
                amount=500,
                phone_number='254712345678',
                items=[],
                client=mpesa_client,
            )

        assert PendingTransaction.objects.count() == 0

    def test_amount_must_match_cart_total(self, cart_items, mpesa_client):
        with pytest.raises(InvalidPaymentRequestError) as exc_info:
            initiate_stk_payment(
                amount=450,
                phone_number='254712345678',
                items=cart_items,
                client=mpesa_client,
            )

        assert 'does not match' in str(exc_info.value)

    def test_quantity_above_stock_rejected(self, product, mpesa_client):
        with pytest.raises(InvalidPaymentRequestError):
            initiate_stk_payment(
                amount=Decimal('5250.00'),
                phone_number='254712345678',
                items=[{'product_id': product.id, 'quantity': 21}],
                client=mpesa_client,
            )

    def test_invalid_phone_rejected(self, cart_items, mpesa_client):
        with pytest.raises(InvalidPaymentRequestError):
            initiate_stk_payment(
                amount=500,
                phone_number='12345',
                items=cart_items,
                client=mpesa_client,
            )


# =============================================================================
# Transitions
# =============================================================================

@pytest.mark.django_db
class TestTransitions:

    def test_confirm_open_payment(self, awaiting_transaction):
        assert transitions.confirm(awaiting_transaction, receipt_number='QWE123RTY4')

        awaiting_transaction.refresh_from_db()
        assert awaiting_transaction.status == TransactionStatus.CONFIRMED
        assert awaiting_transaction.mpesa_receipt_number == 'QWE123RTY4'
        assert awaiting_transaction.confirmed_at is not None

    def test_terminal_payment_never_moves(self, confirmed_transaction):
        assert not transitions.fail(confirmed_transaction, result_desc='late failure')
        assert not transitions.confirm(confirmed_transaction, receipt_number='OTHER12345')

        confirmed_transaction.refresh_from_db()
        assert confirmed_transaction.status == TransactionStatus.CONFIRMED
        assert confirmed_transaction.mpesa_receipt_number == 'QWE123RTY4'

    def test_overdue_payment_cannot_be_confirmed(self, overdue_transaction):
        assert not transitions.confirm(overdue_transaction, receipt_number='QWE123RTY4')

        overdue_transaction.refresh_from_db()
        assert overdue_transaction.status == TransactionStatus.AWAITING_CONFIRMATION

    def test_expire_requires_expiry_time_passed(self, awaiting_transaction, overdue_transaction):
        assert not transitions.expire(awaiting_transaction)
        assert transitions.expire(overdue_transaction)

        overdue_transaction.refresh_from_db()
        assert overdue_transaction.status == TransactionStatus.EXPIRED

    def test_stale_instance_loses_race(self, awaiting_transaction):
        stale = PendingTransaction.objects.get(pk=awaiting_transaction.pk)

        assert transitions.fail(awaiting_transaction, result_desc='cancelled')
        assert not transitions.confirm(stale, receipt_number='QWE123RTY4')

        stale.refresh_from_db()
        assert stale.status == TransactionStatus.FAILED


# =============================================================================
# Status
# =============================================================================

@pytest.mark.django_db
class TestPaymentStatus:

    def test_status_returns_persisted_state(self, awaiting_transaction):
        payment = get_payment_status(transaction_id=awaiting_transaction.pk)

        assert payment.status == TransactionStatus.AWAITING_CONFIRMATION

    def test_overdue_payment_expired_on_poll(self, overdue_transaction):
        payment = get_payment_status(transaction_id=overdue_transaction.pk)

        assert payment.status == TransactionStatus.EXPIRED
        overdue_transaction.refresh_from_db()
        assert overdue_transaction.status == TransactionStatus.EXPIRED

    def test_unknown_transaction(self):
        with pytest.raises(PaymentNotFoundError):
            get_payment_status(transaction_id='8a4a7f0e-0000-4000-8000-000000000000')

    def test_refresh_confirms_from_query(self, awaiting_transaction, product):
        client = MagicMock()
        client.stk_query.return_value = {
            'ResponseCode': '0',
            'ResultCode': '0',
            'ResultDesc': 'The service request is processed successfully.',
        }

        payment = get_payment_status(transaction_id=awaiting_transaction.pk, refresh=True, client=client)

        assert payment.status == TransactionStatus.CONFIRMED
        assert payment.mpesa_receipt_number == ''
        assert Sale.objects.count() == 1
        client.stk_query.assert_called_once_with(checkout_request_id='ws_CO_191220191020363925')

    def test_refresh_fails_from_query(self, awaiting_transaction):
        client = MagicMock()
        client.stk_query.return_value = {
            'ResponseCode': '0',
            'ResultCode': '1032',
            'ResultDesc': 'Request cancelled by user',
        }

        payment = get_payment_status(transaction_id=awaiting_transaction.pk, refresh=True, client=client)

        assert payment.status == TransactionStatus.FAILED
        assert payment.result_desc == 'Request cancelled by user'

    def test_refresh_still_processing(self, awaiting_transaction):
        client = MagicMock()
        client.stk_query.return_value = {
            'requestId': '1234-5678',
            'errorCode': '500.001.1001',
            'errorMessage': 'The transaction is being processed',
        }

        payment = get_payment_status(transaction_id=awaiting_transaction.pk, refresh=True, client=client)

        assert payment.status == TransactionStatus.AWAITING_CONFIRMATION

    def test_refresh_provider_error_returns_stored_status(self, awaiting_transaction):
        client = MagicMock()
        client.stk_query.side_effect = MpesaProviderError('timeout')

        payment = get_payment_status(transaction_id=awaiting_transaction.pk, refresh=True, client=client)

        assert payment.status == TransactionStatus.AWAITING_CONFIRMATION

    def test_expire_stale_payments(self, awaiting_transaction, overdue_transaction, confirmed_transaction, user):
        QRCodePayment.objects.create(
            qr_reference='QR202501010000001111',
            amount=Decimal('100.00'),
            till_number='6509715',
            status=TransactionStatus.AWAITING_CONFIRMATION,
            expires_at=timezone.now() - timedelta(minutes=1),
        )

        counts = expire_stale_payments()

        assert counts == {'PendingTransaction': 1, 'QRCodePayment': 1}
        awaiting_transaction.refresh_from_db()
        confirmed_transaction.refresh_from_db()
        assert awaiting_transaction.status == TransactionStatus.AWAITING_CONFIRMATION
        assert confirmed_transaction.status == TransactionStatus.CONFIRMED


# =============================================================================
# Sale finalization
# =============================================================================

@pytest.mark.django_db
class TestFinalizeSale:

    def test_finalize_creates_sale_and_decrements_stock(self, confirmed_transaction, product, user):
        sale = finalize_sale(confirmed_transaction)

        assert sale.total_amount == Decimal('500.00')
        assert sale.payment_method == PaymentMethod.MPESA_STK
        assert sale.mpesa_receipt_number == 'QWE123RTY4'
        assert sale.cashier == user
        assert sale.items.get().quantity == 2

        product.refresh_from_db()
        assert product.stock_quantity == 18

        confirmed_transaction.refresh_from_db()
        assert confirmed_transaction.sale_id == sale.id

    def test_finalize_is_idempotent(self, confirmed_transaction, product):
        first = finalize_sale(confirmed_transaction)
        second = finalize_sale(PendingTransaction.objects.get(pk=confirmed_transaction.pk))

        assert first.id == second.id
        assert Sale.objects.count() == 1
        product.refresh_from_db()
        assert product.stock_quantity == 18

    @pytest.mark.parametrize('fixture_name', ['awaiting_transaction', 'overdue_transaction'])
    def test_finalize_refuses_unconfirmed(self, request, fixture_name):
        payment = request.getfixturevalue(fixture_name)

        with pytest.raises(PaymentNotConfirmedError):
            finalize_sale(payment)

        assert Sale.objects.count() == 0

    def test_finalize_refuses_failed(self, awaiting_transaction):
        transitions.fail(awaiting_transaction, result_desc='cancelled')

        with pytest.raises(PaymentNotConfirmedError):
            finalize_sale(awaiting_transaction)

    def test_oversold_stock_goes_negative(self, confirmed_transaction, product):
        Product.objects.filter(pk=product.pk).update(stock_quantity=1)

        finalize_sale(confirmed_transaction)

        product.refresh_from_db()
        assert product.stock_quantity == -1

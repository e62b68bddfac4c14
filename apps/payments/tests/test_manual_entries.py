import pytest
from datetime import date, timedelta
from decimal import Decimal
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from apps.payments.models import ManualMpesaEntry, ManualEntryStatus, PendingTransaction, TransactionStatus
from apps.payments.services import (
    parse_mpesa_message,
    create_manual_entry,
    verify_manual_entry,
    confirm_payment_with_entry,
    get_pending_manual_entries,
    UnparseableMessageError,
    DuplicateTransactionCodeError,
    ManualEntryStateError,
    InsufficientEntryAmountError,
    PaymentAlreadyClosedError,
)
from apps.sales.models import Sale, PaymentMethod

SMS = (
    "QWE1234RTY Confirmed. Ksh500.00 received from JANE WANJIKU DOE 254712345678 "
    "on 3/2/2025 at 10:15 AM. New M-PESA balance is Ksh12,300.00."
)


@pytest.fixture
def entry(user):
    return create_manual_entry(message=SMS, entered_by=user)


@pytest.fixture
def verified_entry(entry, manager):
    return verify_manual_entry(entry_id=entry.id, is_valid=True, verified_by=manager)


# =============================================================================
# Parsing
# =============================================================================

class TestParseMessage:

    def test_full_message(self):
        parsed = parse_mpesa_message(SMS)

        assert parsed['transaction_code'] == 'QWE1234RTY'
        assert parsed['amount'] == Decimal('500.00')
        assert parsed['sender_phone'] == '254712345678'
        assert parsed['sender_name'] == 'JANE WANJIKU DOE'
        assert parsed['transaction_date'] == date(2025, 2, 3)

    def test_amount_with_thousands_separator(self):
        parsed = parse_mpesa_message('RKT9ABC12D Confirmed. Ksh 1,250.50 sent to SHOP')

        assert parsed['amount'] == Decimal('1250.50')
        assert parsed['transaction_code'] == 'RKT9ABC12D'

    def test_lowercase_code_upper_cased(self):
        parsed = parse_mpesa_message('qwe1234rty confirmed. Ksh10.00')

        assert parsed['transaction_code'] == 'QWE1234RTY'

    def test_word_without_digits_is_not_a_code(self):
        parsed = parse_mpesa_message('CONFIRMED. Ksh10.00 received')

        assert parsed['transaction_code'] is None

    def test_garbage(self):
        parsed = parse_mpesa_message('hello there')

        assert parsed['transaction_code'] is None
        assert parsed['amount'] is None
        assert parsed['transaction_date'] is None


# =============================================================================
# Services
# =============================================================================

@pytest.mark.django_db
class TestManualEntryServices:

    def test_create_from_message(self, entry, user):
        assert entry.status == ManualEntryStatus.PENDING
        assert entry.transaction_code == 'QWE1234RTY'
        assert entry.amount == Decimal('500.00')
        assert entry.till_number == '6509715'
        assert entry.entered_by == user

    def test_explicit_fields_override_message(self, user):
        entry = create_manual_entry(transaction_code='abc1234xyz', amount='750', entered_by=user)

        assert entry.transaction_code == 'ABC1234XYZ'
        assert entry.amount == Decimal('750.00')

    def test_unparseable(self):
        with pytest.raises(UnparseableMessageError):
            create_manual_entry(message='Paid the shop, thanks')

    def test_duplicate_code(self, entry):
        with pytest.raises(DuplicateTransactionCodeError):
            create_manual_entry(message=SMS)

        assert ManualMpesaEntry.objects.count() == 1

    def test_verify(self, verified_entry, manager):
        assert verified_entry.status == ManualEntryStatus.VERIFIED
        assert verified_entry.verified_by == manager
        assert verified_entry.verified_at is not None

    def test_mark_invalid(self, entry, manager):
        entry = verify_manual_entry(entry_id=entry.id, is_valid=False, verified_by=manager, notes='Not on statement')

        assert entry.status == ManualEntryStatus.INVALID
        assert entry.verification_notes == 'Not on statement'

    def test_verify_twice_rejected(self, verified_entry, manager):
        with pytest.raises(ManualEntryStateError):
            verify_manual_entry(entry_id=verified_entry.id, is_valid=False, verified_by=manager)

    def test_confirm_stk_payment(self, verified_entry, awaiting_transaction, product, manager):
        entry = confirm_payment_with_entry(
            entry_id=verified_entry.id,
            payment=awaiting_transaction,
            confirmed_by=manager,
        )

        assert entry.status == ManualEntryStatus.LINKED
        assert entry.pending_transaction_id == awaiting_transaction.id
        assert entry.sale is not None

        awaiting_transaction.refresh_from_db()
        assert awaiting_transaction.status == TransactionStatus.CONFIRMED
        assert awaiting_transaction.mpesa_receipt_number == 'QWE1234RTY'

        sale = Sale.objects.get()
        assert sale.payment_method == PaymentMethod.MPESA_MANUAL
        assert sale.cashier == manager

    def test_confirm_qr_payment(self, verified_entry, qr_payment, product):
        entry = confirm_payment_with_entry(entry_id=verified_entry.id, payment=qr_payment)

        assert entry.qr_payment_id == qr_payment.id
        qr_payment.refresh_from_db()
        assert qr_payment.status == TransactionStatus.CONFIRMED
        assert qr_payment.transaction_code == 'QWE1234RTY'

    def test_unverified_entry_rejected(self, entry, awaiting_transaction):
        with pytest.raises(ManualEntryStateError):
            confirm_payment_with_entry(entry_id=entry.id, payment=awaiting_transaction)

        awaiting_transaction.refresh_from_db()
        assert awaiting_transaction.status == TransactionStatus.AWAITING_CONFIRMATION

    def test_insufficient_amount(self, user, manager, awaiting_transaction):
        small = create_manual_entry(transaction_code='SML1234ABC', amount='100', entered_by=user)
        verify_manual_entry(entry_id=small.id, is_valid=True, verified_by=manager)

        with pytest.raises(InsufficientEntryAmountError):
            confirm_payment_with_entry(entry_id=small.id, payment=awaiting_transaction)

    def test_closed_payment_leaves_entry_usable(self, verified_entry, overdue_transaction):
        with pytest.raises(PaymentAlreadyClosedError):
            confirm_payment_with_entry(entry_id=verified_entry.id, payment=overdue_transaction)

        verified_entry.refresh_from_db()
        assert verified_entry.status == ManualEntryStatus.VERIFIED
        assert verified_entry.pending_transaction is None

    def test_intent_without_checkout_id_not_confirmed(self, verified_entry, user, cart_snapshot):
        payment = PendingTransaction.objects.create(
            amount=Decimal('500.00'),
            phone_number='254712345678',
            cart=cart_snapshot,
            status=TransactionStatus.CREATED,
            initiated_by=user,
            expires_at=timezone.now() + timedelta(minutes=3),
        )

        with pytest.raises(PaymentAlreadyClosedError):
            confirm_payment_with_entry(entry_id=verified_entry.id, payment=payment)

        payment.refresh_from_db()
        assert payment.status == TransactionStatus.CREATED
        verified_entry.refresh_from_db()
        assert verified_entry.status == ManualEntryStatus.VERIFIED
        assert Sale.objects.count() == 0

    def test_overpayment_recorded_as_change(self, user, manager, awaiting_transaction, product):
        entry = create_manual_entry(transaction_code='OVR1234PAY', amount='600', entered_by=user)
        verify_manual_entry(entry_id=entry.id, is_valid=True, verified_by=manager)

        confirm_payment_with_entry(entry_id=entry.id, payment=awaiting_transaction)

        sale = Sale.objects.get()
        assert sale.total_amount == Decimal('500.00')
        assert sale.amount_paid == Decimal('600.00')
        assert sale.change_given == Decimal('100.00')

    def test_entry_used_once(self, verified_entry, awaiting_transaction, qr_payment, product):
        confirm_payment_with_entry(entry_id=verified_entry.id, payment=awaiting_transaction)

        with pytest.raises(ManualEntryStateError):
            confirm_payment_with_entry(entry_id=verified_entry.id, payment=qr_payment)

    def test_pending_entries(self, entry, manager, user):
        other = create_manual_entry(transaction_code='BAD1234XYZ', amount='20', entered_by=user)
        verify_manual_entry(entry_id=other.id, is_valid=False, verified_by=manager)

        assert list(get_pending_manual_entries()) == [entry]


# =============================================================================
# Endpoints
# =============================================================================

@pytest.mark.django_db
class TestManualEntryAPI:

    def test_create(self, authenticated_client):
        url = reverse('payments:manual-entry-create')
        response = authenticated_client.post(url, {'message': SMS}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['transaction_code'] == 'QWE1234RTY'
        assert response.data['entered_by_email'] == 'cashier@example.com'

    def test_create_requires_message_or_fields(self, authenticated_client):
        url = reverse('payments:manual-entry-create')
        response = authenticated_client.post(url, {'transaction_code': 'QWE1234RTY'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_create_unparseable(self, authenticated_client):
        url = reverse('payments:manual-entry-create')
        response = authenticated_client.post(url, {'message': 'nothing useful'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_create_duplicate(self, authenticated_client, entry):
        url = reverse('payments:manual-entry-create')
        response = authenticated_client.post(url, {'message': SMS}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_cashier_cannot_verify(self, authenticated_client, entry):
        url = reverse('payments:manual-entry-verify', kwargs={'entry_id': entry.id})
        response = authenticated_client.post(url, {'is_valid': True}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        entry.refresh_from_db()
        assert entry.status == ManualEntryStatus.PENDING

    def test_manager_verifies(self, manager_client, entry):
        url = reverse('payments:manual-entry-verify', kwargs={'entry_id': entry.id})
        response = manager_client.post(url, {'is_valid': True, 'notes': 'On statement'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == ManualEntryStatus.VERIFIED

    def test_confirm_by_transaction_id(self, authenticated_client, verified_entry, awaiting_transaction, product):
        url = reverse('payments:manual-entry-confirm', kwargs={'entry_id': verified_entry.id})
        response = authenticated_client.post(
            url,
            {'transaction_id': str(awaiting_transaction.id)},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == ManualEntryStatus.LINKED
        assert response.data['sale'] is not None

    def test_confirm_needs_exactly_one_target(self, authenticated_client, verified_entry, awaiting_transaction, qr_payment):
        url = reverse('payments:manual-entry-confirm', kwargs={'entry_id': verified_entry.id})
        response = authenticated_client.post(url, {
            'transaction_id': str(awaiting_transaction.id),
            'qr_reference': qr_payment.qr_reference,
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_confirm_unverified_conflicts(self, authenticated_client, entry, qr_payment):
        url = reverse('payments:manual-entry-confirm', kwargs={'entry_id': entry.id})
        response = authenticated_client.post(url, {'qr_reference': qr_payment.qr_reference}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_pending_list(self, authenticated_client, entry):
        url = reverse('payments:manual-entry-pending')
        response = authenticated_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert [e['id'] for e in response.data] == [str(entry.id)]

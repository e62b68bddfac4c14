"""
Domain exceptions for payments app.

Every error raised by the payment services derives from
PaymentServiceError. The ones a cashier-facing view can surface also
derive from DRF's APIException so they render with the right status code
when they propagate out of a view.
"""
from rest_framework.exceptions import APIException


class PaymentServiceError(Exception):
    """Base exception for payment service errors."""
    pass


class InvalidCallbackError(PaymentServiceError):
    """Raised when a provider callback body cannot be understood."""
    pass


class InvalidPaymentRequestError(PaymentServiceError, APIException):
    """Amount, phone number or cart rejected."""
    status_code = 400
    default_detail = 'Invalid payment request.'
    default_code = 'invalid_payment_request'


class MpesaProviderError(PaymentServiceError, APIException):
    """The M-Pesa API could not be reached or refused the request."""
    status_code = 502
    default_detail = 'M-Pesa request failed.'
    default_code = 'mpesa_provider_error'


class PaymentNotFoundError(PaymentServiceError, APIException):
    """Payment record not found."""
    status_code = 404
    default_detail = 'Payment not found.'
    default_code = 'payment_not_found'


class PaymentNotConfirmedError(PaymentServiceError, APIException):
    """A sale was requested for a payment that is not confirmed."""
    status_code = 409
    default_detail = 'Payment has not been confirmed.'
    default_code = 'payment_not_confirmed'


class PaymentAlreadyClosedError(PaymentServiceError, APIException):
    """The payment already reached a terminal state."""
    status_code = 409
    default_detail = 'Payment is already confirmed, failed or expired.'
    default_code = 'payment_already_closed'


class UnparseableMessageError(PaymentServiceError, APIException):
    """An M-Pesa SMS is missing its transaction code or amount."""
    status_code = 400
    default_detail = 'Could not read a transaction code and amount from the message.'
    default_code = 'unparseable_message'


class DuplicateTransactionCodeError(PaymentServiceError, APIException):
    """The transaction code was already entered."""
    status_code = 409
    default_detail = 'This transaction code has already been recorded.'
    default_code = 'duplicate_transaction_code'


class ManualEntryStateError(PaymentServiceError, APIException):
    """Manual entry is not in a state that allows the operation."""
    status_code = 409
    default_detail = 'Manual entry cannot be used in its current state.'
    default_code = 'manual_entry_state'


class InsufficientEntryAmountError(PaymentServiceError, APIException):
    """Manual entry amount does not cover the payment."""
    status_code = 400
    default_detail = 'Manual entry amount is less than the payment amount.'
    default_code = 'insufficient_entry_amount'

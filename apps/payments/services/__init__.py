"""
Payments app services layer.

Status changes go through ``transitions`` so callbacks, polls, QR
matching, manual confirmation and the expiry sweep can race safely.
"""

from .exceptions import (
    PaymentServiceError,
    InvalidCallbackError,
    InvalidPaymentRequestError,
    MpesaProviderError,
    PaymentNotFoundError,
    PaymentNotConfirmedError,
    PaymentAlreadyClosedError,
    UnparseableMessageError,
    DuplicateTransactionCodeError,
    ManualEntryStateError,
    InsufficientEntryAmountError,
)

from .phone import normalize_phone_number

from .mpesa_client import (
    MpesaClient,
    get_mpesa_client,
)

from .payment_intents import (
    initiate_stk_payment,
)

from .callbacks import (
    apply_stk_callback,
    validate_c2b,
    record_c2b_confirmation,
)

from .status import (
    get_pending_transaction,
    get_payment_status,
    query_stk_status,
    expire_stale_payments,
)

from .sale_finalization import (
    finalize_sale,
)

from .qr_payments import (
    create_qr_payment,
    get_qr_payment,
    generate_qr_image_base64,
    check_qr_payment_status,
    match_qr_payments,
    get_pending_qr_payments,
)

from .manual_entries import (
    parse_mpesa_message,
    create_manual_entry,
    verify_manual_entry,
    confirm_payment_with_entry,
    get_pending_manual_entries,
)


__all__ = [
    # Exceptions
    'PaymentServiceError',
    'InvalidCallbackError',
    'InvalidPaymentRequestError',
    'MpesaProviderError',
    'PaymentNotFoundError',
    'PaymentNotConfirmedError',
    'PaymentAlreadyClosedError',
    'UnparseableMessageError',
    'DuplicateTransactionCodeError',
    'ManualEntryStateError',
    'InsufficientEntryAmountError',

    # Provider
    'normalize_phone_number',
    'MpesaClient',
    'get_mpesa_client',

    # STK push
    'initiate_stk_payment',
    'apply_stk_callback',
    'get_pending_transaction',
    'get_payment_status',
    'query_stk_status',
    'expire_stale_payments',
    'finalize_sale',

    # C2B
    'validate_c2b',
    'record_c2b_confirmation',

    # QR payments
    'create_qr_payment',
    'get_qr_payment',
    'generate_qr_image_base64',
    'check_qr_payment_status',
    'match_qr_payments',
    'get_pending_qr_payments',

    # Manual entries
    'parse_mpesa_message',
    'create_manual_entry',
    'verify_manual_entry',
    'confirm_payment_with_entry',
    'get_pending_manual_entries',
]

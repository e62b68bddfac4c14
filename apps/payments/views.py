import logging

from rest_framework import status, serializers
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.exceptions import ParseError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from apps.sales.serializers import SaleSerializer
from .permissions import IsAllowedCallbackSource, CanVerifyPayments
from .serializers import (
    STKInitiateInputSerializer,
    StatusQuerySerializer,
    QRCreateInputSerializer,
    ManualEntryInputSerializer,
    ManualEntryVerifyInputSerializer,
    ManualEntryConfirmInputSerializer,
    PendingTransactionSerializer,
    QRCodePaymentSerializer,
    ManualMpesaEntrySerializer,
    ProviderAckSerializer,
)
from .services import (
    initiate_stk_payment,
    get_pending_transaction,
    get_payment_status,
    finalize_sale,
    apply_stk_callback,
    validate_c2b,
    record_c2b_confirmation,
    create_qr_payment,
    get_qr_payment,
    check_qr_payment_status,
    get_pending_qr_payments,
    create_manual_entry,
    verify_manual_entry,
    confirm_payment_with_entry,
    get_pending_manual_entries,
)
from .services.callbacks import envelope

logger = logging.getLogger(__name__)


# Response serializers for API documentation
class FinalizeResponseSerializer(serializers.Serializer):
    transaction = PendingTransactionSerializer()
    sale = SaleSerializer(allow_null=True)


class ErrorResponseSerializer(serializers.Serializer):
    detail = serializers.CharField()


# =============================================================================
# STK push
# =============================================================================

@extend_schema(
    request=STKInitiateInputSerializer,
    responses={
        201: PendingTransactionSerializer,
        400: ErrorResponseSerializer,
        502: ErrorResponseSerializer,
    },
    description="Record a pending charge for a cart and send the STK push prompt to the payer's phone.",
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def stk_initiate(request):
    """Initiate an STK push payment."""
    input_serializer = STKInitiateInputSerializer(data=request.data)
    input_serializer.is_valid(raise_exception=True)
    data = input_serializer.validated_data

    payment = initiate_stk_payment(
        amount=data['amount'],
        phone_number=data['phone_number'],
        items=data['cart'],
        session_id=data.get('session_id', ''),
        customer_name=data.get('customer_name', ''),
        initiated_by=request.user,
    )

    return Response(PendingTransactionSerializer(payment).data, status=status.HTTP_201_CREATED)


@extend_schema(
    parameters=[
        OpenApiParameter('refresh', bool, description='Ask the provider for the outcome first'),
    ],
    responses={200: PendingTransactionSerializer, 404: ErrorResponseSerializer},
    description="Poll the status of an STK push payment.",
    tags=['payments'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stk_status(request, transaction_id):
    """Get STK payment status."""
    query = StatusQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    payment = get_payment_status(
        transaction_id=transaction_id,
        refresh=query.validated_data['refresh'],
    )
    return Response(PendingTransactionSerializer(payment).data)


@extend_schema(
    request=None,
    responses={
        200: FinalizeResponseSerializer,
        404: ErrorResponseSerializer,
        409: ErrorResponseSerializer,
    },
    description="Record the sale for a confirmed STK payment. Repeated calls return the same sale.",
    tags=['payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def stk_finalize(request, transaction_id):
    """Finalize the sale for a confirmed payment."""
    payment = get_pending_transaction(transaction_id=transaction_id)
    sale = finalize_sale(payment, cashier=request.user)

    return Response({
        'transaction': PendingTransactionSerializer(payment).data,
        'sale': SaleSerializer(sale).data if sale else None,
    })


# =============================================================================
# Provider callbacks
# =============================================================================

def _provider_endpoint(request, handler, name):
    """Run a provider callback handler, always answering with the envelope."""
    try:
        payload = request.data
    except ParseError:
        logger.warning("%s received invalid JSON", name)
        return Response(envelope(1, 'Invalid JSON format'))

    try:
        result = handler(payload)
    except Exception:
        logger.exception("%s failed", name)
        result = envelope(1, 'Error processing callback')
    return Response(result)


@extend_schema(
    request=None,
    responses={200: ProviderAckSerializer},
    description="STK push result callback from the provider.",
    tags=['provider'],
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([IsAllowedCallbackSource])
def mpesa_callback(request):
    return _provider_endpoint(request, apply_stk_callback, 'STK callback')


@extend_schema(
    request=None,
    responses={200: ProviderAckSerializer},
    description="C2B validation request from the provider. All payments are accepted.",
    tags=['provider'],
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([IsAllowedCallbackSource])
def c2b_validation(request):
    return _provider_endpoint(request, validate_c2b, 'C2B validation')


@extend_schema(
    request=None,
    responses={200: ProviderAckSerializer},
    description="C2B confirmation from the provider, stored for QR payment matching.",
    tags=['provider'],
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([IsAllowedCallbackSource])
def c2b_confirmation(request):
    return _provider_endpoint(request, record_c2b_confirmation, 'C2B confirmation')


# =============================================================================
# QR payments
# =============================================================================

@extend_schema(
    request=QRCreateInputSerializer,
    responses={201: QRCodePaymentSerializer, 400: ErrorResponseSerializer},
    description="Create a pay-to-till QR code. The response carries the PNG as base64.",
    tags=['qr-payments'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def qr_create(request):
    """Create a QR payment."""
    input_serializer = QRCreateInputSerializer(data=request.data)
    input_serializer.is_valid(raise_exception=True)
    data = input_serializer.validated_data

    payment = create_qr_payment(
        amount=data['amount'],
        items=data.get('cart'),
        phone_number=data.get('phone_number', ''),
        customer_name=data.get('customer_name', ''),
        description=data.get('description', ''),
        created_by=request.user,
    )

    serializer = QRCodePaymentSerializer(payment, context={'include_image': True})
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@extend_schema(
    responses={200: QRCodePaymentSerializer, 404: ErrorResponseSerializer},
    description="Check a QR payment, matching it against received till payments first.",
    tags=['qr-payments'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def qr_status(request, qr_reference):
    """Get QR payment status."""
    payment = check_qr_payment_status(qr_reference=qr_reference)
    return Response(QRCodePaymentSerializer(payment).data)


@extend_schema(
    responses={200: QRCodePaymentSerializer(many=True)},
    description="QR payments still waiting for the customer.",
    tags=['qr-payments'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def qr_pending(request):
    """List pending QR payments."""
    payments = get_pending_qr_payments().select_related('sale')
    return Response(QRCodePaymentSerializer(payments, many=True).data)


# =============================================================================
# Manual M-Pesa entries
# =============================================================================

@extend_schema(
    request=ManualEntryInputSerializer,
    responses={
        201: ManualMpesaEntrySerializer,
        400: ErrorResponseSerializer,
        409: ErrorResponseSerializer,
    },
    description="Record an M-Pesa confirmation SMS typed in by the cashier.",
    tags=['manual-entries'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def manual_entry_create(request):
    """Create a manual M-Pesa entry."""
    input_serializer = ManualEntryInputSerializer(data=request.data)
    input_serializer.is_valid(raise_exception=True)
    data = input_serializer.validated_data

    entry = create_manual_entry(
        message=data.get('message', ''),
        transaction_code=data.get('transaction_code') or None,
        amount=data.get('amount'),
        entered_by=request.user,
    )
    return Response(ManualMpesaEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


@extend_schema(
    responses={200: ManualMpesaEntrySerializer(many=True)},
    description="Manual entries awaiting verification or use.",
    tags=['manual-entries'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def manual_entry_pending(request):
    """List pending manual entries."""
    entries = get_pending_manual_entries()
    return Response(ManualMpesaEntrySerializer(entries, many=True).data)


@extend_schema(
    request=ManualEntryVerifyInputSerializer,
    responses={
        200: ManualMpesaEntrySerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        409: ErrorResponseSerializer,
    },
    description="Mark a manual entry as verified or invalid. Managers only.",
    tags=['manual-entries'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, CanVerifyPayments])
def manual_entry_verify(request, entry_id):
    """Verify a manual entry."""
    input_serializer = ManualEntryVerifyInputSerializer(data=request.data)
    input_serializer.is_valid(raise_exception=True)

    entry = verify_manual_entry(
        entry_id=entry_id,
        is_valid=input_serializer.validated_data['is_valid'],
        notes=input_serializer.validated_data['notes'],
        verified_by=request.user,
    )
    return Response(ManualMpesaEntrySerializer(entry).data)


@extend_schema(
    request=ManualEntryConfirmInputSerializer,
    responses={
        200: ManualMpesaEntrySerializer,
        400: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        409: ErrorResponseSerializer,
    },
    description="Settle an open STK or QR payment with a verified manual entry.",
    tags=['manual-entries'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def manual_entry_confirm(request, entry_id):
    """Confirm a payment with a manual entry."""
    input_serializer = ManualEntryConfirmInputSerializer(data=request.data)
    input_serializer.is_valid(raise_exception=True)
    data = input_serializer.validated_data

    if data.get('transaction_id'):
        payment = get_pending_transaction(transaction_id=data['transaction_id'])
    else:
        payment = get_qr_payment(qr_reference=data['qr_reference'])

    entry = confirm_payment_with_entry(
        entry_id=entry_id,
        payment=payment,
        confirmed_by=request.user,
    )
    return Response(ManualMpesaEntrySerializer(entry).data)

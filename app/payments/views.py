"""
DRF views for payments app.

This module provides API views for:
- Payment intent creation
- Push payment start, polling and timeout
- Manual payment submission
- Manual payment review queue (staff)

Related files:
    - services/: ReconciliationService, ManualPaymentQueue
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/intents/                         - Create order (+ booking)
    GET  /api/v1/payments/orders/{id}/                     - Order details
    POST /api/v1/payments/gateway/                         - Send push payment
    GET  /api/v1/payments/gateway/{correlation_id}/        - Poll push payment
    POST /api/v1/payments/orders/{id}/timeout/             - Give up waiting
    POST /api/v1/payments/manual/                          - Submit manual payment
    GET  /api/v1/payments/manual/queue/                    - Review queue (staff)
    POST /api/v1/payments/manual/{id}/review/              - Verify/reject (staff)

Errors:
    Service exceptions propagate to core.exception_handler, which renders
    them with the status code of their class.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from payments.exceptions import PaymentNotFoundError
from payments.models import Order, PaymentAttempt
from payments.serializers import (
    BeginGatewayPaymentSerializer,
    CreateIntentSerializer,
    GatewayOutcomeSerializer,
    IntentSerializer,
    ManualPaymentQueueQuerySerializer,
    ManualPaymentSerializer,
    OrderSerializer,
    PaymentAttemptSerializer,
    ReviewManualPaymentSerializer,
    SubmitManualPaymentSerializer,
)
from payments.services import (
    BookingDetails,
    ManualPaymentQueue,
    ReconciliationService,
    ReviewerCapability,
)
from payments.storage import ProofStorage

logger = logging.getLogger(__name__)


def get_payer_order(request, order_id) -> Order:
    """Order owned by the requesting user; other users' orders read as missing."""
    order = Order.objects.filter(pk=order_id, payer=request.user).first()
    if order is None:
        raise PaymentNotFoundError("Order not found", details={"order_id": str(order_id)})
    return order


class CreateIntentView(APIView):
    """
    Create a payment intent.

    POST /api/v1/payments/intents/

    Request body:
        {
            "purpose": "booking",
            "amount_cents": 400000,
            "currency": "KES",
            "booking": {
                "session_type": "recording",
                "session_date": "2026-05-01",
                "start_time": "14:00",
                "duration_hours": 2,
                "producer_id": 42
            }
        }

    Returns:
        201 with {"order": {...}, "booking": {...} | null}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment_intent",
        summary="Create payment intent",
        request=CreateIntentSerializer,
        responses={
            201: OpenApiResponse(response=IntentSerializer, description="Order created"),
            400: OpenApiResponse(description="Invalid amount, currency or booking details"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        """Create a DRAFT order and its booking."""
        serializer = CreateIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking_details = BookingDetails(**data["booking"]) if data.get("booking") else None

        intent = ReconciliationService.create_intent(
            payer=request.user,
            purpose=data["purpose"],
            amount_cents=data["amount_cents"],
            currency=data["currency"],
            booking=booking_details,
        )
        return Response(IntentSerializer(intent).data, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    """
    Get one of the current user's orders.

    GET /api/v1/payments/orders/{order_id}/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payment_order",
        summary="Get order",
        responses={200: OrderSerializer, 404: OpenApiResponse(description="Order not found")},
        tags=["Payments"],
    )
    def get(self, request, order_id):
        """Get order details."""
        return Response(OrderSerializer(get_payer_order(request, order_id)).data)


class BeginGatewayPaymentView(APIView):
    """
    Send an M-Pesa push payment for an order.

    POST /api/v1/payments/gateway/

    Request body:
        {"order_id": "<uuid>", "phone_number": "0712345678"}

    Returns:
        201 with the attempt (poll it by correlation_id)
        409 if another push is still open
        502/503 with details.fallback_recommended when the gateway refused
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="begin_gateway_payment",
        summary="Send push payment",
        request=BeginGatewayPaymentSerializer,
        responses={
            201: PaymentAttemptSerializer,
            400: OpenApiResponse(description="Invalid phone number"),
            409: OpenApiResponse(description="Push already in progress or order not payable"),
            502: OpenApiResponse(description="Gateway rejected the push; use manual payment"),
            503: OpenApiResponse(description="Gateway unavailable; retry or use manual payment"),
        },
        tags=["Payments - Gateway"],
    )
    def post(self, request):
        """Start a push payment."""
        serializer = BeginGatewayPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = get_payer_order(request, serializer.validated_data["order_id"])
        attempt = ReconciliationService.begin_gateway_payment(
            order.id,
            serializer.validated_data["phone_number"],
        )
        return Response(PaymentAttemptSerializer(attempt).data, status=status.HTTP_201_CREATED)


class GatewayOutcomeView(APIView):
    """
    Poll a push payment.

    GET /api/v1/payments/gateway/{correlation_id}/

    Clients poll every GATEWAY_POLL_INTERVAL_SECONDS until is_terminal, and
    call the timeout endpoint once GATEWAY_PAYMENT_TIMEOUT_SECONDS passed.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="poll_gateway_payment",
        summary="Poll push payment",
        responses={
            200: GatewayOutcomeSerializer,
            404: OpenApiResponse(description="Unknown correlation id"),
        },
        tags=["Payments - Gateway"],
    )
    def get(self, request, correlation_id):
        """Apply and return the push payment outcome."""
        owned = PaymentAttempt.objects.filter(
            correlation_id=correlation_id,
            order__payer=request.user,
        ).exists()
        if not owned:
            raise PaymentNotFoundError(
                "No push payment matches this correlation id",
                details={"correlation_id": correlation_id},
            )

        outcome = ReconciliationService.poll_gateway_outcome(correlation_id)
        return Response(GatewayOutcomeSerializer(outcome).data)


class GatewayTimeoutView(APIView):
    """
    Stop waiting for a push payment.

    POST /api/v1/payments/orders/{order_id}/timeout/

    Returns the order; FAILED with failure_code TIMEOUT when it was still
    awaiting payment. The client should then offer the manual path.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="timeout_gateway_payment",
        summary="Time out push payment",
        request=None,
        responses={200: OrderSerializer, 404: OpenApiResponse(description="Order not found")},
        tags=["Payments - Gateway"],
    )
    def post(self, request, order_id):
        """Time out the order's push payment."""
        order = get_payer_order(request, order_id)
        order = ReconciliationService.timeout_gateway_payment(order.id)
        return Response(OrderSerializer(order).data)


class SubmitManualPaymentView(APIView):
    """
    Submit a Paybill or bank transfer claim.

    POST /api/v1/payments/manual/

    Request:
        Content-Type: multipart/form-data (or JSON without proof)
        - order_id (optional): Order being paid
        - amount_cents (required)
        - reference_code (required): M-Pesa / bank transaction id
        - proof (optional): Screenshot or PDF, at most 5 MB
    """

    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    @extend_schema(
        operation_id="submit_manual_payment",
        summary="Submit manual payment",
        request=SubmitManualPaymentSerializer,
        responses={
            201: ManualPaymentSerializer,
            400: OpenApiResponse(description="Invalid amount, reference or proof file"),
            403: OpenApiResponse(description="Order belongs to another user"),
            409: OpenApiResponse(description="Order cannot take a manual payment"),
        },
        tags=["Payments - Manual"],
    )
    def post(self, request):
        """Record a manual payment claim."""
        serializer = SubmitManualPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        storage = ProofStorage()
        proof = None
        if data.get("proof"):
            proof = storage.store(request.user.pk, data["proof"])

        try:
            record = ReconciliationService.submit_manual_payment(
                claimant=request.user,
                amount_cents=data["amount_cents"],
                reference_code=data["reference_code"],
                order_id=data.get("order_id"),
                proof_url=proof.url if proof else None,
                proof_file_name=proof.file_name if proof else None,
                currency=data["currency"],
            )
        except BaseApplicationError:
            # No claim points at the file
            if proof is not None:
                storage.delete(proof.stored_name)
            raise
        return Response(ManualPaymentSerializer(record).data, status=status.HTTP_201_CREATED)


class ManualPaymentQueueView(APIView):
    """
    Reviewer inbox.

    GET /api/v1/payments/manual/queue/?search=MPESA&status=pending

    Returns:
        {"pending_count": 3, "results": [...]}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="list_manual_payment_queue",
        summary="List manual payments",
        parameters=[
            OpenApiParameter("search", str, description="Reference code or claimant"),
            OpenApiParameter("status", str, description="pending, verified or rejected"),
        ],
        responses={200: ManualPaymentSerializer(many=True)},
        tags=["Payments - Manual"],
    )
    def get(self, request):
        """List claims in review scope."""
        query = ManualPaymentQueueQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        records = ManualPaymentQueue.list(
            search=query.validated_data.get("search"),
            status=query.validated_data.get("status"),
        )
        return Response(
            {
                "pending_count": ManualPaymentQueue.pending_count(),
                "results": ManualPaymentSerializer(records, many=True).data,
            }
        )


class ReviewManualPaymentView(APIView):
    """
    Verify or reject a manual payment.

    POST /api/v1/payments/manual/{record_id}/review/

    Request body:
        {"decision": "reject", "notes": "amount mismatch"}

    Returns:
        200 with the reviewed record
        403 without payment review permission
        409 when someone already reviewed it
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="review_manual_payment",
        summary="Review manual payment",
        request=ReviewManualPaymentSerializer,
        responses={
            200: ManualPaymentSerializer,
            400: OpenApiResponse(description="Rejection without notes"),
            403: OpenApiResponse(description="Missing payment review permission"),
            409: OpenApiResponse(description="Already reviewed"),
        },
        tags=["Payments - Manual"],
    )
    def post(self, request, record_id):
        """Apply the reviewer's decision."""
        serializer = ReviewManualPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        record = ManualPaymentQueue.review(
            record_id,
            ReviewerCapability.for_user(request.user),
            serializer.validated_data["decision"],
            notes=serializer.validated_data["notes"],
        )
        return Response(ManualPaymentSerializer(record).data)

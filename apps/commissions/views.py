import csv

from django.db import transaction
from django.http import HttpResponse
from django.utils import timezone
from rest_framework import permissions, status, views, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authentication.permissions import HasEventToken, IsAdmin

from .exceptions import InvalidPayoutTransition, PayoutError
from .models import Attribution, PayoutRequest
from .payouts import approve_payout, reject_payout, settle_payout
from .serializers import (
    AttributionSerializer,
    OrderCompletedEventSerializer,
    OrderReversedEventSerializer,
    PayoutRejectSerializer,
    PayoutRequestSerializer,
    PayoutReviewSerializer,
)
from .services import record_attribution, reverse_attribution


CSV_COLUMNS = [
    "created_at",
    "month_key",
    "affiliate_id",
    "affiliate_code",
    "order_id",
    "order_number",
    "base_amount",
    "commission_percent",
    "commission_amount",
    "status",
]


class AdminAttributionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Attribution.objects.select_related("affiliate").all()
    serializer_class = AttributionSerializer
    permission_classes = [permissions.IsAuthenticated, IsAdmin]
    filterset_fields = ["affiliate", "month_key", "status"]
    search_fields = ["order_id", "order_number", "affiliate__code"]
    ordering_fields = ["created_at", "commission_amount", "base_amount"]

    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request, *args, **kwargs):
        qs = self.filter_queryset(self.get_queryset()).order_by("-created_at")
        response = HttpResponse(content_type="text/csv; charset=utf-8")
        filename = f"attributions_{timezone.now():%Y%m%d%H%M%S}.csv"
        response["Content-Disposition"] = f'attachment; filename="{filename}"'

        writer = csv.writer(response)
        writer.writerow(CSV_COLUMNS)
        for row in qs.iterator():
            writer.writerow(
                [
                    row.created_at.isoformat(),
                    row.month_key,
                    row.affiliate_id,
                    row.affiliate.code,
                    row.order_id,
                    row.order_number,
                    row.base_amount,
                    row.commission_percent,
                    row.commission_amount,
                    row.status,
                ]
            )
        return response


class AdminPayoutViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = PayoutRequest.objects.select_related("affiliate", "user").all()
    serializer_class = PayoutRequestSerializer
    permission_classes = [permissions.IsAuthenticated, IsAdmin]
    filterset_fields = ["status", "month_key", "affiliate"]
    search_fields = ["affiliate__code", "user__email", "utr", "payout_reference"]
    ordering_fields = ["created_at", "amount"]

    def _conflict(self, exc: PayoutError) -> Response:
        body = {"error": str(exc)}
        if isinstance(exc, InvalidPayoutTransition):
            body["status"] = exc.current
            return Response(body, status=status.HTTP_409_CONFLICT)
        return Response(body, status=status.HTTP_400_BAD_REQUEST)

    @action(detail=True, methods=["post"])
    def approve(self, request, *args, **kwargs):
        payout = self.get_object()
        serializer = PayoutReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            with transaction.atomic():
                payout = approve_payout(
                    payout,
                    reviewer=request.user,
                    payout_reference=data["payout_reference"],
                    utr=data["utr"],
                    notes=data["notes"],
                )
                if data["mark_paid"]:
                    payout = settle_payout(payout, reviewer=request.user)
        except PayoutError as exc:
            return self._conflict(exc)
        return Response(self.get_serializer(payout).data)

    @action(detail=True, methods=["post"])
    def settle(self, request, *args, **kwargs):
        payout = self.get_object()
        serializer = PayoutReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            payout = settle_payout(
                payout,
                reviewer=request.user,
                utr=data["utr"],
                payout_reference=data["payout_reference"],
            )
        except PayoutError as exc:
            return self._conflict(exc)
        return Response(self.get_serializer(payout).data)

    @action(detail=True, methods=["post"])
    def reject(self, request, *args, **kwargs):
        payout = self.get_object()
        serializer = PayoutRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payout = reject_payout(payout, reviewer=request.user, reason=serializer.validated_data["reason"])
        except PayoutError as exc:
            return self._conflict(exc)
        return Response(self.get_serializer(payout).data)


class OrderCompletedEventView(views.APIView):
    permission_classes = [HasEventToken]
    throttle_classes: list = []

    def post(self, request, *args, **kwargs):
        serializer = OrderCompletedEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        row, created = record_attribution(serializer.to_event())
        return Response(
            {
                "created": created,
                "attribution": AttributionSerializer(row).data if row else None,
            },
            status=status.HTTP_200_OK,
        )


class OrderReversedEventView(views.APIView):
    permission_classes = [HasEventToken]
    throttle_classes: list = []

    def post(self, request, *args, **kwargs):
        serializer = OrderReversedEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rows = reverse_attribution(serializer.to_event())
        return Response(
            {
                "reversed": len(rows),
                "attributions": AttributionSerializer(rows, many=True).data,
            },
            status=status.HTTP_200_OK,
        )

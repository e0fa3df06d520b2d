from django.conf import settings
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authentication.permissions import IsAdmin
from apps.commissions.calculator import month_key_for
from apps.commissions.exceptions import PayoutEligibilityError, PayoutError
from apps.commissions.models import Attribution, PayoutRequest
from apps.commissions.payouts import eligible_balance, submit_payout_request
from apps.commissions.serializers import (
    AttributionSerializer,
    CommissionAdjustmentSerializer,
    PayoutRequestFormSerializer,
    PayoutRequestSerializer,
)
from apps.commissions.services import adjust_commission, lock_matured_attributions, reconcile_affiliate

from .middleware import set_referral_cookies
from .models import Affiliate
from .serializers import (
    AffiliateActiveSerializer,
    AffiliateSerializer,
    CommissionAdjustmentInputSerializer,
    CommissionRulesUpdateSerializer,
    ReferralVisitSerializer,
)
from .services import (
    CLICK_COOKIE,
    active_affiliate_for_code,
    build_referral_link,
    enroll_affiliate,
    referral_code_from_request,
    roll_over_month,
    set_affiliate_active,
    set_commission_rules,
)


def affiliate_summary(affiliate: Affiliate) -> dict:
    lock_matured_attributions(affiliate=affiliate)
    roll_over_month(affiliate, month_key_for())
    affiliate.refresh_from_db()

    limit = getattr(settings, "AFFILIATE_RECENT_PAYOUTS", 6)
    payouts = affiliate.payout_requests.order_by("-created_at")[:limit]
    storefront = getattr(settings, "STOREFRONT_BASE_URL", "")
    return {
        "active": affiliate.is_active,
        "code": affiliate.code,
        "referral_link": build_referral_link(storefront, affiliate.code) if storefront else None,
        "month_key": affiliate.month_key,
        "month_orders": affiliate.month_orders,
        "month_sales": str(affiliate.month_sales),
        "month_commission_accrued": str(affiliate.month_commission_accrued),
        "lifetime_sales": str(affiliate.lifetime_sales),
        "lifetime_commission": str(affiliate.lifetime_commission),
        "eligible_payout": str(eligible_balance(affiliate, affiliate.month_key)),
        "rules": affiliate.rules,
        "payouts": PayoutRequestSerializer(payouts, many=True).data,
    }


class AffiliateViewSet(viewsets.GenericViewSet):
    """
    Self-service endpoints for the signed-in user's own affiliate account.
    """

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = AttributionSerializer

    def get_affiliate(self) -> Affiliate | None:
        return Affiliate.objects.filter(user=self.request.user).first()

    @action(detail=False, methods=["post"])
    def enroll(self, request: Request) -> Response:
        affiliate, created = enroll_affiliate(request.user)
        return Response(
            affiliate_summary(affiliate),
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=False, methods=["get"])
    def summary(self, request: Request) -> Response:
        affiliate = self.get_affiliate()
        if affiliate is None:
            return Response({"active": False})
        return Response(affiliate_summary(affiliate))

    @action(detail=False, methods=["get"])
    def history(self, request: Request) -> Response:
        affiliate = self.get_affiliate()
        qs = Attribution.objects.none()
        if affiliate is not None:
            qs = Attribution.objects.select_related("affiliate").filter(affiliate=affiliate)
            month = request.query_params.get("month")
            row_status = request.query_params.get("status")
            if month:
                qs = qs.filter(month_key=month)
            if row_status:
                qs = qs.filter(status=row_status)
            qs = qs.order_by("-created_at")

        page = self.paginate_queryset(qs)
        serializer = AttributionSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=False, methods=["post"])
    def payout(self, request: Request) -> Response:
        affiliate = self.get_affiliate()
        if affiliate is None:
            return Response({"error": "Affiliate not found"}, status=status.HTTP_404_NOT_FOUND)

        form = PayoutRequestFormSerializer(data=request.data)
        form.is_valid(raise_exception=True)
        data = form.validated_data

        try:
            payout, created = submit_payout_request(
                affiliate,
                request.user,
                form=data,
                amount=data.get("amount"),
                month_key=data.get("month_key"),
            )
        except PayoutEligibilityError as exc:
            return Response(
                {"error": str(exc), "meta": {"eligible": str(exc.eligible)}},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except PayoutError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_403_FORBIDDEN)

        return Response(
            {"payout": PayoutRequestSerializer(payout).data, "existing": not created},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class AdminAffiliateViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Affiliate.objects.select_related("user").all()
    serializer_class = AffiliateSerializer
    permission_classes = [permissions.IsAuthenticated, IsAdmin]
    filterset_fields = ["is_active", "month_key"]
    search_fields = ["code", "user__email", "user__full_name"]
    ordering_fields = ["month_sales", "lifetime_sales", "lifetime_commission", "created_at"]

    def retrieve(self, request: Request, *args, **kwargs) -> Response:
        affiliate = self.get_object()
        payouts = PayoutRequest.objects.filter(affiliate=affiliate).order_by("-created_at")
        return Response(
            {
                "affiliate": self.get_serializer(affiliate).data,
                "payouts": PayoutRequestSerializer(payouts, many=True).data,
            }
        )

    @action(detail=True, methods=["post"])
    def rules(self, request: Request, pk: str | None = None) -> Response:
        affiliate = self.get_object()
        serializer = CommissionRulesUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        affiliate = set_commission_rules(affiliate, serializer.validated_data["rules"])
        return Response(self.get_serializer(affiliate).data)

    @action(detail=True, methods=["post"])
    def adjust(self, request: Request, pk: str | None = None) -> Response:
        affiliate = self.get_object()
        serializer = CommissionAdjustmentInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        roll_over_month(affiliate, month_key_for())
        try:
            adjustment = adjust_commission(
                affiliate,
                amount=data["amount"],
                note=data["note"],
                created_by=request.user,
                month_key=data.get("month_key"),
            )
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(
            {
                "adjustment": CommissionAdjustmentSerializer(adjustment).data,
                "affiliate": self.get_serializer(affiliate).data,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def reconcile(self, request: Request, pk: str | None = None) -> Response:
        affiliate = self.get_object()
        apply = str(request.data.get("apply", "true")).lower() not in ("false", "0", "no")
        drift = reconcile_affiliate(affiliate, apply=apply)
        affiliate.refresh_from_db()
        return Response(
            {
                "drift": drift,
                "applied": apply and bool(drift),
                "affiliate": self.get_serializer(affiliate).data,
            }
        )

    @action(detail=True, methods=["post"], url_path="set-active")
    def set_active(self, request: Request, pk: str | None = None) -> Response:
        affiliate = self.get_object()
        serializer = AffiliateActiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        affiliate = set_affiliate_active(affiliate, serializer.validated_data["is_active"])
        return Response(self.get_serializer(affiliate).data)


class ReferralVisitView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request: Request, *args, **kwargs) -> Response:
        code = referral_code_from_request(request)
        if active_affiliate_for_code(code) is None:
            code = None
        return Response({"code": code, "click_id": request.COOKIES.get(CLICK_COOKIE) if code else None})

    def post(self, request: Request, *args, **kwargs) -> Response:
        serializer = ReferralVisitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = serializer.validated_data["code"].strip()

        if active_affiliate_for_code(code) is None:
            return Response({"success": False, "message": "invalid code"}, status=status.HTTP_404_NOT_FOUND)

        response = Response({"success": True, "message": "affiliate code recorded"})
        return set_referral_cookies(response, code)

# payment/views.py
import logging
from decimal import Decimal
from urllib.parse import urlencode

from django.conf import settings
from django.db import DatabaseError
from django.db.models import Sum
from django.http import HttpResponse, HttpResponseRedirect
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.exceptions import ValidationError
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from account.serializers import WalletSerializer
from payment.exceptions import (
    ConflictingState,
    GatewayRejected,
    GatewayUnavailable,
    IntegrityMismatch,
    PaymentConfigurationError,
    PaymentNotFound,
    PaymentServiceError,
    PaymentValidationError,
)
from payment.models import Commission, Payment, Payout, Purchase
from payment.services.payouts import PayoutEngine
from payment.services.reports import CommissionReports, PurchaseReports
from payment.services.service import PaymentService
from payment.services.wallet import WalletLedger
from .serializers import (
    CommissionSerializer,
    PaymentSerializer,
    PayoutCompleteSerializer,
    PayoutRejectSerializer,
    PayoutSerializer,
    PayoutTriggerSerializer,
    PurchaseCheckSerializer,
    PurchaseInitiateSerializer,
    PurchaseSerializer,
    SaleSerializer,
    WalletSettingsSerializer,
)

logger = logging.getLogger(__name__)

RETRY_SAFE_MESSAGE = "The payment provider is temporarily unavailable. Please try again."

ERROR_STATUSES = (
    (PaymentValidationError, status.HTTP_400_BAD_REQUEST),
    (IntegrityMismatch, status.HTTP_400_BAD_REQUEST),
    (PaymentNotFound, status.HTTP_404_NOT_FOUND),
    (ConflictingState, status.HTTP_409_CONFLICT),
    (GatewayRejected, status.HTTP_502_BAD_GATEWAY),
    (GatewayUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PaymentConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)

OUTCOME_STATUSES = {
    "PAYOUT_IN_PROGRESS": status.HTTP_409_CONFLICT,
    "GATEWAY_REJECTED": status.HTTP_502_BAD_GATEWAY,
    "GATEWAY_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    "GATEWAY_NOT_CONFIGURED": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(exc: PaymentServiceError) -> Response:
    for exc_class, http_status in ERROR_STATUSES:
        if isinstance(exc, exc_class):
            break
    else:
        http_status = status.HTTP_400_BAD_REQUEST

    if isinstance(exc, GatewayUnavailable):
        detail = RETRY_SAFE_MESSAGE
    elif isinstance(exc, PaymentConfigurationError):
        logger.error("Payment configuration error: %s", exc)
        detail = "Payments are not configured correctly"
    else:
        detail = str(exc)
    return Response({"detail": detail}, status=http_status)


def _outcome_response(outcome, success_status=status.HTTP_200_OK) -> Response:
    body = {"success": outcome.success, "message": outcome.message, "code": outcome.code}
    if outcome.payout is not None:
        body["payout"] = PayoutSerializer(outcome.payout).data
    if outcome.success:
        return Response(body, status=success_status)
    return Response(body, status=OUTCOME_STATUSES.get(outcome.code, status.HTTP_400_BAD_REQUEST))


# -----------------------------
# Purchases
# -----------------------------
class PurchaseInitiateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = PurchaseInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = PaymentService().initiate_purchase(
                user=request.user,
                item_type=data["item_type"],
                item_id=data["item_id"],
                format=data["format"],
                gateway=data["gateway"],
                return_url=data.get("return_url") or None,
            )
        except PaymentServiceError as exc:
            return _error_response(exc)

        if result.already_owned:
            return Response(
                {
                    "already_purchased": True,
                    "message": "You already own this item",
                    "purchase": PurchaseSerializer(result.purchase).data,
                },
                status=status.HTTP_200_OK,
            )

        return Response(
            {
                "already_purchased": False,
                "payment_id": str(result.payment.id),
                "transaction_ref": result.transaction_ref,
                "payment_url": result.payment_url,
                "form_fields": result.form_fields,
                "amount": str(result.payment.amount),
            },
            status=status.HTTP_201_CREATED,
        )


class PaymentReturnView(APIView):
    """Browser redirect back from the gateway. Always ends on the frontend result page."""

    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request, gateway):
        return self._handle(gateway, request.query_params.dict())

    def post(self, request, gateway):
        payload = request.query_params.dict()
        payload.update(request.POST.dict())
        return self._handle(gateway, payload)

    def _handle(self, gateway, payload):
        reference = payload.get("pp_TxnRefNo") or payload.get("tracker") or ""
        try:
            payment = PaymentService().handle_return(gateway, payload)
            result = payment.status.lower()
            reference = payment.transaction_ref
        except IntegrityMismatch:
            result = "invalid"
        except PaymentNotFound:
            result = "not_found"
        except GatewayUnavailable:
            result = "pending"
        except ConflictingState:
            result = "conflict"
        except PaymentServiceError:
            logger.exception("Payment return failed gateway=%s reference=%s", gateway, reference)
            result = "error"

        query = urlencode({"status": result, "ref": reference})
        return HttpResponseRedirect(f"{settings.FRONTEND_URL.rstrip('/')}/payment/result?{query}")


class PaymentWebhookView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request, gateway):
        raw_body = request.body
        try:
            ack = PaymentService().handle_webhook(gateway, raw_body, request.headers, request.content_type)
        except (PaymentServiceError, DatabaseError):
            logger.exception("Webhook processing failed gateway=%s", gateway)
            return Response(
                {"received": True, "accepted": False, "detail": "Processing error"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return Response(ack.as_dict(), status=ack.http_status)


class PaymentVerifyView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        payment = Payment.objects.select_related("book", "judgment").filter(pk=pk).first()
        if not payment or (payment.user_id != request.user.id and not request.user.is_staff):
            return Response({"detail": "Payment not found"}, status=status.HTTP_404_NOT_FOUND)

        if request.query_params.get("reconcile") in ("1", "true") and payment.status == Payment.Status.PENDING:
            try:
                payment = PaymentService().reconcile(payment)
            except PaymentServiceError as exc:
                return _error_response(exc)

        data = PaymentSerializer(payment).data
        purchase = Purchase.objects.filter(payment=payment).first()
        data["purchase_id"] = str(purchase.id) if purchase else None
        return Response(data)


class PurchaseListView(ListAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = PurchaseSerializer

    def get_queryset(self):
        return (
            Purchase.objects.select_related("book", "judgment")
            .filter(user=self.request.user, payment_status=Purchase.PaymentStatus.COMPLETED)
            .order_by("-created_at")
        )


class PurchaseCheckView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        serializer = PurchaseCheckSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        purchase = PurchaseReports().check(request.user, data["item_type"], data["item_id"], data.get("format"))
        return Response(
            {
                "has_purchased": purchase is not None,
                "can_download": purchase is not None,
                "purchase": PurchaseSerializer(purchase).data if purchase else None,
            }
        )


class PurchaseStatsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(PurchaseReports().buyer_stats(request.user))


# -----------------------------
# Wallet & payouts (sellers)
# -----------------------------
class WalletView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        wallet = WalletLedger.get_wallet(request.user)
        unpaid = Commission.objects.filter(
            seller=request.user,
            status=Commission.Status.PROCESSED,
            payout__isnull=True,
        ).aggregate(total=Sum("seller_amount"))["total"]
        data = WalletSerializer(wallet).data
        data["unpaid_commissions"] = str(unpaid or Decimal("0.00"))
        return Response(data)


class WalletSettingsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request):
        wallet = WalletLedger.get_wallet(request.user)
        serializer = WalletSettingsSerializer(wallet, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(WalletSerializer(wallet).data)


class PayoutRequestView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        if not request.user.is_seller:
            return Response({"detail": "Only sellers can request payouts"}, status=status.HTTP_403_FORBIDDEN)
        outcome = PayoutEngine().request_payout(request.user)
        return _outcome_response(outcome, success_status=status.HTTP_201_CREATED)


class PayoutHistoryView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        queryset = Payout.objects.filter(user=request.user).order_by("-created_at")
        wallet = WalletLedger.get_wallet(request.user)
        return Response(
            {
                "available_balance": str(wallet.available_balance),
                "total_withdrawn": str(wallet.total_withdrawn),
                "history": PayoutSerializer(queryset, many=True).data,
            }
        )


# -----------------------------
# Payout administration
# -----------------------------
class AdminPayoutListView(ListAPIView):
    permission_classes = [IsAdminUser]
    serializer_class = PayoutSerializer

    def get_queryset(self):
        queryset = Payout.objects.select_related("user").order_by("-created_at")
        payout_status = self.request.query_params.get("status")
        if payout_status:
            queryset = queryset.filter(status=payout_status.upper())
        return queryset


class AdminPayoutStatsView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response(PayoutEngine.stats())


class AdminPayoutTriggerView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request):
        serializer = PayoutTriggerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        schedule = serializer.validated_data.get("schedule")
        results = PayoutEngine().process_all_auto_payouts(schedule=schedule)
        return Response(
            {
                "processed": len(results),
                "succeeded": sum(1 for r in results if r["success"]),
                "results": results,
            }
        )


class AdminPayoutApproveView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        try:
            outcome = PayoutEngine().approve(pk, admin=request.user)
        except PaymentServiceError as exc:
            return _error_response(exc)
        return _outcome_response(outcome)


class AdminPayoutRejectView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        serializer = PayoutRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            payout = PayoutEngine().reject(pk, serializer.validated_data["reason"], admin=request.user)
        except PaymentServiceError as exc:
            return _error_response(exc)
        return Response(PayoutSerializer(payout).data)


class AdminPayoutCompleteView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        serializer = PayoutCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            outcome = PayoutEngine().complete(pk, serializer.validated_data, admin=request.user)
        except PaymentServiceError as exc:
            return _error_response(exc)
        return _outcome_response(outcome)


class AdminPayoutRetryView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        try:
            outcome = PayoutEngine().retry(pk, admin=request.user)
        except PaymentServiceError as exc:
            return _error_response(exc)
        return _outcome_response(outcome)


# -----------------------------
# Commission & sales reports
# -----------------------------
class ReportPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


class CommissionListView(ListAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = CommissionSerializer
    pagination_class = ReportPagination

    def base_queryset(self):
        return CommissionReports.base_queryset().filter(seller=self.request.user)

    def get_queryset(self):
        try:
            queryset = CommissionReports.apply_filters(self.base_queryset(), self.request.query_params)
        except PaymentValidationError as exc:
            raise ValidationError({"detail": str(exc)})
        return queryset.order_by("-created_at")

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data["summary"] = CommissionReports.totals(self.get_queryset())
        return response


class AdminCommissionListView(CommissionListView):
    permission_classes = [IsAdminUser]

    def base_queryset(self):
        return CommissionReports.base_queryset()


class CommissionSummaryView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        period = request.query_params.get("period", "month")
        return Response(CommissionReports().summary(request.user, period=period))


class CommissionItemView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, item_type, item_id):
        reports = CommissionReports()
        try:
            data = reports.item_report(request.user, item_type, item_id)
            commissions = reports.item_commissions(request.user, item_type, item_id)
        except PaymentServiceError as exc:
            return _error_response(exc)
        data["commissions"] = CommissionSerializer(commissions, many=True).data
        return Response(data)


class AdminCommissionStatsView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        try:
            return Response(CommissionReports().stats(request.query_params))
        except PaymentServiceError as exc:
            return _error_response(exc)


class AdminCommissionDailyReportView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        reports = CommissionReports()
        day = request.query_params.get("date")
        try:
            data = reports.daily_report(day)
            commissions = reports.daily_commissions(data["date"])
        except PaymentServiceError as exc:
            return _error_response(exc)
        data["commissions"] = CommissionSerializer(commissions, many=True).data
        return Response(data)


class AdminCommissionExportView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        try:
            content = CommissionReports().export_csv(request.query_params)
        except PaymentServiceError as exc:
            return _error_response(exc)
        response = HttpResponse(content, content_type="text/csv")
        filename = f"commissions_{timezone.localdate().isoformat()}.csv"
        response["Content-Disposition"] = f'attachment; filename="{filename}"'
        return response


class SellerSalesView(ListAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = SaleSerializer
    pagination_class = ReportPagination

    def get_queryset(self):
        return PurchaseReports().sales(self.request.user)

    def list(self, request, *args, **kwargs):
        if not request.user.is_seller:
            return Response({"detail": "Only sellers have sales"}, status=status.HTTP_403_FORBIDDEN)
        response = super().list(request, *args, **kwargs)
        response.data.update(PurchaseReports().seller_totals(request.user))
        return response


class AdminPurchaseStatsView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response(PurchaseReports().platform_stats())

# payment/urls.py
from django.urls import path

from .views import (
    AdminCommissionDailyReportView,
    AdminCommissionExportView,
    AdminCommissionListView,
    AdminCommissionStatsView,
    AdminPayoutApproveView,
    AdminPayoutCompleteView,
    AdminPayoutListView,
    AdminPayoutRejectView,
    AdminPayoutRetryView,
    AdminPayoutStatsView,
    AdminPayoutTriggerView,
    AdminPurchaseStatsView,
    CommissionItemView,
    CommissionListView,
    CommissionSummaryView,
    PaymentReturnView,
    PaymentVerifyView,
    PaymentWebhookView,
    PayoutHistoryView,
    PayoutRequestView,
    PurchaseCheckView,
    PurchaseInitiateView,
    PurchaseListView,
    PurchaseStatsView,
    SellerSalesView,
    WalletSettingsView,
    WalletView,
)

urlpatterns = [
    path("purchase/", PurchaseInitiateView.as_view(), name="purchase-initiate"),
    path("purchases/", PurchaseListView.as_view(), name="purchase-list"),
    path("purchases/check/", PurchaseCheckView.as_view(), name="purchase-check"),
    path("purchases/stats/", PurchaseStatsView.as_view(), name="purchase-stats"),
    path("purchases/platform-stats/", AdminPurchaseStatsView.as_view(), name="admin-purchase-stats"),
    path("sales/", SellerSalesView.as_view(), name="seller-sales"),
    path("verify/<uuid:pk>/", PaymentVerifyView.as_view(), name="payment-verify"),
    path("<str:gateway>/return/", PaymentReturnView.as_view(), name="payment-return"),
    path("<str:gateway>/webhook/", PaymentWebhookView.as_view(), name="payment-webhook"),
    # Wallet
    path("wallet/", WalletView.as_view(), name="wallet"),
    path("wallet/settings/", WalletSettingsView.as_view(), name="wallet-settings"),
    # Payouts
    path("payouts/request/", PayoutRequestView.as_view(), name="payout-request"),
    path("payouts/history/", PayoutHistoryView.as_view(), name="payout-history"),
    path("payouts/", AdminPayoutListView.as_view(), name="admin-payout-list"),
    path("payouts/stats/", AdminPayoutStatsView.as_view(), name="admin-payout-stats"),
    path("payouts/trigger/", AdminPayoutTriggerView.as_view(), name="admin-payout-trigger"),
    path("payouts/<uuid:pk>/approve/", AdminPayoutApproveView.as_view(), name="admin-payout-approve"),
    path("payouts/<uuid:pk>/reject/", AdminPayoutRejectView.as_view(), name="admin-payout-reject"),
    path("payouts/<uuid:pk>/complete/", AdminPayoutCompleteView.as_view(), name="admin-payout-complete"),
    path("payouts/<uuid:pk>/retry/", AdminPayoutRetryView.as_view(), name="admin-payout-retry"),
    # Commissions
    path("commissions/", CommissionListView.as_view(), name="commission-list"),
    path("commissions/summary/", CommissionSummaryView.as_view(), name="commission-summary"),
    path("commissions/<str:item_type>/<uuid:item_id>/", CommissionItemView.as_view(), name="commission-item"),
    path("commissions/all/", AdminCommissionListView.as_view(), name="admin-commission-list"),
    path("commissions/stats/", AdminCommissionStatsView.as_view(), name="admin-commission-stats"),
    path("commissions/daily-report/", AdminCommissionDailyReportView.as_view(), name="admin-commission-daily-report"),
    path("commissions/export/", AdminCommissionExportView.as_view(), name="admin-commission-export"),
]

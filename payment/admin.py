from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from .exceptions import PaymentServiceError
from .models import Commission, Payment, Payout, Purchase, WebhookLog
from .services.payouts import PayoutEngine
from .services.service import PaymentService


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
	list_display = ("id", "transaction_ref", "user", "item_type", "amount", "status", "earnings_status", "gateway", "created_at")
	list_filter = ("status", "earnings_status", "gateway", "item_type")
	search_fields = ("transaction_ref", "session_token", "user__email", "seller__email")
	readonly_fields = ("seller_amount", "platform_amount", "commission_percentage", "gateway_response")
	actions = ("reconcile_payments",)

	def reconcile_payments(self, request, queryset):
		"""Ask the gateway for the result of PENDING payments."""
		service = PaymentService()
		settled = 0
		failed = 0
		for payment in queryset.filter(status=Payment.Status.PENDING):
			try:
				if service.reconcile(payment).status != Payment.Status.PENDING:
					settled += 1
			except PaymentServiceError as exc:
				failed += 1
				self.message_user(request, _("Failed to reconcile %(ref)s: %(err)s") % {"ref": payment.transaction_ref, "err": str(exc)}, messages.ERROR)

		self.message_user(request, _("Payments settled: %(ok)d, failed: %(bad)d") % {"ok": settled, "bad": failed}, messages.INFO)

	reconcile_payments.short_description = "Reconcile selected pending payments"


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
	list_display = ("id", "user", "item_type", "format", "amount", "payment_status", "earnings_status", "created_at")
	list_filter = ("payment_status", "earnings_status", "item_type", "format")
	search_fields = ("transaction_id", "user__email")


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
	list_display = ("id", "seller", "payment", "seller_amount", "platform_amount", "status", "payout", "processed_at")
	list_filter = ("status", "seller_type")
	search_fields = ("seller__email", "payment__transaction_ref")


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
	list_display = ("id", "internal_ref", "user", "amount", "payment_method", "status", "is_automatic", "retry_count", "created_at")
	list_filter = ("status", "payment_method", "is_automatic")
	search_fields = ("internal_ref", "external_ref", "user__email")
	readonly_fields = ("amount", "internal_ref", "external_ref", "recipient_details", "retry_count", "metadata")
	actions = ("approve_payouts", "reject_payouts", "retry_payouts")

	def approve_payouts(self, request, queryset):
		engine = PayoutEngine()
		succeeded = 0
		failed = 0
		for payout in queryset.filter(status=Payout.Status.PENDING):
			try:
				outcome = engine.approve(payout.pk, admin=request.user)
			except PaymentServiceError as exc:
				failed += 1
				self.message_user(request, _("Failed to approve payout %(ref)s: %(err)s") % {"ref": payout.internal_ref, "err": str(exc)}, messages.ERROR)
				continue
			if outcome.success:
				succeeded += 1
			else:
				failed += 1
				self.message_user(request, _("Payout %(ref)s: %(msg)s") % {"ref": payout.internal_ref, "msg": outcome.message}, messages.WARNING)

		self.message_user(request, _("Payouts approved: %(ok)d, failed: %(bad)d") % {"ok": succeeded, "bad": failed}, messages.INFO)

	approve_payouts.short_description = "Approve selected pending payouts"

	def reject_payouts(self, request, queryset):
		engine = PayoutEngine()
		rejected = 0
		for payout in queryset.filter(status=Payout.Status.PENDING):
			try:
				engine.reject(payout.pk, "Rejected from admin", admin=request.user)
				rejected += 1
			except PaymentServiceError as exc:
				self.message_user(request, _("Failed to reject payout %(ref)s: %(err)s") % {"ref": payout.internal_ref, "err": str(exc)}, messages.ERROR)

		self.message_user(request, _("%d payouts rejected.") % rejected, messages.SUCCESS)

	reject_payouts.short_description = "Reject selected pending payouts"

	def retry_payouts(self, request, queryset):
		engine = PayoutEngine()
		for payout in queryset.filter(status=Payout.Status.PROCESSING).exclude(payment_method=Payout.Method.MANUAL):
			try:
				outcome = engine.retry(payout.pk, admin=request.user)
			except PaymentServiceError as exc:
				self.message_user(request, _("Failed to retry payout %(ref)s: %(err)s") % {"ref": payout.internal_ref, "err": str(exc)}, messages.ERROR)
				continue
			level = messages.SUCCESS if outcome.success else messages.WARNING
			self.message_user(request, _("Payout %(ref)s: %(msg)s") % {"ref": payout.internal_ref, "msg": outcome.message}, level)

	retry_payouts.short_description = "Retry selected processing payouts"


@admin.register(WebhookLog)
class WebhookLogAdmin(admin.ModelAdmin):
	list_display = ("id", "provider", "event_type", "reference", "processed", "created_at")
	list_filter = ("provider", "event_type", "processed")
	search_fields = ("reference",)

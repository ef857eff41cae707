from django.contrib import admin, messages
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .models import PaymentMethod, User, Wallet


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("email", "first_name", "last_name", "role", "is_active", "is_staff", "created_at")
    list_filter = ("role", "is_active", "is_staff")
    search_fields = ("email", "first_name", "last_name", "phone_number")


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("user", "available_balance", "total_earnings", "total_withdrawn", "payout_method", "auto_payout", "payout_schedule")
    list_filter = ("payout_method", "auto_payout", "payout_schedule")
    search_fields = ("user__email",)
    readonly_fields = ("available_balance", "total_earnings", "total_withdrawn", "last_payout_date")


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ("user", "payment_type", "phone_number", "account_number", "is_verified", "verified_at")
    list_filter = ("payment_type", "is_verified")
    search_fields = ("user__email", "phone_number", "account_number", "iban")
    actions = ("verify_methods",)

    def verify_methods(self, request, queryset):
        updated = queryset.filter(is_verified=False).update(
            is_verified=True,
            verified_by=request.user,
            verified_at=timezone.now(),
        )
        self.message_user(request, _("%d payout methods marked as verified.") % updated, messages.SUCCESS)

    verify_methods.short_description = "Verify selected payout methods"

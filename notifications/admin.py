from django.contrib import admin

from .models import Notification
from .services import NotificationService


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "type", "entity_type", "is_read", "email_status", "created_at")
    search_fields = ("user__email", "title", "entity_id")
    list_filter = ("type", "entity_type", "is_read", "email_status")
    readonly_fields = ("entity_type", "entity_id", "data", "emailed_at", "read_at", "created_at")
    actions = ["resend_email"]

    @admin.action(description="Resend email for selected notifications")
    def resend_email(self, request, queryset):
        sent = sum(
            1
            for notification in queryset.select_related("user")
            if NotificationService.send_email(notification) == Notification.EmailStatus.SENT
        )
        self.message_user(request, f"{sent} notification email(s) sent.")

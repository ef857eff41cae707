import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from .models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    type: str
    entity_type: str
    entity_id: Any
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationService:
    @classmethod
    def notify(cls, *, user, message: NotificationMessage) -> Notification:
        notification = Notification.objects.create(
            user=user,
            type=message.type,
            entity_type=message.entity_type,
            entity_id=message.entity_id,
            title=message.title,
            message=message.body,
            data=message.data,
        )
        cls.send_email(notification)
        return notification

    @staticmethod
    def send_email(notification: Notification) -> str:
        """Mail the notification; a mail failure never propagates to the caller."""
        recipient = notification.user.email
        if not getattr(settings, "NOTIFICATION_EMAILS_ENABLED", True) or not recipient:
            return notification.email_status

        try:
            send_mail(
                subject=notification.title,
                message=notification.message,
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[recipient],
            )
        except Exception:
            logger.exception("Notification email failed notification=%s type=%s", notification.pk, notification.type)
            notification.email_status = Notification.EmailStatus.FAILED
            notification.save(update_fields=["email_status"])
            return notification.email_status

        notification.email_status = Notification.EmailStatus.SENT
        notification.emailed_at = timezone.now()
        notification.save(update_fields=["email_status", "emailed_at"])
        return notification.email_status


class NotificationTemplates:
    @staticmethod
    def payment_success(payment) -> NotificationMessage:
        return NotificationMessage(
            type=Notification.Type.PAYMENT_SUCCESS,
            entity_type=Notification.EntityType.PAYMENT,
            entity_id=payment.pk,
            title="Payment Successful",
            body=f"Your payment of PKR {payment.amount} for \"{payment.item.title}\" was successful.",
            data={"transaction_ref": payment.transaction_ref, "item_type": payment.item_type},
        )

    @staticmethod
    def payment_failed(payment) -> NotificationMessage:
        return NotificationMessage(
            type=Notification.Type.PAYMENT_FAILED,
            entity_type=Notification.EntityType.PAYMENT,
            entity_id=payment.pk,
            title="Payment Failed",
            body=f"Your payment for \"{payment.item.title}\" could not be completed.",
            data={"transaction_ref": payment.transaction_ref},
        )

    @staticmethod
    def item_sold(payment) -> NotificationMessage:
        return NotificationMessage(
            type=Notification.Type.ITEM_SOLD,
            entity_type=Notification.EntityType.PAYMENT,
            entity_id=payment.pk,
            title="Item Sold",
            body=f"\"{payment.item.title}\" was purchased. PKR {payment.seller_amount} was added to your wallet.",
            data={"seller_amount": str(payment.seller_amount)},
        )

    @staticmethod
    def payout_completed(payout) -> NotificationMessage:
        return NotificationMessage(
            type=Notification.Type.PAYOUT_COMPLETED,
            entity_type=Notification.EntityType.PAYOUT,
            entity_id=payout.pk,
            title="Payout Processed Successfully",
            body=f"PKR {payout.amount} was sent to your {payout.get_payment_method_display()} account.",
            data={"amount": str(payout.amount), "reference": payout.external_ref or payout.internal_ref},
        )

    @staticmethod
    def payout_failed(payout) -> NotificationMessage:
        return NotificationMessage(
            type=Notification.Type.PAYOUT_FAILED,
            entity_type=Notification.EntityType.PAYOUT,
            entity_id=payout.pk,
            title="Payout Failed",
            body=f"Your payout of PKR {payout.amount} failed: {payout.failure_reason or 'unknown error'}.",
            data={"amount": str(payout.amount)},
        )

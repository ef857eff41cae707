import logging
from typing import Optional

from django.db import IntegrityError, transaction

from payment.exceptions import ConflictingState
from payment.models import ItemType, Payment, Purchase, WebhookLog

logger = logging.getLogger(__name__)


class PurchaseRecorder:
    """Turns a successful payment into an access grant."""

    PAYMENT_STATUS_MAP = {
        Payment.Status.PENDING: Purchase.PaymentStatus.PENDING,
        Payment.Status.SUCCESS: Purchase.PaymentStatus.COMPLETED,
        Payment.Status.FAILED: Purchase.PaymentStatus.FAILED,
        Payment.Status.REFUNDED: Purchase.PaymentStatus.REFUNDED,
    }

    EARNINGS_STATUS_MAP = {
        Payment.EarningsStatus.PENDING: Purchase.EarningsStatus.PENDING,
        Payment.EarningsStatus.PROCESSED: Purchase.EarningsStatus.PROCESSED,
        Payment.EarningsStatus.PAID_OUT: Purchase.EarningsStatus.PAID_OUT,
    }

    @staticmethod
    def find_completed(user, item_type: str, item, format: str) -> Optional[Purchase]:
        item_filter = {"book": item} if item_type == ItemType.BOOK else {"judgment": item}
        return Purchase.objects.filter(
            user=user,
            item_type=item_type,
            format=format,
            payment_status=Purchase.PaymentStatus.COMPLETED,
            **item_filter,
        ).first()

    def record_on_success(self, payment: Payment) -> Purchase:
        if payment.status != Payment.Status.SUCCESS:
            raise ConflictingState(f"Payment {payment.transaction_ref} is {payment.status}, not SUCCESS")

        existing = self.find_completed(payment.user, payment.item_type, payment.item, payment.format)
        if existing:
            if existing.payment_id != payment.pk:
                self._record_duplicate(payment, existing)
            return existing

        try:
            with transaction.atomic():
                purchase, created = Purchase.objects.get_or_create(
                    payment=payment,
                    defaults={
                        "user": payment.user,
                        "item_type": payment.item_type,
                        "book": payment.book,
                        "judgment": payment.judgment,
                        "format": payment.format,
                        "amount": payment.amount,
                        "payment_method": payment.gateway,
                        "payment_status": Purchase.PaymentStatus.COMPLETED,
                        "transaction_id": payment.transaction_ref,
                        "seller": payment.seller,
                        "seller_type": payment.seller_type,
                        "seller_amount": payment.seller_amount,
                        "platform_amount": payment.platform_amount,
                        "commission_percentage": payment.commission_percentage,
                        "earnings_status": self.EARNINGS_STATUS_MAP[payment.earnings_status],
                    },
                )
        except IntegrityError:
            # Another request granted the same item first.
            existing = self.find_completed(payment.user, payment.item_type, payment.item, payment.format)
            if existing is None:
                raise
            self._record_duplicate(payment, existing)
            return existing

        if created:
            logger.info("Purchase %s recorded for payment %s", purchase.pk, payment.transaction_ref)
        return purchase

    def sync_payment_status(self, payment: Payment) -> int:
        return Purchase.objects.filter(payment=payment).update(
            payment_status=self.PAYMENT_STATUS_MAP[payment.status],
            earnings_status=self.EARNINGS_STATUS_MAP[payment.earnings_status],
        )

    @staticmethod
    def _record_duplicate(payment: Payment, existing: Purchase) -> None:
        logger.warning(
            "Payment %s succeeded for an item already owned through purchase %s",
            payment.transaction_ref,
            existing.pk,
        )
        WebhookLog.objects.create(
            provider=payment.gateway,
            event_type="DUPLICATE_PURCHASE",
            reference=payment.transaction_ref,
            payload={"existing_purchase_id": str(existing.pk), "payment_id": str(payment.pk)},
            processed=False,
            processing_attempts=1,
        )

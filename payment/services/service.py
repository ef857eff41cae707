# payment/services/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from catalog.models import Book, CatalogItem, Judgment
from payment.exceptions import (
    ConflictingState,
    GatewayRejected,
    GatewayUnavailable,
    IntegrityMismatch,
    PaymentNotFound,
    PaymentValidationError,
)
from payment.models import ContentFormat, ItemType, Payment, Purchase, SellerType, WebhookLog
from .gateways import PENDING, BaseGatewayAdapter, get_gateway
from .ledger import PaymentLedger
from .purchases import PurchaseRecorder
from .webhooks import WebhookVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseInitResult:
    payment: Optional[Payment]
    purchase: Optional[Purchase] = None
    payment_url: str = ""
    transaction_ref: str = ""
    form_fields: Dict[str, str] = field(default_factory=dict)
    already_owned: bool = False


@dataclass(frozen=True)
class WebhookAck:
    """What the webhook endpoint answers. ``http_status`` is 200 even when ``accepted`` is False."""

    http_status: int
    accepted: bool
    detail: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {"received": True, "accepted": self.accepted, "detail": self.detail}


class PaymentService:
    """High-level purchase operations on top of the gateway adapters and the ledger."""

    ITEM_MODELS = {
        ItemType.BOOK: Book,
        ItemType.JUDGMENT: Judgment,
    }

    def __init__(
        self,
        gateways: Optional[Dict[str, BaseGatewayAdapter]] = None,
        ledger: Optional[PaymentLedger] = None,
        recorder: Optional[PurchaseRecorder] = None,
    ) -> None:
        self._gateways = {name.lower(): adapter for name, adapter in (gateways or {}).items()}
        self.ledger = ledger or PaymentLedger()
        self.recorder = recorder or PurchaseRecorder()

    def get_gateway(self, name: str) -> BaseGatewayAdapter:
        key = (name or "").lower()
        if key not in self._gateways:
            self._gateways[key] = get_gateway(key)
        return self._gateways[key]

    # -----------------------------
    # Purchase
    # -----------------------------
    def initiate_purchase(
        self,
        user,
        item_type: str,
        item_id,
        format: str = ContentFormat.PDF,
        gateway: str = "jazzcash",
        return_url: Optional[str] = None,
    ) -> PurchaseInitResult:
        """
        Start paying for one item in one format.

        An item the buyer already owns returns the existing purchase and
        touches neither the gateway nor the ledger.
        """
        if item_type not in ItemType.values:
            raise PaymentValidationError(f"Unsupported item type: {item_type}")
        if format not in ContentFormat.values:
            raise PaymentValidationError(f"Unsupported format: {format}")

        item = self.ITEM_MODELS[item_type].objects.select_related("uploaded_by").filter(pk=item_id).first()
        if not item:
            raise PaymentNotFound(f"{item_type.title()} not found")
        if not item.is_purchasable:
            raise PaymentValidationError(f"{item_type.title()} is not available for purchase")

        existing = self.recorder.find_completed(user, item_type, item, format)
        if existing:
            logger.info("User %s already owns %s %s (%s)", user.pk, item_type, item.pk, format)
            return PurchaseInitResult(payment=existing.payment, purchase=existing, already_owned=True)

        adapter = self.get_gateway(gateway)
        seller = item.uploaded_by
        seller_type = self._seller_type(item, seller)
        amount = item.sale_price

        session = adapter.create_session(
            amount,
            buyer_id=user.pk,
            item_id=item.pk,
            seller_id=seller.pk,
            return_url=return_url,
            metadata={"description": f"{item_type.title()} - {item.title}"[:100]},
        )
        payment = self.ledger.create_pending(
            buyer=user,
            item=item,
            item_type=item_type,
            seller=seller,
            seller_type=seller_type,
            amount=amount,
            gateway=adapter.name,
            transaction_ref=session.transaction_ref,
            format=format,
            session_token=session.session_token,
            metadata={"item_title": item.title, "payment_url": session.payment_url},
        )
        return PurchaseInitResult(
            payment=payment,
            payment_url=session.payment_url,
            transaction_ref=session.transaction_ref,
            form_fields=session.form_fields,
        )

    def settle(self, transaction_ref: str, gateway_status: str, gateway_response: Optional[Dict[str, Any]] = None) -> Payment:
        """
        Apply a verified gateway result.

        mark_result runs on its own so a rejected conflicting result keeps its
        anomaly log; earnings and the access grant commit together. Calling
        this again with the same result repairs a half-finished settlement
        and otherwise changes nothing.
        """
        previous_status = (
            Payment.objects.filter(transaction_ref=transaction_ref).values_list("status", flat=True).first()
        )
        payment = self.ledger.mark_result(transaction_ref, gateway_status, gateway_response)

        distributed = False
        if payment.status == Payment.Status.SUCCESS:
            with transaction.atomic():
                distributed = self.ledger.distribute_earnings(payment)
                payment.refresh_from_db()
                self.recorder.record_on_success(payment)
        elif payment.status in (Payment.Status.FAILED, Payment.Status.REFUNDED):
            self.recorder.sync_payment_status(payment)

        if distributed:
            self._notify_success(payment)
        elif payment.status == Payment.Status.FAILED and previous_status != Payment.Status.FAILED:
            self._notify_failure(payment)
        return payment

    # -----------------------------
    # Gateway callbacks
    # -----------------------------
    def handle_return(self, gateway_name: str, payload: Mapping[str, Any]) -> Payment:
        adapter = self.get_gateway(gateway_name)
        payload = dict(payload or {})
        if not adapter.verify_callback(payload):
            reference = str(payload.get("pp_TxnRefNo") or payload.get("tracker") or "")[:150]
            logger.warning("Security event: %s return failed verification reference=%s", adapter.name, reference or "-")
            WebhookLog.objects.create(
                provider=adapter.name,
                event_type="RETURN_SIGNATURE_INVALID",
                reference=reference,
                payload=payload,
                processed=False,
                processing_attempts=1,
            )
            raise IntegrityMismatch("Payment return could not be verified")

        reference, status = adapter.callback_result(payload)
        payment = self.find_payment(reference)
        if status is None:
            status = adapter.inquire(payment.session_token or payment.transaction_ref).status
        if status == PENDING:
            logger.info("Payment %s still pending after return", payment.transaction_ref)
            return payment
        return self.settle(payment.transaction_ref, status, payload)

    def handle_webhook(self, gateway_name: str, raw_body: bytes, headers: Mapping[str, str], content_type: str = "") -> WebhookAck:
        try:
            adapter = self.get_gateway(gateway_name)
        except PaymentValidationError as exc:
            return WebhookAck(http_status=404, accepted=False, detail=str(exc))

        verdict = WebhookVerifier(adapter).verify(raw_body, headers, content_type)
        if not verdict.accepted:
            return WebhookAck(http_status=200, accepted=False, detail=verdict.reason)

        event = verdict.event
        log = WebhookLog.objects.create(
            provider=adapter.name,
            event_type=str(event.raw.get("event") or f"payment.{event.status}"),
            reference=event.tracker[:150],
            payload=event.raw,
            processed=False,
            processing_attempts=1,
        )

        payment = self.find_payment(event.tracker, required=False)
        if not payment:
            logger.warning("%s webhook for unknown reference %s", adapter.name, event.tracker)
            return WebhookAck(http_status=200, accepted=False, detail="Unknown transaction")

        if event.amount is not None and event.amount != payment.amount:
            logger.warning(
                "%s webhook amount %s does not match payment %s amount %s",
                adapter.name,
                event.amount,
                payment.transaction_ref,
                payment.amount,
            )
            WebhookLog.objects.filter(pk=log.pk).update(event_type="AMOUNT_MISMATCH")
            return WebhookAck(http_status=200, accepted=False, detail="Amount mismatch")

        if event.payment_status == PENDING:
            WebhookLog.objects.filter(pk=log.pk).update(processed=True)
            return WebhookAck(http_status=200, accepted=True, detail="Payment pending")

        try:
            self.settle(payment.transaction_ref, event.payment_status, event.raw)
        except ConflictingState as exc:
            return WebhookAck(http_status=200, accepted=False, detail=str(exc))

        WebhookLog.objects.filter(pk=log.pk).update(processed=True)
        return WebhookAck(http_status=200, accepted=True, detail="Processed")

    # -----------------------------
    # Reconciliation
    # -----------------------------
    def reconcile(self, payment: Payment) -> Payment:
        """Ask the gateway about a payment that never heard back."""
        if payment.status != Payment.Status.PENDING:
            return payment
        adapter = self.get_gateway(payment.gateway)
        result = adapter.inquire(payment.session_token or payment.transaction_ref)
        if result.status == PENDING:
            return payment
        logger.info("Reconciled payment %s as %s", payment.transaction_ref, result.status)
        return self.settle(payment.transaction_ref, result.status, result.raw)

    def reconcile_pending(self, older_than: timedelta = timedelta(minutes=15), limit: int = 100) -> Dict[str, int]:
        cutoff = timezone.now() - older_than
        payments = Payment.objects.filter(status=Payment.Status.PENDING, created_at__lte=cutoff).order_by("created_at")[:limit]

        summary = {"checked": 0, "settled": 0, "pending": 0, "errors": 0}
        for payment in payments:
            summary["checked"] += 1
            try:
                result = self.reconcile(payment)
            except (GatewayUnavailable, GatewayRejected, ConflictingState) as exc:
                logger.warning("Reconciliation failed for %s: %s", payment.transaction_ref, exc)
                summary["errors"] += 1
                continue
            if result.status == Payment.Status.PENDING:
                summary["pending"] += 1
            else:
                summary["settled"] += 1
        logger.info("Reconciliation run %s", summary)
        return summary

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def find_payment(reference: str, required: bool = True) -> Optional[Payment]:
        payment = None
        if reference:
            payment = Payment.objects.filter(Q(transaction_ref=reference) | Q(session_token=reference)).first()
        if not payment and required:
            raise PaymentNotFound(f"No payment found for transaction {reference}")
        return payment

    @staticmethod
    def _seller_type(item: CatalogItem, seller) -> str:
        if item.uploader_type == CatalogItem.UploaderType.SUPERADMIN or seller.is_platform_admin:
            return SellerType.SUPERADMIN
        return SellerType.ADMIN

    @staticmethod
    def _notify_success(payment: Payment) -> None:
        from notifications.services import NotificationService, NotificationTemplates

        try:
            NotificationService.notify(user=payment.user, message=NotificationTemplates.payment_success(payment))
            if payment.seller_amount > 0:
                NotificationService.notify(user=payment.seller, message=NotificationTemplates.item_sold(payment))
        except Exception:
            logger.exception("Payment notification failed payment=%s", payment.pk)

    @staticmethod
    def _notify_failure(payment: Payment) -> None:
        from notifications.services import NotificationService, NotificationTemplates

        try:
            NotificationService.notify(user=payment.user, message=NotificationTemplates.payment_failed(payment))
        except Exception:
            logger.exception("Payment notification failed payment=%s", payment.pk)

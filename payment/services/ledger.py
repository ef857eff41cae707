from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from payment.exceptions import (
    ConflictingState,
    PaymentConfigurationError,
    PaymentNotFound,
    PaymentValidationError,
)
from payment.models import Commission, ContentFormat, ItemType, Payment, WebhookLog
from .commission import CommissionCalculator
from .wallet import WalletLedger

logger = logging.getLogger(__name__)
User = get_user_model()


class PaymentLedger:
    """Payment lifecycle and the one-time distribution of its earnings."""

    STATUS_ALIASES = {
        "SUCCESS": Payment.Status.SUCCESS,
        "COMPLETED": Payment.Status.SUCCESS,
        "PAID": Payment.Status.SUCCESS,
        "FAILED": Payment.Status.FAILED,
        "FAILURE": Payment.Status.FAILED,
        "CANCELLED": Payment.Status.FAILED,
        "REFUNDED": Payment.Status.REFUNDED,
    }

    EARNINGS_FLOW = [
        Payment.EarningsStatus.PENDING,
        Payment.EarningsStatus.PROCESSED,
        Payment.EarningsStatus.PAID_OUT,
    ]

    def __init__(self, calculator: Optional[CommissionCalculator] = None) -> None:
        self.calculator = calculator or CommissionCalculator()

    # -----------------------------
    # Payment lifecycle
    # -----------------------------
    @transaction.atomic
    def create_pending(
        self,
        *,
        buyer,
        item,
        item_type: str,
        seller,
        seller_type: str,
        amount: Any,
        gateway: str,
        transaction_ref: str,
        format: str = ContentFormat.PDF,
        session_token: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        split = self.calculator.split(amount, seller_type)
        if split.amount <= Decimal("0.00"):
            raise PaymentValidationError("amount must be greater than 0")
        if not transaction_ref:
            raise PaymentValidationError("transaction_ref is required")

        payment = Payment.objects.create(
            user=buyer,
            item_type=item_type,
            book=item if item_type == ItemType.BOOK else None,
            judgment=item if item_type == ItemType.JUDGMENT else None,
            format=format,
            amount=split.amount,
            seller=seller,
            seller_type=seller_type,
            commission_percentage=split.percentage,
            seller_amount=split.seller_amount,
            platform_amount=split.platform_amount,
            gateway=gateway,
            transaction_ref=transaction_ref,
            session_token=session_token or "",
            status=Payment.Status.PENDING,
            metadata=metadata or {},
        )
        logger.info(
            "Payment created ref=%s amount=%s seller=%s platform=%s",
            payment.transaction_ref,
            payment.amount,
            payment.seller_amount,
            payment.platform_amount,
        )
        return payment

    def mark_result(self, transaction_ref: str, gateway_status: str, gateway_response: Optional[Dict[str, Any]] = None) -> Payment:
        """
        Move a payment to the gateway's verdict.

        Repeating the same verdict returns the stored payment untouched. A
        verdict that contradicts a terminal state raises ConflictingState and
        leaves the stored state as it was.
        """
        target = self.normalize_status(gateway_status)
        conflict_from = None

        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(transaction_ref=transaction_ref).first()
            if not payment:
                raise PaymentNotFound(f"No payment found for transaction {transaction_ref}")

            if payment.status == target:
                return payment

            if not self._can_transition(payment.status, target):
                conflict_from = payment.status
            else:
                updated = Payment.objects.filter(pk=payment.pk, status=payment.status).update(
                    status=target,
                    gateway_response=gateway_response or {},
                    updated_at=timezone.now(),
                )
                payment.refresh_from_db()
                if not updated and payment.status != target:
                    conflict_from = payment.status

        if conflict_from is not None:
            self._record_anomaly(payment, conflict_from, target, gateway_response)
            raise ConflictingState(
                f"Payment {transaction_ref} is {conflict_from}; refusing to record {target}"
            )

        logger.info("Payment %s marked %s", payment.transaction_ref, payment.status)
        return payment

    # -----------------------------
    # Earnings
    # -----------------------------
    def compare_and_swap_earnings_status(
        self,
        payment_id,
        expected: str,
        next_status: str,
        payment_status: Optional[str] = None,
    ) -> bool:
        if expected not in self.EARNINGS_FLOW or next_status not in self.EARNINGS_FLOW:
            raise PaymentValidationError(f"Unknown earnings status {expected} -> {next_status}")
        if self.EARNINGS_FLOW.index(next_status) != self.EARNINGS_FLOW.index(expected) + 1:
            raise PaymentValidationError(f"Earnings status cannot move from {expected} to {next_status}")

        queryset = Payment.objects.filter(pk=payment_id, earnings_status=expected)
        if payment_status is not None:
            queryset = queryset.filter(status=payment_status)
        return queryset.update(earnings_status=next_status, updated_at=timezone.now()) == 1

    def distribute_earnings(self, payment: Payment) -> bool:
        """
        Credit the seller and platform wallets for a successful payment, once.

        The PENDING -> PROCESSED swap is the guard: whoever wins it does the
        crediting, everyone else gets False and changes nothing.
        """
        with transaction.atomic():
            swapped = self.compare_and_swap_earnings_status(
                payment.pk,
                Payment.EarningsStatus.PENDING,
                Payment.EarningsStatus.PROCESSED,
                payment_status=Payment.Status.SUCCESS,
            )
            if not swapped:
                logger.info("Earnings for payment %s already distributed or not payable", payment.pk)
                return False

            payment = Payment.objects.select_related("seller", "user").get(pk=payment.pk)
            if payment.platform_amount > Decimal("0.00"):
                platform_account = self.resolve_platform_account()
                WalletLedger.credit(platform_account, payment.platform_amount)
            if payment.seller_amount > Decimal("0.00"):
                WalletLedger.credit(payment.seller, payment.seller_amount)

            Commission.objects.update_or_create(
                payment=payment,
                defaults={
                    "item_type": payment.item_type,
                    "book": payment.book,
                    "judgment": payment.judgment,
                    "buyer": payment.user,
                    "seller": payment.seller,
                    "seller_type": payment.seller_type,
                    "total_amount": payment.amount,
                    "seller_amount": payment.seller_amount,
                    "platform_amount": payment.platform_amount,
                    "percentage": payment.commission_percentage,
                    "status": Commission.Status.PROCESSED,
                    "processed_at": timezone.now(),
                },
            )

        logger.info(
            "Earnings distributed payment=%s seller=%s:%s platform=%s",
            payment.pk,
            payment.seller_id,
            payment.seller_amount,
            payment.platform_amount,
        )
        return True

    @staticmethod
    def resolve_platform_account():
        email = getattr(settings, "PLATFORM_ACCOUNT_EMAIL", "")
        if email:
            account = User.objects.filter(email__iexact=email, is_active=True).first()
        else:
            account = (
                User.objects.filter(role=User.Role.SUPERADMIN, is_active=True)
                .order_by("created_at")
                .first()
            )
        if not account:
            raise PaymentConfigurationError(
                "No platform account found. Create an active superadmin or set PLATFORM_ACCOUNT_EMAIL."
            )
        return account

    # -----------------------------
    # Status / Validations
    # -----------------------------
    @classmethod
    def normalize_status(cls, gateway_status: str) -> str:
        status = cls.STATUS_ALIASES.get(str(gateway_status or "").upper())
        if status is None:
            raise PaymentValidationError(f"Unresolved gateway status: {gateway_status!r}")
        return status

    @staticmethod
    def _can_transition(current: str, target: str) -> bool:
        allowed = {
            "PENDING": {"SUCCESS", "FAILED"},
            "SUCCESS": {"REFUNDED"},
            "FAILED": set(),
            "REFUNDED": set(),
        }
        return target in allowed.get(current, set())

    @staticmethod
    def _record_anomaly(payment: Payment, current: str, target: str, gateway_response) -> None:
        logger.warning(
            "Conflicting gateway result for payment=%s ref=%s: stored=%s incoming=%s",
            payment.pk,
            payment.transaction_ref,
            current,
            target,
        )
        WebhookLog.objects.create(
            provider=payment.gateway,
            event_type="CONFLICTING_STATE",
            reference=payment.transaction_ref,
            payload={
                "stored_status": current,
                "incoming_status": target,
                "gateway_response": gateway_response or {},
            },
            processed=False,
            processing_attempts=1,
        )

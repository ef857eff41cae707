from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Sum
from django.utils import timezone

from account.models import PaymentMethod, Wallet
from payment.exceptions import (
    ConflictingState,
    GatewayRejected,
    GatewayUnavailable,
    PaymentConfigurationError,
    PaymentNotFound,
    PaymentValidationError,
)
from payment.models import Commission, Payment, Payout, Purchase
from .gateways import BaseGatewayAdapter, TransferConfig, TransferGateway, get_gateway
from .ledger import PaymentLedger
from .wallet import WalletLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayoutOutcome:
    success: bool
    message: str
    code: str = ""
    payout: Optional[Payout] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "code": self.code,
            "payout_id": str(self.payout.id) if self.payout else None,
            "status": self.payout.status if self.payout else None,
            "amount": str(self.payout.amount) if self.payout else None,
        }


@dataclass(frozen=True)
class DisbursementResult:
    completed: bool
    external_ref: Optional[str] = None


class _PayoutAborted(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


# -----------------------------
# Strategies
# -----------------------------
class PayoutStrategy:
    """One way of getting money to a seller. Subclasses register in PAYOUT_STRATEGIES."""

    method = ""
    payment_type = None
    requires_approval = False

    def get_payment_method(self, user) -> Optional[PaymentMethod]:
        return PaymentMethod.objects.filter(user=user, payment_type=self.payment_type).first()

    def is_wallet_verified(self, user) -> bool:
        payment_method = self.get_payment_method(user)
        return bool(payment_method and payment_method.is_verified and payment_method.get_identifier())

    def recipient_details(self, user) -> Dict[str, Any]:
        payment_method = self.get_payment_method(user)
        if not payment_method:
            return {}
        return {"mobile_number": payment_method.phone_number}

    def disburse(self, payout: Payout) -> DisbursementResult:
        raise NotImplementedError

    @staticmethod
    def description(payout: Payout) -> str:
        return f"Seller payout {payout.internal_ref}"


class JazzCashPayoutStrategy(PayoutStrategy):
    method = Payout.Method.JAZZCASH
    payment_type = PaymentMethod.Type.JAZZCASH

    def __init__(self, gateway: Optional[BaseGatewayAdapter] = None) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> BaseGatewayAdapter:
        if self._gateway is None:
            self._gateway = get_gateway("jazzcash")
        return self._gateway

    def disburse(self, payout: Payout) -> DisbursementResult:
        external_ref = self.gateway.disburse(
            payout.internal_ref,
            (payout.recipient_details or {}).get("mobile_number", ""),
            payout.amount,
            self.description(payout),
        )
        return DisbursementResult(completed=True, external_ref=external_ref)


class EasypaisaPayoutStrategy(PayoutStrategy):
    method = Payout.Method.EASYPAISA
    payment_type = PaymentMethod.Type.EASYPAISA

    def __init__(self, gateway: Optional[TransferGateway] = None) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> TransferGateway:
        if self._gateway is None:
            self._gateway = TransferGateway(TransferConfig.from_settings(self.method))
        return self._gateway

    def account(self, payout: Payout) -> str:
        return (payout.recipient_details or {}).get("mobile_number", "")

    def disburse(self, payout: Payout) -> DisbursementResult:
        external_ref = self.gateway.disburse(
            payout.internal_ref,
            self.account(payout),
            payout.amount,
            self.description(payout),
            recipient=payout.recipient_details,
        )
        return DisbursementResult(completed=True, external_ref=external_ref)


class BankPayoutStrategy(EasypaisaPayoutStrategy):
    method = Payout.Method.BANK
    payment_type = PaymentMethod.Type.BANK

    def recipient_details(self, user) -> Dict[str, Any]:
        payment_method = self.get_payment_method(user)
        if not payment_method:
            return {}
        return {
            "account_title": payment_method.account_title,
            "account_number": payment_method.account_number,
            "bank_name": payment_method.bank_name,
            "iban": payment_method.iban,
        }

    def account(self, payout: Payout) -> str:
        details = payout.recipient_details or {}
        return details.get("iban") or details.get("account_number") or ""


class ManualPayoutStrategy(PayoutStrategy):
    """An admin transfers the money by hand and attaches proof through complete()."""

    method = Payout.Method.MANUAL
    requires_approval = True

    def get_payment_method(self, user) -> Optional[PaymentMethod]:
        return PaymentMethod.objects.filter(user=user, is_verified=True).order_by("created_at").first()

    def is_wallet_verified(self, user) -> bool:
        return True

    def recipient_details(self, user) -> Dict[str, Any]:
        payment_method = self.get_payment_method(user)
        if not payment_method:
            return {}
        return {"payment_type": payment_method.payment_type, "account": payment_method.get_identifier()}

    def disburse(self, payout: Payout) -> DisbursementResult:
        return DisbursementResult(completed=False)


PAYOUT_STRATEGIES = {
    strategy.method: strategy
    for strategy in (JazzCashPayoutStrategy, EasypaisaPayoutStrategy, BankPayoutStrategy, ManualPayoutStrategy)
}


# -----------------------------
# Engine
# -----------------------------
class PayoutEngine:
    """
    Moves earned commissions out of seller wallets.

    A payout is created and its commissions linked in one transaction with
    the wallet row locked; the external transfer happens after that commit,
    and the wallet is debited only once the transfer succeeded.
    """

    def __init__(
        self,
        strategies: Optional[Dict[str, PayoutStrategy]] = None,
        minimum_payout: Any = None,
        batch_limit: Optional[int] = None,
        ledger: Optional[PaymentLedger] = None,
    ) -> None:
        self.strategies = strategies or {method: cls() for method, cls in PAYOUT_STRATEGIES.items()}
        if minimum_payout is None:
            minimum_payout = getattr(settings, "MINIMUM_PAYOUT_AMOUNT", 1000)
        self.minimum_payout = Decimal(str(minimum_payout))
        self.batch_limit = batch_limit or int(getattr(settings, "PAYOUT_COMMISSION_BATCH_LIMIT", 100))
        self.ledger = ledger or PaymentLedger()

    @staticmethod
    def generate_internal_ref(prefix: str = "PO") -> str:
        return f"{prefix}{int(time.time() * 1000)}{secrets.randbelow(10000):04d}"

    def get_strategy(self, method: str) -> PayoutStrategy:
        try:
            return self.strategies[method]
        except KeyError as exc:
            raise PaymentValidationError(f"Unsupported payout method: {method}") from exc

    # -----------------------------
    # Starting payouts
    # -----------------------------
    def process_auto_payout(self, user) -> PayoutOutcome:
        return self._start_payout(user, automatic=True)

    def request_payout(self, user) -> PayoutOutcome:
        """A seller asks for their balance; an admin approves it later."""
        return self._start_payout(user, automatic=False)

    def process_all_auto_payouts(self, schedule: Optional[str] = None) -> List[Dict[str, Any]]:
        wallets = Wallet.objects.select_related("user").filter(
            auto_payout=True,
            user__is_active=True,
            available_balance__gte=self.minimum_payout,
        )
        if schedule:
            wallets = wallets.filter(payout_schedule=schedule)

        results: List[Dict[str, Any]] = []
        for wallet in wallets.order_by("created_at"):
            try:
                outcome = self.process_auto_payout(wallet.user)
            except Exception as exc:
                logger.exception("Auto payout crashed for user=%s", wallet.user_id)
                outcome = PayoutOutcome(success=False, message=str(exc), code="ERROR")
            results.append({"user_id": str(wallet.user_id), **outcome.as_dict()})

        succeeded = sum(1 for r in results if r["success"])
        logger.info(
            "Auto payout batch schedule=%s processed=%d succeeded=%d failed=%d",
            schedule or "all",
            len(results),
            succeeded,
            len(results) - succeeded,
        )
        return results

    def _start_payout(self, user, automatic: bool) -> PayoutOutcome:
        if not user.is_active:
            return PayoutOutcome(False, "User account is inactive", code="INACTIVE")

        wallet = WalletLedger.get_wallet(user)
        if automatic and not wallet.auto_payout:
            return PayoutOutcome(False, "Auto payout is not enabled", code="AUTO_PAYOUT_DISABLED")

        threshold = max(self.minimum_payout, wallet.minimum_payout)
        if wallet.available_balance < threshold:
            return PayoutOutcome(
                False,
                f"Insufficient balance. Minimum payout amount is {threshold}",
                code="INSUFFICIENT_BALANCE",
            )

        try:
            strategy = self.get_strategy(wallet.payout_method)
        except PaymentValidationError as exc:
            return PayoutOutcome(False, str(exc), code="UNSUPPORTED_METHOD")
        if not strategy.is_wallet_verified(user):
            return PayoutOutcome(
                False,
                f"{wallet.get_payout_method_display()} wallet is not connected or not verified",
                code="WALLET_NOT_VERIFIED",
            )

        awaiting_approval = strategy.requires_approval or not automatic
        try:
            payout = self._create_payout(user, strategy, threshold, automatic, awaiting_approval)
        except _PayoutAborted as exc:
            return PayoutOutcome(False, exc.message, code=exc.code)
        except IntegrityError:
            return PayoutOutcome(False, "A payout is already in progress", code="PAYOUT_IN_PROGRESS")

        logger.info(
            "Payout %s created user=%s amount=%s method=%s status=%s",
            payout.internal_ref,
            user.pk,
            payout.amount,
            payout.payment_method,
            payout.status,
        )
        if awaiting_approval:
            return PayoutOutcome(True, "Payout created and awaiting admin approval", code="AWAITING_APPROVAL", payout=payout)
        return self._dispatch(payout, strategy)

    def _create_payout(self, user, strategy: PayoutStrategy, threshold: Decimal, automatic: bool, awaiting_approval: bool) -> Payout:
        with transaction.atomic():
            wallet = WalletLedger.lock(user)
            if wallet.available_balance < threshold:
                raise _PayoutAborted("INSUFFICIENT_BALANCE", f"Insufficient balance. Minimum payout amount is {threshold}")
            if Payout.objects.filter(user=user, status__in=Payout.IN_FLIGHT).exists():
                raise _PayoutAborted("PAYOUT_IN_PROGRESS", "A payout is already in progress")

            commission_ids = list(
                Commission.objects.filter(seller=user, status=Commission.Status.PROCESSED, payout__isnull=True)
                .order_by("processed_at", "created_at")
                .values_list("id", flat=True)[: self.batch_limit]
            )
            if not commission_ids:
                raise _PayoutAborted("NO_COMMISSIONS", "No unpaid commissions to pay out")

            payout = Payout.objects.create(
                user=user,
                amount=Decimal("0.00"),
                payment_method=strategy.method,
                recipient_details=strategy.recipient_details(user),
                status=Payout.Status.PENDING if awaiting_approval else Payout.Status.PROCESSING,
                is_automatic=automatic,
                internal_ref=self.generate_internal_ref(),
                metadata={"balance_snapshot": str(wallet.available_balance)},
            )
            Commission.objects.filter(
                id__in=commission_ids,
                status=Commission.Status.PROCESSED,
                payout__isnull=True,
            ).update(payout=payout, status=Commission.Status.PAID_OUT, updated_at=timezone.now())

            amount = payout.linked_total
            if amount <= Decimal("0.00"):
                raise _PayoutAborted("NO_COMMISSIONS", "No unpaid commissions to pay out")
            if amount > wallet.available_balance:
                logger.error(
                    "Commission total %s exceeds wallet balance %s for user=%s",
                    amount,
                    wallet.available_balance,
                    user.pk,
                )
                raise _PayoutAborted("LEDGER_MISMATCH", "Unpaid commissions exceed the wallet balance")

            payout.amount = amount
            payout.save(update_fields=["amount", "updated_at"])
        return payout

    # -----------------------------
    # Disbursement
    # -----------------------------
    def _dispatch(self, payout: Payout, strategy: Optional[PayoutStrategy] = None) -> PayoutOutcome:
        strategy = strategy or self.get_strategy(payout.payment_method)
        try:
            result = strategy.disburse(payout)
        except GatewayUnavailable as exc:
            logger.warning("Payout %s left in PROCESSING: %s", payout.internal_ref, exc)
            Payout.objects.filter(pk=payout.pk).update(
                failure_reason=f"Gateway unavailable: {exc}",
                updated_at=timezone.now(),
            )
            payout.refresh_from_db()
            return PayoutOutcome(
                False,
                "Payout gateway is unavailable; the payout is kept for reconciliation",
                code="GATEWAY_UNAVAILABLE",
                payout=payout,
            )
        except GatewayRejected as exc:
            return self._fail(payout, str(exc), code="GATEWAY_REJECTED")
        except PaymentValidationError as exc:
            return self._fail(payout, str(exc), code="INVALID_RECIPIENT")
        except PaymentConfigurationError as exc:
            logger.error("Payout %s cannot be sent, gateway is not configured: %s", payout.internal_ref, exc)
            return self._fail(payout, str(exc), code="GATEWAY_NOT_CONFIGURED")

        if not result.completed:
            return PayoutOutcome(True, "Payout approved and awaiting manual transfer", code="AWAITING_TRANSFER", payout=payout)
        return self._complete(payout, external_ref=result.external_ref)

    def _complete(self, payout: Payout, external_ref: Optional[str]) -> PayoutOutcome:
        now = timezone.now()
        with transaction.atomic():
            updated = Payout.objects.filter(pk=payout.pk, status__in=Payout.IN_FLIGHT).update(
                status=Payout.Status.COMPLETED,
                external_ref=external_ref,
                failure_reason="",
                completed_at=now,
                updated_at=now,
            )
            if not updated:
                raise ConflictingState(f"Payout {payout.internal_ref} is no longer in flight")
            if not WalletLedger.debit_for_payout(payout.user, payout.amount):
                raise ConflictingState(f"Wallet balance is lower than payout {payout.internal_ref}")

            commissions = Commission.objects.filter(payout=payout)
            commissions.update(paid_out_at=now, updated_at=now)
            payment_ids = list(commissions.values_list("payment_id", flat=True))
            for payment_id in payment_ids:
                self.ledger.compare_and_swap_earnings_status(
                    payment_id,
                    Payment.EarningsStatus.PROCESSED,
                    Payment.EarningsStatus.PAID_OUT,
                )
            Payment.objects.filter(pk__in=payment_ids).update(payout=payout)
            Purchase.objects.filter(payment_id__in=payment_ids).update(
                earnings_status=Purchase.EarningsStatus.PAID_OUT
            )

        payout.refresh_from_db()
        logger.info("Payout %s completed external_ref=%s", payout.internal_ref, external_ref)
        self._notify(payout, completed=True)
        return PayoutOutcome(True, "Payout completed", code="COMPLETED", payout=payout)

    def _fail(self, payout: Payout, reason: str, code: str = "GATEWAY_REJECTED") -> PayoutOutcome:
        with transaction.atomic():
            Payout.objects.filter(pk=payout.pk, status__in=Payout.IN_FLIGHT).update(
                status=Payout.Status.FAILED,
                failure_reason=reason,
                updated_at=timezone.now(),
            )
            payout.refresh_from_db()
            self._release_commissions(payout)

        logger.warning("Payout %s failed: %s", payout.internal_ref, reason)
        self._notify(payout, completed=False)
        return PayoutOutcome(False, reason, code=code, payout=payout)

    @staticmethod
    def _release_commissions(payout: Payout) -> int:
        commissions = Commission.objects.filter(payout=payout)
        released_ids = [str(pk) for pk in commissions.values_list("id", flat=True)]
        released = commissions.update(
            payout=None,
            status=Commission.Status.PROCESSED,
            updated_at=timezone.now(),
        )
        metadata = dict(payout.metadata or {})
        metadata["released_commissions"] = released_ids
        payout.metadata = metadata
        payout.save(update_fields=["metadata", "updated_at"])
        return released

    # -----------------------------
    # Admin operations
    # -----------------------------
    def approve(self, payout_id, admin=None) -> PayoutOutcome:
        with transaction.atomic():
            payout = self._get_locked(payout_id)
            if payout.status != Payout.Status.PENDING:
                raise ConflictingState("Only pending payouts can be approved")
            Payout.objects.filter(pk=payout.pk, status=Payout.Status.PENDING).update(
                status=Payout.Status.PROCESSING,
                processed_by=admin,
                processed_at=timezone.now(),
                updated_at=timezone.now(),
            )
            payout.refresh_from_db()
        logger.info("Payout %s approved by %s", payout.internal_ref, getattr(admin, "pk", None))
        return self._dispatch(payout)

    def reject(self, payout_id, reason: str, admin=None) -> Payout:
        reason = (reason or "").strip()
        if not reason:
            raise PaymentValidationError("A rejection reason is required")
        with transaction.atomic():
            payout = self._get_locked(payout_id)
            if payout.status != Payout.Status.PENDING:
                raise ConflictingState("Only pending payouts can be rejected")
            Payout.objects.filter(pk=payout.pk).update(
                status=Payout.Status.CANCELLED,
                failure_reason=reason,
                processed_by=admin,
                processed_at=timezone.now(),
                updated_at=timezone.now(),
            )
            payout.refresh_from_db()
            self._release_commissions(payout)
        logger.info("Payout %s rejected: %s", payout.internal_ref, reason)
        return payout

    def complete(self, payout_id, proof: Dict[str, Any], admin=None) -> PayoutOutcome:
        proof = proof or {}
        reference = (proof.get("transaction_ref") or "").strip()
        if not reference:
            raise PaymentValidationError("A transfer reference is required to complete a payout")
        with transaction.atomic():
            payout = self._get_locked(payout_id)
            if payout.payment_method != Payout.Method.MANUAL:
                raise ConflictingState("Only manual payouts can be completed by an admin")
            if payout.status not in Payout.IN_FLIGHT:
                raise ConflictingState(f"Payout is {payout.status} and cannot be completed")
            Payout.objects.filter(pk=payout.pk).update(
                proof_reference=reference,
                proof_url=proof.get("receipt_url") or "",
                notes=proof.get("notes") or "",
                processed_by=admin,
                processed_at=timezone.now(),
            )
            payout.refresh_from_db()
        return self._complete(payout, external_ref=reference)

    def retry(self, payout_id, admin=None) -> PayoutOutcome:
        """Re-send a transfer whose first attempt ended without an answer. Reuses the internal_ref."""
        with transaction.atomic():
            payout = self._get_locked(payout_id)
            if payout.status != Payout.Status.PROCESSING or payout.payment_method == Payout.Method.MANUAL:
                raise ConflictingState("Only processing gateway payouts can be retried")
            Payout.objects.filter(pk=payout.pk).update(
                retry_count=F("retry_count") + 1,
                updated_at=timezone.now(),
            )
            payout.refresh_from_db()
        logger.info("Retrying payout %s attempt=%d", payout.internal_ref, payout.retry_count)
        return self._dispatch(payout)

    @staticmethod
    def stats() -> Dict[str, Any]:
        rows = Payout.objects.values("status").annotate(count=Count("id"), total=Sum("amount"))
        by_status = {row["status"]: {"count": row["count"], "total": str(row["total"] or Decimal("0.00"))} for row in rows}
        for status in Payout.Status.values:
            by_status.setdefault(status, {"count": 0, "total": "0.00"})
        return {"by_status": by_status, "total_payouts": sum(v["count"] for v in by_status.values())}

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _get_locked(payout_id) -> Payout:
        payout = Payout.objects.select_for_update().select_related("user").filter(pk=payout_id).first()
        if not payout:
            raise PaymentNotFound("Payout not found")
        return payout

    @staticmethod
    def _notify(payout: Payout, completed: bool) -> None:
        from notifications.services import NotificationService, NotificationTemplates

        try:
            if completed:
                message = NotificationTemplates.payout_completed(payout)
            else:
                message = NotificationTemplates.payout_failed(payout)
            NotificationService.notify(user=payout.user, message=message)
        except Exception:
            logger.exception("Payout notification failed payout=%s", payout.pk)

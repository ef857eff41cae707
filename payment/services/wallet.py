import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from account.models import Wallet

logger = logging.getLogger(__name__)


class WalletLedger:
    """
    The only writer of wallet balances.

    Every change is a single UPDATE with F() expressions so concurrent
    credits and debits for the same user never lose an increment.
    """

    @staticmethod
    def get_wallet(user) -> Wallet:
        wallet, _ = Wallet.objects.get_or_create(user=user)
        return wallet

    @classmethod
    @transaction.atomic
    def credit(cls, user, amount: Decimal) -> None:
        if amount <= Decimal("0.00"):
            return
        cls.get_wallet(user)
        Wallet.objects.filter(user=user).update(
            available_balance=F("available_balance") + amount,
            total_earnings=F("total_earnings") + amount,
            updated_at=timezone.now(),
        )
        logger.info("Wallet credited user=%s amount=%s", user.pk, amount)

    @classmethod
    def debit_for_payout(cls, user, amount: Decimal) -> bool:
        updated = Wallet.objects.filter(user=user, available_balance__gte=amount).update(
            available_balance=F("available_balance") - amount,
            total_withdrawn=F("total_withdrawn") + amount,
            last_payout_date=timezone.now(),
            updated_at=timezone.now(),
        )
        if not updated:
            logger.error("Wallet debit refused user=%s amount=%s: balance too low", user.pk, amount)
            return False
        logger.info("Wallet debited user=%s amount=%s", user.pk, amount)
        return True

    @staticmethod
    def lock(user) -> Wallet:
        """Lock the wallet row for the rest of the surrounding transaction."""
        WalletLedger.get_wallet(user)
        return Wallet.objects.select_for_update().get(user=user)

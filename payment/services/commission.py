from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any

from django.conf import settings

from payment.exceptions import PaymentConfigurationError, PaymentValidationError
from payment.models import SellerType

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CommissionSplit:
    amount: Decimal
    seller_amount: Decimal
    platform_amount: Decimal
    percentage: Decimal


class CommissionCalculator:
    """
    Splits a sale between the seller and the platform.

    The platform cut is floored at the minor unit and the seller gets the
    remainder, so both parts always add back up to the sale amount.
    """

    def __init__(self, platform_percentage: Any = None) -> None:
        if platform_percentage is None:
            platform_percentage = getattr(settings, "PLATFORM_COMMISSION_PERCENTAGE", 10)
        try:
            self.platform_percentage = self._percentage(platform_percentage)
        except PaymentValidationError as exc:
            raise PaymentConfigurationError(f"Invalid PLATFORM_COMMISSION_PERCENTAGE: {exc}") from exc

    def split(self, amount: Any, seller_type: str, platform_percentage: Any = None) -> CommissionSplit:
        normalized = self._amount(amount)
        percentage = (
            self.platform_percentage if platform_percentage is None else self._percentage(platform_percentage)
        )

        if seller_type == SellerType.SUPERADMIN:
            return CommissionSplit(
                amount=normalized,
                seller_amount=Decimal("0.00"),
                platform_amount=normalized,
                percentage=HUNDRED,
            )

        platform_amount = (normalized * percentage / HUNDRED).quantize(CENT, rounding=ROUND_FLOOR)
        return CommissionSplit(
            amount=normalized,
            seller_amount=normalized - platform_amount,
            platform_amount=platform_amount,
            percentage=percentage,
        )

    @staticmethod
    def _amount(value: Any) -> Decimal:
        try:
            dec = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise PaymentValidationError(f"Invalid amount: {value!r}") from exc
        if not dec.is_finite() or dec < 0:
            raise PaymentValidationError("amount must be zero or greater")
        return dec.quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def _percentage(value: Any) -> Decimal:
        try:
            dec = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise PaymentValidationError(f"Invalid percentage: {value!r}") from exc
        if not dec.is_finite() or dec < 0 or dec > HUNDRED:
            raise PaymentValidationError("percentage must be between 0 and 100")
        return dec


def split(amount: Any, seller_type: str, platform_percentage: Any) -> CommissionSplit:
    return CommissionCalculator(platform_percentage).split(amount, seller_type)

"""Pricing engine: hourly rate + time range -> itemised amount breakdown.

Every amount is rounded to 2 decimal places (half-up) at the moment it is
computed, so the client mirror and the server reproduce the same totals.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from services.errors import InvalidRange, InvalidRate
from services.settings import PricingPolicy
from services.time_range import TimeRange

CENT = Decimal("0.01")
MINOR_UNITS = Decimal(100)


def round2(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Exact conversion of a 2dp amount to paise."""
    return int((round2(amount) * MINOR_UNITS).to_integral_value())


def from_minor_units(value: int) -> Decimal:
    return round2(Decimal(value) / MINOR_UNITS)


@dataclass(frozen=True)
class AmountBreakdown:
    base_amount: Decimal
    platform_commission: Decimal
    subtotal: Decimal
    gateway_fee: Decimal
    total_charged: Decimal
    owner_share: Decimal
    platform_share: Decimal

    @property
    def platform_fee_absorbed(self) -> Decimal:
        # gateway cost the platform carries on its commission
        return self.platform_commission - self.platform_share

    def to_dict(self) -> dict:
        return {
            "base_amount": str(self.base_amount),
            "platform_commission": str(self.platform_commission),
            "subtotal": str(self.subtotal),
            "gateway_fee": str(self.gateway_fee),
            "total_charged": str(self.total_charged),
            "owner_share": str(self.owner_share),
            "platform_share": str(self.platform_share),
            "platform_fee_absorbed": str(self.platform_fee_absorbed),
        }


class PricingEngine:
    def __init__(self, policy: PricingPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> PricingPolicy:
        return self._policy

    def price(self, hourly_rate: Decimal, time_range: TimeRange) -> AmountBreakdown:
        """Return the breakdown for booking ``time_range`` at ``hourly_rate``.

        Raises:
            InvalidRate: If the rate is not positive.
            InvalidRange: If the duration is not a positive multiple of the slot size.
        """
        rate = Decimal(hourly_rate)
        if not rate.is_finite() or rate <= 0:
            raise InvalidRate("Hourly rate must be positive")

        minutes = time_range.duration_minutes
        if minutes <= 0 or minutes % self._policy.slot_minutes:
            raise InvalidRange(
                f"Duration must be a positive multiple of {self._policy.slot_minutes} minutes"
            )

        commission = round2(self._policy.platform_commission)
        fee_rate = self._policy.gateway_fee_rate

        base_amount = round2(rate * Decimal(minutes) / Decimal(60))
        subtotal = base_amount + commission
        gateway_fee = round2(subtotal * fee_rate)
        return AmountBreakdown(
            base_amount=base_amount,
            platform_commission=commission,
            subtotal=subtotal,
            gateway_fee=gateway_fee,
            total_charged=round2(subtotal + gateway_fee),
            owner_share=base_amount,
            platform_share=round2(commission * (Decimal(1) - fee_rate)),
        )

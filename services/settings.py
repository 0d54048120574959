"""Immutable booking settings, frozen once from the Flask config."""

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class PricingPolicy:
    platform_commission: Decimal
    gateway_fee_rate: Decimal
    slot_minutes: int


@dataclass(frozen=True)
class BookingSettings:
    pricing: PricingPolicy
    opening_time: time
    closing_time: time
    timezone: str
    currency: str
    cancel_cutoff_minutes: int
    payment_provider: str

    @property
    def slot_minutes(self) -> int:
        return self.pricing.slot_minutes

    def local_now(self) -> datetime:
        """Wall-clock time at the venues, naive (matches stored dates/times)."""
        return datetime.now(ZoneInfo(self.timezone)).replace(tzinfo=None)

    @classmethod
    def from_config(cls, config) -> "BookingSettings":
        slot_minutes = int(config.get("SLOT_MINUTES", 30))
        if slot_minutes <= 0 or 60 % slot_minutes:
            raise ValueError("SLOT_MINUTES must divide an hour")

        opening_time = time.fromisoformat(config.get("OPENING_TIME", "06:00"))
        closing_time = time.fromisoformat(config.get("CLOSING_TIME", "22:00"))
        for name, value in (("OPENING_TIME", opening_time), ("CLOSING_TIME", closing_time)):
            if value.second or value.microsecond or value.minute % slot_minutes:
                raise ValueError(f"{name} must fall on a {slot_minutes}-minute boundary")
        if opening_time >= closing_time:
            raise ValueError("OPENING_TIME must be before CLOSING_TIME")

        return cls(
            pricing=PricingPolicy(
                platform_commission=Decimal(str(config.get("PLATFORM_COMMISSION", "25.00"))),
                gateway_fee_rate=Decimal(str(config.get("GATEWAY_FEE_RATE", "0.0207"))),
                slot_minutes=slot_minutes,
            ),
            opening_time=opening_time,
            closing_time=closing_time,
            timezone=config.get("VENUE_TIMEZONE", "Asia/Kolkata"),
            currency=config.get("CURRENCY", "INR").upper(),
            cancel_cutoff_minutes=int(config.get("CANCEL_CUTOFF_MINUTES", 0)),
            payment_provider=config.get("PAYMENT_PROVIDER", "razorpay").lower(),
        )

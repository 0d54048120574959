"""Admission controller: the only path by which reservations come to exist.

admit() runs check -> verify -> insert as one unit of work. The early
availability check gives a fast rejection; the slot-claim unique constraint
in the ledger is what actually guarantees that overlapping requests cannot
both commit, whatever their timing.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from models.hold import Hold
from models.reservation import Reservation
from services.availability import AvailabilityIndex
from services.errors import (
    AmountMismatch,
    BookingError,
    CancellationWindowClosed,
    HoldNotFound,
    InvalidQRCode,
    InvalidRange,
    InvalidTransition,
    LedgerWriteFailed,
    NotPermitted,
    PaymentInvalid,
    ReservationNotFound,
    SlotConflict,
    VenueUnavailable,
)
from services.gateways import GatewayOrder
from services.ledger import DuplicateClaim, DuplicatePaymentReference, ReservationLedger
from services.payment_verifier import PaymentVerifier
from services.pricing import AmountBreakdown, PricingEngine, round2, to_minor_units
from services.settings import BookingSettings
from services.time_range import TimeRange
from services.venues import VenueDirectory, VenueSnapshot
from utils.logging_config import get_logger

logger = get_logger().bind(log_type="booking")

CONFIRMED = "confirmed"
CANCELLED = "cancelled"
COMPLETED = "completed"

QR_PAYLOAD_TYPE = "turf_booking"


class AdmissionState(Enum):
    REQUESTED = "requested"
    VERIFYING = "verifying"
    ADMITTED = "admitted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Actor:
    """Who is asking. Admins may act on any venue."""

    user_id: int
    is_admin: bool = False


class AdmissionController:
    def __init__(self, ledger: ReservationLedger, venues: VenueDirectory,
                 verifier: PaymentVerifier, settings: BookingSettings) -> None:
        self._ledger = ledger
        self._venues = venues
        self._verifier = verifier
        self._settings = settings
        self._pricing = PricingEngine(settings.pricing)
        self._availability = AvailabilityIndex(ledger, settings)

    @property
    def availability(self) -> AvailabilityIndex:
        return self._availability

    def venue(self, venue_id: int) -> VenueSnapshot:
        return self._venues.get_venue(venue_id)

    # ---------- pricing ----------

    def quote(self, venue_id: int, time_range: TimeRange) -> AmountBreakdown:
        """Server-side price from the persisted venue rate."""
        self._check_bookable_range(time_range)
        venue = self._venues.get_venue(venue_id)
        return self._pricing.price(venue.hourly_rate, time_range)

    def open_payment_order(self, venue_id: int, time_range: TimeRange,
                           actor: Actor) -> tuple[AmountBreakdown, GatewayOrder]:
        """Open a gateway order for the server price of ``time_range``.

        The range is not reserved: admission still re-checks it once the
        payment comes back.
        """
        self._check_bookable_range(time_range)
        venue = self._venues.get_venue(venue_id)
        if not venue.bookable:
            raise VenueUnavailable("Venue is not open for booking")

        unavailable = self._availability.unavailable_ranges(venue_id, time_range.date)
        if not self._availability.is_available(time_range, unavailable):
            raise SlotConflict()

        breakdown = self._pricing.price(venue.hourly_rate, time_range)
        receipt = f"v{venue_id}-{time_range.date:%Y%m%d}-{time_range.start:%H%M}-u{actor.user_id}"
        order = self._verifier.open_order(breakdown.total_charged, receipt, {
            "userId": str(actor.user_id),
            "turfId": str(venue_id),
            **time_range.to_dict(),
        })
        logger.info(f"Payment order opened | order={order.reference} | venue={venue_id} | receipt={receipt}")
        return breakdown, order

    # ---------- admission ----------

    def admit(self, venue_id: int, time_range: TimeRange, payer_id: int,
              payment_ref: str, expected_amount: Decimal,
              order_id: str | None = None, signature: str | None = None) -> Reservation:
        """Admit a paid reservation or raise a typed ``BookingError``.

        Raises:
            InvalidRange: Misaligned, outside opening hours, or already started.
            VenueNotFound / VenueUnavailable: Venue missing, inactive or unverified.
            AmountMismatch: expected_amount or the gateway amount differs from the server price.
            SlotConflict: Range overlaps a live reservation or hold.
            PaymentInvalid / PaymentNotCaptured: Payment cannot pay for this booking.
                A given order_id and signature must match the payment.
            GatewayUnreachable: Gateway timed out; safe to retry the whole call.
            LedgerWriteFailed: Payment verified but the reservation was not stored.
        """
        log = logger.bind(venue_id=venue_id, payer_id=payer_id, payment_ref=payment_ref)
        self._trace(log, AdmissionState.REQUESTED, time_range)
        try:
            reservation = self._admit(
                log, venue_id, time_range, payer_id, payment_ref, expected_amount, order_id, signature
            )
        except BookingError as e:
            self._trace(log, AdmissionState.REJECTED, time_range, e.code.value)
            raise
        self._trace(log, AdmissionState.ADMITTED, time_range, f"reservation={reservation.id}")
        return reservation

    def _admit(self, log, venue_id, time_range, payer_id, payment_ref, expected_amount,
               order_id=None, signature=None):
        payment_ref = (payment_ref or "").strip()
        if not payment_ref:
            raise PaymentInvalid("payment_ref required")

        # a retry of an admission that already committed gets the same answer
        existing = self._ledger.find_by_payment_reference(payment_ref)
        if existing is not None:
            return self._replay(existing, venue_id, time_range, payer_id)

        self._check_bookable_range(time_range)
        venue = self._venues.get_venue(venue_id)
        if not venue.bookable:
            raise VenueUnavailable("Venue is not open for booking")

        breakdown = self._pricing.price(venue.hourly_rate, time_range)
        if round2(expected_amount) != breakdown.total_charged:
            raise AmountMismatch("Expected amount does not match the booking price")

        unavailable = self._availability.unavailable_ranges(venue_id, time_range.date)
        if not self._availability.is_available(time_range, unavailable):
            raise SlotConflict()

        self._trace(log, AdmissionState.VERIFYING, time_range)
        verified = self._verifier.verify(payment_ref, breakdown.total_charged, order_id, signature)

        reservation = Reservation(
            venue_id=venue_id,
            payer_id=payer_id,
            date=time_range.date,
            start_time=time_range.start,
            end_time=time_range.end,
            base_amount=to_minor_units(breakdown.base_amount),
            platform_commission=to_minor_units(breakdown.platform_commission),
            gateway_fee=to_minor_units(breakdown.gateway_fee),
            total_charged=to_minor_units(breakdown.total_charged),
            owner_share=to_minor_units(breakdown.owner_share),
            platform_share=to_minor_units(breakdown.platform_share),
            payment_reference=verified.reference,
            payment_provider=verified.provider,
            currency=verified.currency,
            status=CONFIRMED,
        )
        try:
            return self._ledger.insert_if_absent(reservation, time_range)
        except DuplicateClaim:
            # lost the race after the payment was verified
            log.warning("Slot taken during verification, payment needs refund")
            raise SlotConflict(payment_ref=payment_ref, refund_required=True)
        except DuplicatePaymentReference:
            existing = self._ledger.find_by_payment_reference(payment_ref)
            return self._replay(existing, venue_id, time_range, payer_id)
        except SQLAlchemyError:
            log.exception("Ledger write failed after payment verification")
            raise LedgerWriteFailed(payment_ref)

    def _replay(self, existing: Reservation, venue_id, time_range, payer_id) -> Reservation:
        same_request = (
            existing.venue_id == venue_id
            and existing.payer_id == payer_id
            and existing.date == time_range.date
            and existing.start_time == time_range.start
            and existing.end_time == time_range.end
        )
        if not same_request:
            raise PaymentInvalid("Payment has already been used for another booking")
        return existing

    # ---------- lifecycle ----------

    def cancel(self, reservation_id: int, actor: Actor, reason: str | None = None) -> Reservation:
        """confirmed -> cancelled, only before the range starts. Frees the range on commit."""
        reservation = self._get_reservation(reservation_id)
        venue = self._venues.get_venue(reservation.venue_id)
        if actor.user_id not in (reservation.payer_id, venue.owner_user_id) and not actor.is_admin:
            raise NotPermitted("Not allowed to cancel this reservation")
        if reservation.status != CONFIRMED:
            raise InvalidTransition(reservation_id, reservation.status, CANCELLED)

        starts_at = datetime.combine(reservation.date, reservation.start_time)
        cutoff = timedelta(minutes=self._settings.cancel_cutoff_minutes)
        if self._settings.local_now() >= starts_at - cutoff:
            raise CancellationWindowClosed("Cannot cancel a slot that has started or is about to start")

        self._transition(
            reservation_id, CONFIRMED, CANCELLED,
            release_claims=True,
            cancelled_at=datetime.utcnow(),
            cancelled_by=actor.user_id,
            cancel_reason=(reason or None),
        )
        logger.info(f"Reservation cancelled | id={reservation_id} | by={actor.user_id}")
        return self._get_reservation(reservation_id)

    def complete(self, reservation_id: int, actor: Actor) -> Reservation:
        """confirmed -> completed (check-in). A second call is rejected."""
        reservation = self._get_reservation(reservation_id)
        venue = self._venues.get_venue(reservation.venue_id)
        if actor.user_id != venue.owner_user_id and not actor.is_admin:
            raise NotPermitted("Only the venue owner or an admin can check in")

        self._transition(
            reservation_id, CONFIRMED, COMPLETED,
            completed_at=datetime.utcnow(),
            checked_in_by=actor.user_id,
        )
        logger.info(f"Reservation completed | id={reservation_id} | by={actor.user_id}")
        return self._get_reservation(reservation_id)

    def check_in(self, qr_payload: str, actor: Actor) -> Reservation:
        """Complete the reservation named by a scanned booking QR code."""
        try:
            data = json.loads(qr_payload or "")
        except ValueError:
            raise InvalidQRCode("This is not a valid booking QR code")
        if not isinstance(data, dict) or data.get("type") != QR_PAYLOAD_TYPE:
            raise InvalidQRCode("This is not a valid booking QR code")
        try:
            reservation_id = int(data.get("bookingId"))
        except (TypeError, ValueError):
            raise InvalidQRCode("QR code has no booking id")

        reservation = self._get_reservation(reservation_id)
        qr_date = data.get("date")
        if qr_date and qr_date != reservation.date.isoformat():
            raise InvalidQRCode("QR code does not match the booking")
        return self.complete(reservation_id, actor)

    def _transition(self, reservation_id, from_status, to_status, **fields) -> None:
        if not self._ledger.update_status(reservation_id, from_status, to_status, **fields):
            current = self._get_reservation(reservation_id)
            raise InvalidTransition(reservation_id, current.status, to_status)

    def _get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self._ledger.get(reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        return reservation

    # ---------- holds ----------

    def place_hold(self, venue_id: int, time_range: TimeRange, actor: Actor,
                   reason: str | None = None) -> Hold:
        self._check_bookable_range(time_range)
        venue = self._venues.get_venue(venue_id)
        if actor.user_id != venue.owner_user_id and not actor.is_admin:
            raise NotPermitted("Only the venue owner or an admin can lock slots")

        unavailable = self._availability.unavailable_ranges(venue_id, time_range.date)
        if not self._availability.is_available(time_range, unavailable):
            raise SlotConflict()

        hold = Hold(
            venue_id=venue_id,
            date=time_range.date,
            start_time=time_range.start,
            end_time=time_range.end,
            placed_by=actor.user_id,
            reason=(reason or None),
        )
        try:
            self._ledger.insert_if_absent(hold, time_range)
        except DuplicateClaim:
            raise SlotConflict()
        logger.info(f"Hold placed | venue={venue_id} | {time_range.to_dict()} | by={actor.user_id}")
        return hold

    def release_hold(self, hold_id: int, actor: Actor) -> None:
        hold = self._ledger.get_hold(hold_id)
        if hold is None:
            raise HoldNotFound(hold_id)
        venue = self._venues.get_venue(hold.venue_id)
        if actor.user_id != venue.owner_user_id and not actor.is_admin:
            raise NotPermitted("Only the venue owner or an admin can unlock slots")
        self._ledger.delete_hold(hold)
        logger.info(f"Hold released | id={hold_id} | by={actor.user_id}")

    # ---------- helpers ----------

    def _check_bookable_range(self, time_range: TimeRange) -> None:
        settings = self._settings
        time_range.require_aligned(settings.slot_minutes)
        if not time_range.within(settings.opening_time, settings.closing_time):
            raise InvalidRange(
                f"Bookings must fall between {settings.opening_time:%H:%M} and {settings.closing_time:%H:%M}"
            )
        if time_range.starts_at() <= settings.local_now():
            raise InvalidRange("Cannot book past/started slots")

    @staticmethod
    def _trace(log, state: AdmissionState, time_range: TimeRange, detail: str = "") -> None:
        r = time_range
        log.info(f"Admission {state.value} | {r.date} {r.start:%H:%M}-{r.end:%H:%M} {detail}".rstrip())

"""Tests for the reservation ledger write paths."""

from datetime import time

import pytest
from sqlalchemy.exc import IntegrityError

from models import db
from models.hold import Hold
from models.reservation import Reservation
from models.slot_claim import SlotClaim
from services.ledger import DuplicateClaim, DuplicatePaymentReference, ReservationLedger
from services.time_range import TimeRange

from tests.fakes import BOOKING_DAY, EVENING


def _reservation(venue_id, payer_id, time_range, ref):
    return Reservation(
        venue_id=venue_id,
        payer_id=payer_id,
        date=time_range.date,
        start_time=time_range.start,
        end_time=time_range.end,
        base_amount=200000,
        platform_commission=2500,
        gateway_fee=4192,
        total_charged=206692,
        owner_share=200000,
        platform_share=2448,
        payment_reference=ref,
        payment_provider="fake",
        currency="INR",
        status="confirmed",
    )


@pytest.fixture
def ledger(ctx):
    return ReservationLedger(db.session, 30)


class TestInsertIfAbsent:
    """Tests for ReservationLedger.insert_if_absent."""

    def test_writes_one_claim_per_sub_slot(self, ledger, venue, player):
        r = ledger.insert_if_absent(_reservation(venue, player, EVENING, "pay_l1"), EVENING)
        claims = db.session.query(SlotClaim).filter_by(reservation_id=r.id).all()
        assert sorted(c.slot_start for c in claims) == [time(18), time(18, 30), time(19), time(19, 30)]

    def test_overlap_is_duplicate_claim(self, ledger, venue, player):
        ledger.insert_if_absent(_reservation(venue, player, EVENING, "pay_l1"), EVENING)
        later = TimeRange(BOOKING_DAY, time(19, 30), time(20, 30))
        with pytest.raises(DuplicateClaim):
            ledger.insert_if_absent(_reservation(venue, player, later, "pay_l2"), later)
        assert db.session.query(Reservation).count() == 1

    def test_same_payment_is_duplicate_reference(self, ledger, venue, player):
        ledger.insert_if_absent(_reservation(venue, player, EVENING, "pay_l1"), EVENING)
        morning = TimeRange(BOOKING_DAY, time(8), time(9))
        with pytest.raises(DuplicatePaymentReference):
            ledger.insert_if_absent(_reservation(venue, player, morning, "pay_l1"), morning)

    def test_other_integrity_errors_propagate(self, ledger, venue):
        """Only a slot collision is a DuplicateClaim; a broken row is a store failure."""
        with pytest.raises(IntegrityError):
            ledger.insert_if_absent(_reservation(venue, None, EVENING, "pay_l3"), EVENING)
        assert ledger.read_ranges_for(venue, BOOKING_DAY) == []

    def test_hold_claims(self, ledger, venue, owner):
        slot = TimeRange(BOOKING_DAY, time(7), time(8))
        hold = Hold(venue_id=venue, date=slot.date, start_time=slot.start, end_time=slot.end, placed_by=owner)
        ledger.insert_if_absent(hold, slot)

        ranges = ledger.read_ranges_for(venue, BOOKING_DAY)
        assert [(r.kind, r.time_range) for r in ranges] == [("hold", slot)]


class TestUpdateStatus:
    """Tests for the compare-and-swap status update."""

    def test_swaps_from_expected_status(self, ledger, venue, player):
        r = ledger.insert_if_absent(_reservation(venue, player, EVENING, "pay_l1"), EVENING)
        assert ledger.update_status(r.id, "confirmed", "completed") is True
        assert ledger.get(r.id).status == "completed"

    def test_refuses_when_status_moved_on(self, ledger, venue, player):
        r = ledger.insert_if_absent(_reservation(venue, player, EVENING, "pay_l1"), EVENING)
        ledger.update_status(r.id, "confirmed", "cancelled", release_claims=True)

        assert ledger.update_status(r.id, "confirmed", "completed") is False
        assert ledger.get(r.id).status == "cancelled"

    def test_release_claims_frees_range(self, ledger, venue, player):
        r = ledger.insert_if_absent(_reservation(venue, player, EVENING, "pay_l1"), EVENING)
        ledger.update_status(r.id, "confirmed", "cancelled", release_claims=True)
        assert ledger.read_ranges_for(venue, BOOKING_DAY) == []

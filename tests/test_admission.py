"""Tests for the admission controller.

These cover the no-double-booking guarantee, payment binding and the
reservation lifecycle.
"""

import threading
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from models import db
from models.reservation import Reservation
from services.admission import Actor
from services.errors import (
    AmountMismatch,
    CancellationWindowClosed,
    GatewayUnreachable,
    InvalidQRCode,
    InvalidRange,
    InvalidTransition,
    LedgerWriteFailed,
    NotPermitted,
    PaymentInvalid,
    PaymentNotCaptured,
    SlotConflict,
    VenueUnavailable,
)
from services.ledger import ReservationLedger
from services.time_range import TimeRange
from utils.booking_context import get_admission_controller

from tests.fakes import (
    BOOKING_DAY,
    EVENING,
    EVENING_TOTAL,
    EVENING_TOTAL_MINOR,
    ONE_HOUR_TOTAL,
    ONE_HOUR_TOTAL_MINOR,
)


def _range(start, end):
    return TimeRange.parse("2030-06-02", start, end)


class TestAdmit:
    """Tests for AdmissionController.admit."""

    def test_admits_verified_payment(self, ctx, venue, player, gateway):
        """A captured payment for the exact total produces a confirmed reservation."""
        gateway.add("pay_ok1", EVENING_TOTAL_MINOR)

        r = get_admission_controller().admit(venue, EVENING, player, "pay_ok1", EVENING_TOTAL)

        assert r.id is not None
        assert r.status == "confirmed"
        assert r.total_charged == EVENING_TOTAL_MINOR
        assert r.owner_share == 200000
        assert r.platform_share == 2448
        assert r.payment_provider == "fake"

    def test_authorized_payment_is_accepted(self, ctx, venue, player, gateway):
        gateway.add("pay_auth1", EVENING_TOTAL_MINOR, status="authorized")
        r = get_admission_controller().admit(venue, EVENING, player, "pay_auth1", EVENING_TOTAL)
        assert r.status == "confirmed"

    def test_overlapping_range_conflicts_without_gateway_call(self, ctx, venue, player, other_player, gateway):
        """09:30-10:30 after 09:00-10:00 is rejected before the payment is checked."""
        controller = get_admission_controller()
        gateway.add("pay_first", ONE_HOUR_TOTAL_MINOR)
        gateway.add("pay_second", ONE_HOUR_TOTAL_MINOR)
        controller.admit(venue, _range("09:00", "10:00"), player, "pay_first", ONE_HOUR_TOTAL)

        with pytest.raises(SlotConflict) as exc:
            controller.admit(venue, _range("09:30", "10:30"), other_player, "pay_second", ONE_HOUR_TOTAL)

        assert exc.value.refund_required is False
        assert gateway.calls == ["pay_first"]

    def test_adjacent_range_is_admitted(self, ctx, venue, player, other_player, gateway):
        controller = get_admission_controller()
        gateway.add("pay_a1", ONE_HOUR_TOTAL_MINOR)
        gateway.add("pay_a2", ONE_HOUR_TOTAL_MINOR)
        controller.admit(venue, _range("09:00", "10:00"), player, "pay_a1", ONE_HOUR_TOTAL)
        r = controller.admit(venue, _range("10:00", "11:00"), other_player, "pay_a2", ONE_HOUR_TOTAL)
        assert r.status == "confirmed"

    def test_tampered_gateway_amount_rejected(self, ctx, venue, player, gateway):
        """Payment for 2066.91 cannot buy a 2066.92 booking."""
        gateway.add("pay_short", EVENING_TOTAL_MINOR - 1)
        with pytest.raises(AmountMismatch):
            get_admission_controller().admit(venue, EVENING, player, "pay_short", EVENING_TOTAL)
        assert db.session.query(Reservation).count() == 0

    def test_client_expected_amount_must_match_server_price(self, ctx, venue, player, gateway):
        gateway.add("pay_cheap", 100)
        with pytest.raises(AmountMismatch):
            get_admission_controller().admit(venue, EVENING, player, "pay_cheap", Decimal("1.00"))
        assert gateway.calls == []

    def test_wrong_currency_rejected(self, ctx, venue, player, gateway):
        gateway.add("pay_usd", EVENING_TOTAL_MINOR, currency="USD")
        with pytest.raises(AmountMismatch):
            get_admission_controller().admit(venue, EVENING, player, "pay_usd", EVENING_TOTAL)

    def test_uncaptured_payment_rejected(self, ctx, venue, player, gateway):
        gateway.add("pay_created", EVENING_TOTAL_MINOR, status="created")
        with pytest.raises(PaymentNotCaptured):
            get_admission_controller().admit(venue, EVENING, player, "pay_created", EVENING_TOTAL)

    def test_unknown_payment_rejected(self, ctx, venue, player):
        with pytest.raises(PaymentInvalid):
            get_admission_controller().admit(venue, EVENING, player, "pay_missing", EVENING_TOTAL)

    def test_gateway_timeout_creates_nothing(self, ctx, venue, player, gateway):
        gateway.add("pay_slow", EVENING_TOTAL_MINOR)
        gateway.error = GatewayUnreachable("Payment gateway timed out")

        with pytest.raises(GatewayUnreachable) as exc:
            get_admission_controller().admit(venue, EVENING, player, "pay_slow", EVENING_TOTAL)

        assert exc.value.retryable is True
        assert db.session.query(Reservation).count() == 0

    def test_unverified_venue_rejected(self, ctx, make_venue, player, gateway):
        pending = make_venue(verified=False, active=False)
        gateway.add("pay_pending", EVENING_TOTAL_MINOR)
        with pytest.raises(VenueUnavailable):
            get_admission_controller().admit(pending, EVENING, player, "pay_pending", EVENING_TOTAL)

    @pytest.mark.parametrize("start,end", [("18:15", "19:15"), ("05:00", "07:00"), ("21:00", "23:00")])
    def test_range_outside_grid_rejected(self, ctx, venue, player, start, end):
        with pytest.raises(InvalidRange):
            get_admission_controller().admit(venue, _range(start, end), player, "pay_x", EVENING_TOTAL)

    def test_started_range_rejected(self, ctx, venue, player, clock):
        clock.now = datetime(2030, 6, 2, 18, 30)
        with pytest.raises(InvalidRange):
            get_admission_controller().admit(venue, EVENING, player, "pay_late", EVENING_TOTAL)


class TestPaymentBinding:
    """A payment reference pays for at most one reservation."""

    def test_replay_returns_same_reservation(self, ctx, venue, player, gateway):
        gateway.add("pay_replay", EVENING_TOTAL_MINOR)
        controller = get_admission_controller()
        first = controller.admit(venue, EVENING, player, "pay_replay", EVENING_TOTAL)

        again = controller.admit(venue, EVENING, player, "pay_replay", EVENING_TOTAL)

        assert again.id == first.id
        assert db.session.query(Reservation).count() == 1

    def test_reuse_for_other_range_rejected(self, ctx, venue, player, gateway):
        gateway.add("pay_reuse", EVENING_TOTAL_MINOR)
        controller = get_admission_controller()
        controller.admit(venue, EVENING, player, "pay_reuse", EVENING_TOTAL)

        with pytest.raises(PaymentInvalid):
            controller.admit(venue, _range("08:00", "10:00"), player, "pay_reuse", EVENING_TOTAL)

    def test_signed_checkout_is_admitted(self, ctx, venue, player, gateway):
        _, order = get_admission_controller().open_payment_order(venue, EVENING, Actor(player))
        gateway.add("pay_signed", EVENING_TOTAL_MINOR, order_id=order.reference)
        signature = gateway.sign(order.reference, "pay_signed")

        r = get_admission_controller().admit(
            venue, EVENING, player, "pay_signed", EVENING_TOTAL,
            order_id=order.reference, signature=signature,
        )
        assert r.status == "confirmed"

    def test_forged_signature_rejected(self, ctx, venue, player, gateway):
        gateway.add("pay_forged", EVENING_TOTAL_MINOR, order_id="order_1")
        with pytest.raises(PaymentInvalid):
            get_admission_controller().admit(
                venue, EVENING, player, "pay_forged", EVENING_TOTAL, order_id="order_1", signature="forged"
            )
        assert db.session.query(Reservation).count() == 0


class TestPaymentOrders:
    """Tests for AdmissionController.open_payment_order."""

    def test_order_for_server_price(self, ctx, venue, player, gateway):
        breakdown, order = get_admission_controller().open_payment_order(venue, EVENING, Actor(player))

        assert breakdown.total_charged == EVENING_TOTAL
        assert order.amount_minor == EVENING_TOTAL_MINOR
        opened = gateway.orders[0]
        assert opened["receipt"] == f"v{venue}-20300602-1800-u{player}"
        assert opened["notes"] == {
            "userId": str(player), "turfId": str(venue), "date": "2030-06-02", "start": "18:00", "end": "20:00",
        }

    def test_no_order_for_taken_range(self, ctx, venue, player, other_player, gateway):
        gateway.add("pay_first", EVENING_TOTAL_MINOR)
        get_admission_controller().admit(venue, EVENING, player, "pay_first", EVENING_TOTAL)

        with pytest.raises(SlotConflict):
            get_admission_controller().open_payment_order(venue, _range("19:00", "20:00"), Actor(other_player))
        assert gateway.orders == []

    def test_no_order_for_unverified_venue(self, ctx, make_venue, player, gateway):
        pending = make_venue(verified=False)
        with pytest.raises(VenueUnavailable):
            get_admission_controller().open_payment_order(pending, EVENING, Actor(player))
        assert gateway.orders == []


class TestConcurrentAdmission:
    """Exactly one of several overlapping admissions commits."""

    def test_exactly_one_of_many_threads_wins(self, app, venue, make_user, gateway):
        n = 6
        payers = [make_user(f"racer{i}@example.com") for i in range(n)]
        for i in range(n):
            gateway.add(f"pay_race{i}", EVENING_TOTAL_MINOR)

        barrier = threading.Barrier(n)
        lock = threading.Lock()
        outcomes = []

        def attempt(i):
            with app.app_context():
                controller = get_admission_controller()
                barrier.wait()
                try:
                    controller.admit(venue, EVENING, payers[i], f"pay_race{i}", EVENING_TOTAL)
                    result = "admitted"
                except SlotConflict:
                    result = "conflict"
                with lock:
                    outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert sorted(outcomes) == ["admitted"] + ["conflict"] * (n - 1)
        with app.app_context():
            assert db.session.query(Reservation).count() == 1

    def test_race_lost_after_verification_requires_refund(self, app, venue, player, other_player, gateway):
        """The other admission commits while this one is at the gateway."""
        gateway.add("pay_loser", ONE_HOUR_TOTAL_MINOR)
        gateway.add("pay_winner", ONE_HOUR_TOTAL_MINOR)

        def competing_admission(_ref):
            with app.app_context():
                get_admission_controller().admit(
                    venue, _range("09:30", "10:30"), other_player, "pay_winner", ONE_HOUR_TOTAL
                )

        gateway.on_fetch = competing_admission

        with app.app_context():
            with pytest.raises(SlotConflict) as exc:
                get_admission_controller().admit(
                    venue, _range("09:00", "10:00"), player, "pay_loser", ONE_HOUR_TOTAL
                )
            assert exc.value.refund_required is True
            assert exc.value.payment_ref == "pay_loser"

            rows = db.session.query(Reservation).all()
            assert [r.payment_reference for r in rows] == ["pay_winner"]

    def test_store_failure_after_verification(self, ctx, venue, player, gateway, monkeypatch):
        gateway.add("pay_lost", EVENING_TOTAL_MINOR)

        def broken_insert(self, entry, time_range):
            raise OperationalError("INSERT INTO reservations", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ReservationLedger, "insert_if_absent", broken_insert)

        with pytest.raises(LedgerWriteFailed) as exc:
            get_admission_controller().admit(venue, EVENING, player, "pay_lost", EVENING_TOTAL)

        assert exc.value.payment_ref == "pay_lost"
        assert exc.value.to_dict()["refund_required"] is True

    def test_rejected_row_is_not_reported_as_conflict(self, ctx, venue, gateway):
        """A row the store refuses for another reason is a write failure, not a lost race."""
        gateway.add("pay_orphan", EVENING_TOTAL_MINOR)

        with pytest.raises(LedgerWriteFailed) as exc:
            get_admission_controller().admit(venue, EVENING, None, "pay_orphan", EVENING_TOTAL)

        assert exc.value.payment_ref == "pay_orphan"
        assert db.session.query(Reservation).count() == 0


class TestLifecycle:
    """Tests for cancel, complete and QR check-in."""

    @pytest.fixture
    def booked(self, ctx, venue, player, gateway):
        gateway.add("pay_life", EVENING_TOTAL_MINOR)
        return get_admission_controller().admit(venue, EVENING, player, "pay_life", EVENING_TOTAL).id

    def test_cancel_frees_the_range(self, ctx, venue, player, other_player, gateway, booked):
        controller = get_admission_controller()
        cancelled = controller.cancel(booked, Actor(player), "plans changed")

        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "plans changed"
        assert controller.availability.unavailable_ranges(venue, BOOKING_DAY) == []

        gateway.add("pay_after", EVENING_TOTAL_MINOR)
        again = controller.admit(venue, EVENING, other_player, "pay_after", EVENING_TOTAL)
        assert again.status == "confirmed"

    def test_cancel_twice_is_invalid_transition(self, ctx, player, booked):
        controller = get_admission_controller()
        controller.cancel(booked, Actor(player))
        with pytest.raises(InvalidTransition):
            controller.cancel(booked, Actor(player))

    def test_cancel_after_start_refused(self, ctx, player, booked, clock):
        clock.now = datetime(2030, 6, 2, 18, 0)
        with pytest.raises(CancellationWindowClosed):
            get_admission_controller().cancel(booked, Actor(player))

    def test_stranger_cannot_cancel(self, ctx, other_player, booked):
        with pytest.raises(NotPermitted):
            get_admission_controller().cancel(booked, Actor(other_player))

    def test_owner_can_cancel(self, ctx, owner, booked):
        assert get_admission_controller().cancel(booked, Actor(owner)).status == "cancelled"

    def test_complete_twice_rejected(self, ctx, owner, booked):
        controller = get_admission_controller()
        done = controller.complete(booked, Actor(owner))
        assert done.status == "completed"
        assert done.checked_in_by == owner

        with pytest.raises(InvalidTransition):
            controller.complete(booked, Actor(owner))

    def test_completed_range_stays_unavailable(self, ctx, venue, owner, booked):
        controller = get_admission_controller()
        controller.complete(booked, Actor(owner))
        assert [r.time_range for r in controller.availability.unavailable_ranges(venue, BOOKING_DAY)] == [EVENING]

    def test_cancelled_cannot_complete(self, ctx, player, owner, booked):
        controller = get_admission_controller()
        controller.cancel(booked, Actor(player))
        with pytest.raises(InvalidTransition):
            controller.complete(booked, Actor(owner))

    def test_player_cannot_complete(self, ctx, player, booked):
        with pytest.raises(NotPermitted):
            get_admission_controller().complete(booked, Actor(player))

    def test_check_in_by_qr(self, ctx, owner, booked):
        payload = '{"type": "turf_booking", "bookingId": %d, "date": "2030-06-02"}' % booked
        assert get_admission_controller().check_in(payload, Actor(owner)).status == "completed"

    @pytest.mark.parametrize("payload", ["not json", '{"type": "wifi"}', '{"type": "turf_booking"}', "[1, 2]"])
    def test_foreign_qr_rejected(self, ctx, owner, booked, payload):
        with pytest.raises(InvalidQRCode):
            get_admission_controller().check_in(payload, Actor(owner))

    def test_qr_for_another_day_rejected(self, ctx, owner, booked):
        payload = '{"type": "turf_booking", "bookingId": %d, "date": "2030-06-03"}' % booked
        with pytest.raises(InvalidQRCode):
            get_admission_controller().check_in(payload, Actor(owner))


class TestHolds:
    """Owner holds share the claim mechanism with reservations."""

    def test_hold_blocks_admission(self, ctx, venue, owner, player, gateway):
        controller = get_admission_controller()
        controller.place_hold(venue, _range("18:30", "19:00"), Actor(owner), "maintenance")
        gateway.add("pay_blocked", EVENING_TOTAL_MINOR)

        with pytest.raises(SlotConflict):
            controller.admit(venue, EVENING, player, "pay_blocked", EVENING_TOTAL)
        assert gateway.calls == []

    def test_hold_cannot_overlap_reservation(self, ctx, venue, owner, player, gateway):
        controller = get_admission_controller()
        gateway.add("pay_first_h", EVENING_TOTAL_MINOR)
        controller.admit(venue, EVENING, player, "pay_first_h", EVENING_TOTAL)
        with pytest.raises(SlotConflict):
            controller.place_hold(venue, _range("19:00", "21:00"), Actor(owner))

    def test_release_hold_frees_range(self, ctx, venue, owner):
        controller = get_admission_controller()
        hold = controller.place_hold(venue, _range("07:00", "08:00"), Actor(owner))
        controller.release_hold(hold.id, Actor(owner))
        assert controller.availability.unavailable_ranges(venue, BOOKING_DAY) == []

    def test_player_cannot_hold(self, ctx, venue, player):
        with pytest.raises(NotPermitted):
            get_admission_controller().place_hold(venue, _range("07:00", "08:00"), Actor(player))

    def test_admin_can_hold_any_venue(self, ctx, venue, admin):
        hold = get_admission_controller().place_hold(venue, _range("07:00", "08:00"), Actor(admin, is_admin=True))
        assert hold.id is not None

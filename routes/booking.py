from decimal import Decimal, InvalidOperation

from flask import Blueprint, g, jsonify, request

from models import db
from models.user import User
from security.rbac import is_admin, require_roles
from services.errors import BookingError, InvalidRequest, NotPermitted, ReservationNotFound
from services.pricing import from_minor_units
from services.time_range import TimeRange, parse_date
from utils.audit import log_event
from utils.auth_context import current_actor, login_required
from utils.booking_context import get_admission_controller, get_ledger

booking_bp = Blueprint("booking", __name__)


def reservation_json(r) -> dict:
    return {
        "id": r.id,
        "venue_id": r.venue_id,
        "payer_id": r.payer_id,
        "date": r.date.isoformat(),
        "start": r.start_time.strftime("%H:%M"),
        "end": r.end_time.strftime("%H:%M"),
        "status": r.status,
        "amounts": {
            "base_amount": str(from_minor_units(r.base_amount)),
            "platform_commission": str(from_minor_units(r.platform_commission)),
            "gateway_fee": str(from_minor_units(r.gateway_fee)),
            "total_charged": str(from_minor_units(r.total_charged)),
            "owner_share": str(from_minor_units(r.owner_share)),
            "platform_share": str(from_minor_units(r.platform_share)),
        },
        "currency": r.currency,
        "payment_reference": r.payment_reference,
        "payment_provider": r.payment_provider,
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "cancelled_at": r.cancelled_at.isoformat() if r.cancelled_at else None,
        "cancel_reason": r.cancel_reason,
        "completed_at": r.completed_at.isoformat() if r.completed_at else None,
    }


def _parse_amount(value):
    if isinstance(value, bool):
        raise InvalidRequest("expected_amount must be a decimal amount")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequest("expected_amount must be a decimal amount")
    if not amount.is_finite():
        raise InvalidRequest("expected_amount must be a decimal amount")
    return amount


def _payer_id(value) -> int:
    if value is None:
        return g.user.id
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidRequest("payer_id must be a user id")
    # admins may record a booking on behalf of a player
    if value != g.user.id and not is_admin():
        raise NotPermitted("Cannot book on behalf of another user")
    if db.session.get(User, value) is None:
        raise InvalidRequest("payer_id does not name a user")
    return value


def _optional_str(data, key):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequest(f"{key} must be a string")
    return value.strip() or None


# ---------- PLAYERS: admit a paid booking (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    venue_id = data.get("venue_id")
    payment_ref = data.get("payment_ref")
    payment_ref = payment_ref.strip() if isinstance(payment_ref, str) else ""
    if not isinstance(venue_id, int) or isinstance(venue_id, bool) or not payment_ref:
        return jsonify(error="INVALID_REQUEST", message="venue_id and payment_ref are required"), 400

    payer_id = _payer_id(data.get("payer_id"))
    # from the gateway checkout, when it went through POST /payments/orders
    order_id = _optional_str(data, "order_id")
    signature = _optional_str(data, "signature")

    time_range = TimeRange.parse(data.get("date"), data.get("start"), data.get("end"))
    controller = get_admission_controller()

    if data.get("expected_amount") is not None:
        expected = _parse_amount(data.get("expected_amount"))
    else:
        expected = controller.quote(venue_id, time_range).total_charged

    try:
        reservation = controller.admit(
            venue_id, time_range, payer_id, payment_ref, expected,
            order_id=order_id, signature=signature,
        )
    except BookingError as e:
        log_event(
            "BOOKING_REJECTED", user_id=g.user.id, entity="venue", entity_id=venue_id,
            metadata={"code": e.code.value, "payment_ref": payment_ref, **time_range.to_dict()},
        )
        raise

    log_event(
        "BOOKING_ADMIT", user_id=g.user.id, entity="reservation", entity_id=reservation.id,
        metadata={"payment_ref": payment_ref, "payer_id": payer_id},
    )
    return jsonify(reservation_json(reservation)), 201


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")  # confirmed/cancelled/completed
    rows = get_ledger().reservations_of(g.user.id, status=status)
    return jsonify([reservation_json(r) for r in rows]), 200


@booking_bp.get("/bookings/<int:reservation_id>")
@login_required
def get_booking(reservation_id: int):
    reservation = get_ledger().get(reservation_id)
    if reservation is None:
        raise ReservationNotFound(reservation_id)
    venue = get_admission_controller().venue(reservation.venue_id)
    if g.user.id not in (reservation.payer_id, venue.owner_user_id) and not is_admin():
        # don't leak other players' bookings
        raise ReservationNotFound(reservation_id)
    return jsonify(reservation_json(reservation)), 200


# ---------- PLAYERS / OWNERS: cancel before start ----------
@booking_bp.post("/bookings/<int:reservation_id>/cancel")
@login_required
def cancel_booking(reservation_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:120] or None

    reservation = get_admission_controller().cancel(reservation_id, current_actor(), reason)

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="reservation", entity_id=reservation_id,
              metadata={"reason": reason})
    return jsonify(reservation_json(reservation)), 200


# ---------- OWNERS: check-in ----------
@booking_bp.post("/bookings/<int:reservation_id>/complete")
@require_roles("OWNER", "ADMIN")
def complete_booking(reservation_id: int):
    reservation = get_admission_controller().complete(reservation_id, current_actor())
    log_event("BOOKING_COMPLETE", user_id=g.user.id, entity="reservation", entity_id=reservation_id)
    return jsonify(reservation_json(reservation)), 200


@booking_bp.post("/bookings/check-in")
@require_roles("OWNER", "ADMIN")
def check_in():
    data = request.get_json(silent=True) or {}
    reservation = get_admission_controller().check_in(data.get("qr") or "", current_actor())
    log_event("BOOKING_CHECK_IN", user_id=g.user.id, entity="reservation", entity_id=reservation.id)
    return jsonify(reservation_json(reservation)), 200


# ---------- OWNERS/ADMIN: bookings of a venue ----------
@booking_bp.get("/venues/<int:venue_id>/bookings")
@require_roles("OWNER", "ADMIN")
def venue_bookings(venue_id: int):
    venue = get_admission_controller().venue(venue_id)
    if venue.owner_user_id != g.user.id and not is_admin():
        raise NotPermitted("Not your venue")

    date_str = request.args.get("date")
    day = parse_date(date_str) if date_str else None
    rows = get_ledger().reservations_for(venue_id, day)
    return jsonify([reservation_json(r) for r in rows]), 200

from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import Blueprint, g, jsonify, request

from models import db
from models.venue import Venue
from security.rbac import is_admin, require_roles
from services.errors import InvalidRate, NotPermitted, VenueNotFound
from services.pricing import from_minor_units, to_minor_units
from utils.audit import log_event
from utils.auth_context import login_required
from utils.logging_config import get_logger

venues_bp = Blueprint("venues", __name__)
logger = get_logger().bind(log_type="admin")


def _status(v: Venue) -> str:
    if v.is_verified:
        return "VERIFIED"
    if v.rejected_reason:
        return "REJECTED"
    return "PENDING"


def _venue_json(v: Venue) -> dict:
    return {
        "id": v.id,
        "name": v.name,
        "location": v.location,
        "sport": v.sport,
        "hourly_rate": str(from_minor_units(v.hourly_rate)),
        "is_active": v.is_active,
        "status": _status(v),
        "owner_user_id": v.owner_user_id,
        "verified_at": v.verified_at.isoformat() if v.verified_at else None,
        "rejected_reason": v.rejected_reason,
    }


def _parse_rate(value) -> int:
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRate("hourly_rate must be a decimal amount")
    if not rate.is_finite():
        raise InvalidRate("hourly_rate must be a decimal amount")
    # checked after rounding so sub-paisa rates cannot store as zero
    minor = to_minor_units(rate)
    if minor <= 0:
        raise InvalidRate("Hourly rate must be positive")
    return minor


def _get_venue(venue_id: int) -> Venue:
    venue = db.session.get(Venue, venue_id)
    if venue is None:
        raise VenueNotFound(venue_id)
    return venue


def _get_owned_venue(venue_id: int) -> Venue:
    venue = _get_venue(venue_id)
    if venue.owner_user_id != g.user.id and not is_admin():
        raise NotPermitted("Not your venue")
    return venue


# ---------- PLAYERS: browse ----------
@venues_bp.get("/venues")
@login_required
def list_venues():
    q = Venue.query
    if request.args.get("mine"):
        q = q.filter_by(owner_user_id=g.user.id)
    else:
        q = q.filter_by(is_active=True, is_verified=True)

    sport = (request.args.get("sport") or "").strip()
    if sport:
        q = q.filter(Venue.sport == sport)

    rows = q.order_by(Venue.name.asc()).all()
    return jsonify([_venue_json(v) for v in rows]), 200


@venues_bp.get("/venues/<int:venue_id>")
@login_required
def get_venue(venue_id: int):
    return jsonify(_venue_json(_get_venue(venue_id))), 200


# ---------- OWNERS: register (pending until an admin verifies) ----------
@venues_bp.post("/venues")
@require_roles("OWNER", "ADMIN")
def register_venue():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    location = (data.get("location") or "").strip()
    sport = (data.get("sport") or "").strip() or None

    if not name or not location or data.get("hourly_rate") is None:
        return jsonify(error="INVALID_REQUEST", message="name, location and hourly_rate are required"), 400

    venue = Venue(
        name=name[:120],
        location=location[:160],
        sport=sport,
        hourly_rate=_parse_rate(data.get("hourly_rate")),
        owner_user_id=g.user.id,
        is_active=False,
        is_verified=False,
    )
    db.session.add(venue)
    db.session.commit()

    log_event("VENUE_REGISTER_SUBMIT", user_id=g.user.id, entity="venue", entity_id=venue.id)
    return jsonify(_venue_json(venue)), 201


@venues_bp.post("/venues/<int:venue_id>/active")
@require_roles("OWNER", "ADMIN")
def set_active(venue_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("is_active"), bool):
        return jsonify(error="INVALID_REQUEST", message="is_active must be true or false"), 400

    venue = _get_owned_venue(venue_id)
    venue.is_active = data["is_active"]
    db.session.commit()

    log_event("VENUE_SET_ACTIVE", user_id=g.user.id, entity="venue", entity_id=venue_id,
              metadata={"is_active": venue.is_active})
    return jsonify(_venue_json(venue)), 200


@venues_bp.post("/venues/<int:venue_id>/rate")
@require_roles("OWNER", "ADMIN")
def set_rate(venue_id: int):
    data = request.get_json(silent=True) or {}
    venue = _get_owned_venue(venue_id)
    old_rate = venue.hourly_rate
    # existing reservations keep the amounts they were admitted with
    venue.hourly_rate = _parse_rate(data.get("hourly_rate"))
    db.session.commit()

    log_event("VENUE_SET_RATE", user_id=g.user.id, entity="venue", entity_id=venue_id,
              metadata={"old": old_rate, "new": venue.hourly_rate})
    return jsonify(_venue_json(venue)), 200


# ---------- ADMIN: verification ----------
@venues_bp.post("/admin/venues/<int:venue_id>/verify")
@require_roles("ADMIN")
def verify_venue(venue_id: int):
    venue = _get_venue(venue_id)
    venue.is_verified = True
    venue.is_active = True
    venue.verified_by = g.user.id
    venue.verified_at = datetime.utcnow()
    venue.rejected_reason = None
    db.session.commit()

    logger.info(f"Venue verified | venue={venue_id} | by={g.user.id}")
    log_event("ADMIN_VENUE_VERIFY", user_id=g.user.id, entity="venue", entity_id=venue_id)
    return jsonify(_venue_json(venue)), 200


@venues_bp.post("/admin/venues/<int:venue_id>/reject")
@require_roles("ADMIN")
def reject_venue(venue_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:255] or "Rejected"

    venue = _get_venue(venue_id)
    venue.is_verified = False
    venue.is_active = False
    venue.verified_by = g.user.id
    venue.verified_at = None
    venue.rejected_reason = reason
    db.session.commit()

    logger.info(f"Venue rejected | venue={venue_id} | by={g.user.id}")
    log_event("ADMIN_VENUE_REJECT", user_id=g.user.id, entity="venue", entity_id=venue_id,
              metadata={"reason": reason})
    return jsonify(_venue_json(venue)), 200

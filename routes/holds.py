from flask import Blueprint, g, jsonify, request

from security.rbac import is_admin, require_roles
from services.errors import NotPermitted
from services.time_range import TimeRange, parse_date
from utils.audit import log_event
from utils.auth_context import current_actor
from utils.booking_context import get_admission_controller, get_ledger

holds_bp = Blueprint("holds", __name__)


def _hold_json(h) -> dict:
    return {
        "id": h.id,
        "venue_id": h.venue_id,
        "date": h.date.isoformat(),
        "start": h.start_time.strftime("%H:%M"),
        "end": h.end_time.strftime("%H:%M"),
        "placed_by": h.placed_by,
        "reason": h.reason,
        "created_at": h.created_at.isoformat() if h.created_at else None,
    }


# ---------- OWNERS/ADMIN: lock a range (walk-in, phone booking, maintenance) ----------
@holds_bp.post("/venues/<int:venue_id>/holds")
@require_roles("OWNER", "ADMIN")
def place_hold(venue_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:160] or None
    time_range = TimeRange.parse(data.get("date"), data.get("start"), data.get("end"))

    hold = get_admission_controller().place_hold(venue_id, time_range, current_actor(), reason)

    log_event("HOLD_PLACE", user_id=g.user.id, entity="hold", entity_id=hold.id,
              metadata={"venue_id": venue_id, "reason": reason, **time_range.to_dict()})
    return jsonify(_hold_json(hold)), 201


@holds_bp.delete("/holds/<int:hold_id>")
@require_roles("OWNER", "ADMIN")
def release_hold(hold_id: int):
    get_admission_controller().release_hold(hold_id, current_actor())
    log_event("HOLD_RELEASE", user_id=g.user.id, entity="hold", entity_id=hold_id)
    return jsonify(message="Hold released"), 200


@holds_bp.get("/venues/<int:venue_id>/holds")
@require_roles("OWNER", "ADMIN")
def list_holds(venue_id: int):
    venue = get_admission_controller().venue(venue_id)
    if venue.owner_user_id != g.user.id and not is_admin():
        raise NotPermitted("Not your venue")

    date_str = request.args.get("date")
    day = parse_date(date_str) if date_str else None
    return jsonify([_hold_json(h) for h in get_ledger().holds_for(venue_id, day)]), 200

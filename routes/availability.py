from flask import Blueprint, jsonify, request

from services.time_range import TimeRange, parse_date
from utils.auth_context import login_required
from utils.booking_context import get_admission_controller

availability_bp = Blueprint("availability", __name__, url_prefix="/venues")


# ---------- PLAYERS: which ranges are still free ----------
@availability_bp.get("/<int:venue_id>/availability")
@login_required
def venue_availability(venue_id: int):
    day = parse_date(request.args.get("date"))
    controller = get_admission_controller()
    controller.venue(venue_id)  # 404 for unknown venues

    index = controller.availability
    unavailable = index.unavailable_ranges(venue_id, day)
    return jsonify(
        venue_id=venue_id,
        date=day.isoformat(),
        unavailable=[r.time_range.to_dict() for r in unavailable],
        slots=index.slot_grid(venue_id, day, unavailable),
    ), 200


# ---------- PLAYERS: server-side price for a range ----------
@availability_bp.get("/<int:venue_id>/quote")
@login_required
def venue_quote(venue_id: int):
    time_range = TimeRange.parse(
        request.args.get("date"), request.args.get("start"), request.args.get("end")
    )
    breakdown = get_admission_controller().quote(venue_id, time_range)
    return jsonify(venue_id=venue_id, **time_range.to_dict(), amounts=breakdown.to_dict()), 200

from flask import Blueprint, current_app, g, jsonify, request

from services.errors import InvalidRequest
from services.pricing import from_minor_units
from services.time_range import TimeRange
from utils.audit import log_event
from utils.auth_context import current_actor, login_required
from utils.booking_context import get_admission_controller

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


# ---------- PLAYERS: open a gateway order for the server price ----------
@payments_bp.post("/orders")
@login_required
def create_order():
    data = request.get_json(silent=True) or {}
    venue_id = data.get("venue_id")
    if not isinstance(venue_id, int) or isinstance(venue_id, bool):
        raise InvalidRequest("venue_id is required")

    time_range = TimeRange.parse(data.get("date"), data.get("start"), data.get("end"))
    breakdown, order = get_admission_controller().open_payment_order(venue_id, time_range, current_actor())

    log_event(
        "PAYMENT_ORDER_CREATED", user_id=g.user.id, entity="venue", entity_id=venue_id,
        metadata={"order_id": order.reference, "amount": order.amount_minor, **time_range.to_dict()},
    )

    body = {
        "order_id": order.reference,
        "provider": current_app.extensions["payment_gateway"].name,
        "amount": str(from_minor_units(order.amount_minor)),
        "currency": order.currency,
        "venue_id": venue_id,
        **time_range.to_dict(),
        "amounts": breakdown.to_dict(),
    }
    if order.checkout_url:
        body["checkout_url"] = order.checkout_url
    if body["provider"] == "razorpay":
        # public key for the checkout widget
        body["key_id"] = current_app.config.get("RAZORPAY_KEY_ID")
    return jsonify(body), 201

from flask import Blueprint, g, jsonify

from security.session import bearer_token, revoke_session
from utils.audit import log_event
from utils.auth_context import login_required

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

# Sign-in itself (phone / Google / email) lives with the external identity
# provider; tokens are minted by `flask create-user`.


@auth_bp.get("/me")
@login_required
def me():
    u = g.user
    return jsonify(
        id=u.id,
        email=u.email,
        full_name=u.full_name,
        phone_number=u.phone_number,
        roles=sorted(u.role_names()),
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(bearer_token())
    log_event("LOGOUT", user_id=g.user.id, entity="user", entity_id=g.user.id)
    return jsonify(message="Logged out"), 200

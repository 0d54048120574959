from functools import wraps
from flask import g, jsonify

ADMIN_ROLES = {"ADMIN", "SUPER_ADMIN"}

def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return any(r.name == role_name for r in user.roles)

def is_admin() -> bool:
    user = getattr(g, "user", None)
    return bool(user) and bool(user.role_names() & ADMIN_ROLES)

def require_roles(*role_names: str):
    """
    Usage: @require_roles("OWNER", "ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="AUTHENTICATION_REQUIRED", message="Authentication required"), 401

            user_roles = user.role_names()
            if "SUPER_ADMIN" not in user_roles and not user_roles.intersection(set(role_names)):
                return jsonify(error="NOT_PERMITTED", message="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator

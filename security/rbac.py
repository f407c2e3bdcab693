from functools import wraps
from flask import g, jsonify

from models.account import Role


def require_roles(*roles: Role):
    """
    Usage: @require_roles(Role.ADMIN)
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            account = getattr(g, "account", None)
            if account is None:
                return jsonify(error="Authentication required"), 401

            if account.role not in roles:
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator

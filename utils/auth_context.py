from functools import wraps
from flask import g, jsonify, request

from security.access import get_access_control
from security.errors import AuthenticationError


def bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_account():
    g.account = None
    g.session_token = None
    g.auth_error = None

    token = bearer_token()
    if not token:
        return
    try:
        g.account = get_access_control().authenticate(token)
    except AuthenticationError as exc:
        g.auth_error = exc
        return
    g.session_token = token


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "account", None) is None:
            error = getattr(g, "auth_error", None)
            if error is not None:
                return jsonify(error=error.message), error.status_code
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper

# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-User-Id"


def _parse_actor(raw):
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise ValueError(f"{ACTOR_HEADER} must be a positive integer")
    return int(raw)


def with_actor(f):
    """
    Establish the acting user for the request.

    Authentication happens upstream; this only reads the user id the gateway
    forwards in the X-User-Id header and stores it as g.actor_id (None when
    the header is absent). The id is used for attribution, never for access
    decisions.

    Returns 400 if the header is present but not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.actor_id = _parse_actor(request.headers.get(ACTOR_HEADER))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return f(*args, **kwargs)

    return decorated_function

# Overview: Translation of service-layer errors into JSON error responses.

from flask import current_app, jsonify

from ..extensions import db
from ..validation import (
    InsufficientStockError,
    InternalError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)


def json_error(exc: Exception):
    """
    Map a service exception to (response, status).

    The session is rolled back first so a failed request never leaks pending
    rows into the next one.
    """
    db.session.rollback()

    if isinstance(exc, InsufficientStockError):
        return jsonify({
            "error": str(exc),
            "available": str(exc.available),
            "requested": str(exc.requested),
        }), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, (ValidationError, InvalidOperationError)):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, InternalError):
        current_app.logger.error("Transaction failed: %s", exc)
        return jsonify({"error": "Transaction failed, please retry"}), 500

    current_app.logger.exception("Unexpected error")
    return jsonify({"error": "Internal server error"}), 500


def parse_bool_arg(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")

# Overview: Request decorators for API routes (caller identity, error mapping).

from functools import wraps
from flask import request, jsonify, g, current_app

from .extensions import db
from .models import User
from .services.errors import (
    DataIntegrityError, InvalidStateError, NotFoundError, TreasuryError,
)
from .validation import ValidationError


def require_user(f):
    """
    Resolve the acting operator from the X-User-Id header.

    Sets g.current_user. Authentication happens upstream; this only needs a
    user identifier to stamp actor fields.

    Returns 401 if the header is missing or names an unknown/inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-User-Id", "").strip()
        if not raw.isdigit():
            return jsonify({"error": "X-User-Id header required"}), 401

        user = db.session.get(User, int(raw))
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: Exception):
    """Map service and validation errors to JSON responses."""
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "kind": "ValidationError"}), 400
    if isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, InvalidStateError):
        status = 409
    elif isinstance(exc, DataIntegrityError):
        body = {"error": exc.message, "kind": type(exc).__name__}
        if exc.transaction_id is not None:
            body["transaction_id"] = exc.transaction_id
        if exc.service_id is not None:
            body["service_id"] = exc.service_id
        return jsonify(body), 422
    else:
        # RequestError and other caller mistakes
        status = 400
    return jsonify({"error": exc.message, "kind": type(exc).__name__}), status


def handle_service_errors(f):
    """
    Translate treasury errors raised by a route into JSON error responses.

    Anything unexpected is logged with its traceback and reported as a 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (TreasuryError, ValidationError) as exc:
            return error_response(exc)
        except Exception:
            current_app.logger.exception("Unhandled error in %s", request.path)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function

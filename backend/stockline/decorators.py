# Overview: Route decorators that map ledger failures to structured JSON responses.

from functools import wraps
from flask import current_app, jsonify, request

from .errors import LedgerError, ValidationError
from .extensions import db


def handle_ledger_errors(f):
    """
    Translate service failures into JSON responses.

    - LedgerError subclasses -> error.to_dict() with error.status_code
    - anything else -> logged with traceback, generic 500

    Services already rolled back their own transaction; the session is
    rolled back again here so a failed request never leaks state into
    the next one.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LedgerError as e:
            db.session.rollback()
            if e.status_code >= 500:
                current_app.logger.error("%s %s failed: %s", request.method, request.path, e.message)
            else:
                current_app.logger.info("%s %s rejected: %s", request.method, request.path, e.message)
            return jsonify(e.to_dict()), e.status_code
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unexpected error in %s %s", request.method, request.path)
            return jsonify({"error": "internal_error", "message": "Unexpected error", "details": {}}), 500

    return decorated_function


def json_body() -> dict:
    """Request JSON object or {}; a non-object body is a validation failure."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def pagination_args() -> tuple[int | None, int | None, int]:
    """(page, per_page, max_per_page) from the query string and app config."""
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    max_per_page = current_app.config.get("STOCKLINE_MAX_PAGE_SIZE", 100)
    if page is not None and per_page is None:
        per_page = current_app.config.get("STOCKLINE_DEFAULT_PAGE_SIZE", 10)
    return page, per_page, max_per_page

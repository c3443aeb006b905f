# Overview: Typed API errors and the JSON error handlers that render them.

"""
Every error a service raises carries its own HTTP status. Routes let these
propagate; the handlers registered by register_error_handlers() turn them into
a JSON body of the shape:

    {"message": "...", "errors": [{"param": "name", "msg": "..."}]}

Anything that is not an ApiError is logged with its traceback and reported to
the client as a generic 500.
"""

from __future__ import annotations

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from .extensions import db


class ApiError(Exception):
    """Base class for errors that map to a client-visible HTTP status."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None, *, errors: list[dict] | None = None, payload: dict | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.errors = errors
        self.payload = payload

    def to_dict(self) -> dict:
        body = dict(self.payload or ())
        body["message"] = self.message
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ApiError, ValueError):
    """400-level input problem."""

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: str | None = None, *, param: str | None = None, errors: list[dict] | None = None, payload: dict | None = None):
        if errors is None and param is not None:
            errors = [{"param": param, "msg": message or self.default_message}]
        super().__init__(message, errors=errors, payload=payload)


class ConflictError(ApiError, ValueError):
    """Uniqueness or referential conflict (duplicate phone, brand still in use)."""

    status_code = 400
    default_message = "Conflict"

    def __init__(self, message: str | None = None, *, param: str | None = None, errors: list[dict] | None = None, payload: dict | None = None):
        if errors is None and param is not None:
            errors = [{"param": param, "msg": message or self.default_message}]
        super().__init__(message, errors=errors, payload=payload)


class AuthenticationError(ApiError):
    status_code = 401
    default_message = "Authentication required"


class PermissionDenied(ApiError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Resource not found"


def register_error_handlers(app) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        # Discard half-applied changes so they cannot ride along with a later commit
        db.session.rollback()
        if error.status_code >= 500:
            current_app.logger.error("ApiError [%s]: %s", error.status_code, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        # Unknown routes, wrong methods, malformed JSON bodies
        return jsonify({"message": error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled exception")
        return jsonify({"message": "Server error"}), 500

# nitionz/errors.py
"""
Error taxonomy shared by the services and the JSON API.

Services raise these; the app factory registers handlers that turn them into
``{"success": false, "error": "..."}`` responses with a fitting status code.
"""

from __future__ import annotations

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException


class PlatformError(Exception):
    status_code = 500

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(PlatformError):
    """Missing or malformed input (empty transaction id, empty rejection reason...)."""

    status_code = 400


class NotFoundError(PlatformError):
    status_code = 404


class InvalidStateError(PlatformError):
    """Transition attempted from a status that does not permit it."""

    status_code = 409


class AccountLockedError(PlatformError):
    """Too many failed sign-ins; the account is locked for a while."""

    status_code = 429


class UpstreamError(PlatformError):
    """Database or blob store failure."""

    status_code = 502


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PlatformError)
    def handle_platform_error(exc: PlatformError):
        if isinstance(exc, UpstreamError):
            app.logger.warning("Upstream failure: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    # ======================
    # HTTP errors as JSON (401/403/404/405/413/429...)
    # ======================
    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = exc.code or 500
        if code == 429:
            message = "Too many requests. Please try again later."
        elif code == 413:
            message = "File too large."
        else:
            message = exc.description or exc.name
        return jsonify({"success": False, "error": message}), code

"""
API error taxonomy and the Flask handlers that render it.

Every failure leaves the server as {"error": <kind>, "message": <text>} with
the HTTP status of its kind.
"""

import logging
from typing import Optional, Tuple

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from eventify.crm.gateway import CRMError


class APIError(Exception):
    status_code = 500
    error = "Server Error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None) -> None:
        self.message = message or self.default_message
        if error:
            self.error = error
        super().__init__(self.message)

    def to_response(self) -> Tuple[Response, int]:
        return jsonify({"error": self.error, "message": self.message}), self.status_code


class BadRequest(APIError):
    status_code = 400
    error = "Bad Request"
    default_message = "Invalid request"


class Unauthorized(APIError):
    status_code = 401
    error = "Unauthorized"
    default_message = "Authentication required"


class Forbidden(APIError):
    status_code = 403
    error = "Forbidden"
    default_message = "Permission denied"


class NotFound(APIError):
    status_code = 404
    error = "Not Found"
    default_message = "Resource not found"


class Conflict(APIError):
    status_code = 409
    error = "Conflict"
    default_message = "Request conflicts with existing data"


class UpstreamFailure(APIError):
    status_code = 502
    error = "Upstream Failure"
    default_message = "The CRM rejected the request"


class ServerError(APIError):
    pass


CRM_STATUS_MAP = {
    400: BadRequest,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
}


def from_crm_error(exc: CRMError, error: Optional[str] = None) -> APIError:
    """
    Map a gateway failure to the closest API error using the CRM's status.

    No status means the CRM was never reached (or answered with garbage),
    which is a server error on our side.
    """
    if exc.status_code is None:
        return ServerError(exc.message, error=error)
    error_cls = CRM_STATUS_MAP.get(exc.status_code, UpstreamFailure)
    return error_cls(exc.message, error=error)


def register_error_handlers(app: Flask) -> None:
    """Attach the JSON error handlers to an application."""

    @app.errorhandler(APIError)
    def handle_api_error(exc: APIError) -> Tuple[Response, int]:
        return exc.to_response()

    @app.errorhandler(CRMError)
    def handle_crm_error(exc: CRMError) -> Tuple[Response, int]:
        return from_crm_error(exc).to_response()

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException) -> Tuple[Response, int]:
        return jsonify({"error": exc.name, "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception) -> Tuple[Response, int]:
        logging.exception(f"Unhandled error: {exc}")
        return ServerError().to_response()

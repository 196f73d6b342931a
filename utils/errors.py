import logging
from typing import List, Optional

from flask import Flask, jsonify

logger = logging.getLogger(__name__)


class MarksServiceError(Exception):
    """Base error for the assessment/marks/timetable services.

    Every subclass maps to one HTTP status and a stable snake_case ``error``
    code so the console can show ``message`` to the user as-is.
    """

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(MarksServiceError):
    """Client-fixable input problem."""

    status_code = 400
    code = "validation_failed"


class PreconditionError(MarksServiceError):
    """Operation attempted in an unsupported state."""

    status_code = 409
    code = "precondition_failed"


class NotFoundError(MarksServiceError):
    status_code = 404
    code = "not_found"


class TransientError(MarksServiceError):
    """Storage or network failure; safe for the user to retry."""

    status_code = 503
    code = "transient_failure"


def register_error_handlers(app: Flask):
    """Render service errors as JSON bodies with the matching status."""

    @app.errorhandler(MarksServiceError)
    def _handle_service_error(err: MarksServiceError):
        if err.status_code >= 500:
            logger.error(f"{err.code}: {err.message}")
        else:
            logger.info(f"{err.code}: {err.message}")
        return jsonify(err.to_dict()), err.status_code

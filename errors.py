"""
Error taxonomy for the API.

Every error the service raises on purpose is an ApiError subclass. The
exception handlers in main.py turn them into the shared error envelope,
so route code only ever raises.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ApiError(Exception):
    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        body = {
            "success": False,
            "error": self.message,
            "code": self.code,
            "timestamp": utc_now_iso(),
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"


class UnauthorizedError(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class DuplicateError(ApiError):
    status_code = 409
    code = "DUPLICATE"


class RateLimitedError(ApiError):
    status_code = 429
    code = "RATE_LIMITED"


class DataCorruptionError(ApiError):
    """The data file could not be read back. An operator should inspect the backups."""

    status_code = 500
    code = "DATA_CORRUPTION"


class InternalError(ApiError):
    status_code = 500
    code = "SERVER_ERROR"


# Store failures

class DocumentNotFoundError(DataCorruptionError):
    pass


class DocumentParseError(DataCorruptionError):
    pass


class StoreWriteError(InternalError):
    pass

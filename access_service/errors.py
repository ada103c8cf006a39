"""
Access Service errors.
Every error a route can surface derives from AccessError and is rendered by
the handler registered in create_app().
"""

from flask import jsonify


class AccessError(Exception):
    status_code = 500
    error_code = "INTERNAL"

    def __init__(self, message, payload=None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self):
        body = {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
        }
        body.update(self.payload)
        return body


class InvalidInput(AccessError):
    status_code = 400
    error_code = "INVALID_INPUT"


class Unauthorized(AccessError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class Forbidden(Unauthorized):
    """Authenticated, but not allowed to touch this resource."""
    status_code = 403
    error_code = "FORBIDDEN"


class NotFound(AccessError):
    status_code = 404
    error_code = "NOT_FOUND"


class Conflict(AccessError):
    status_code = 409
    error_code = "CONFLICT"


class ShiftConflict(Conflict):
    error_code = "SHIFT_CONFLICT"

    def __init__(self, existing_shift):
        super().__init__(
            "Guard already has an active shift",
            payload={"existingShift": existing_shift},
        )
        self.existing_shift = existing_shift


class Internal(AccessError):
    status_code = 500
    error_code = "INTERNAL"


class Misconfigured(Internal):
    error_code = "MISCONFIGURED"


class StoreUnavailable(Internal):
    status_code = 503
    error_code = "STORE_UNAVAILABLE"


def handle_access_error(error):
    return jsonify(error.to_dict()), error.status_code

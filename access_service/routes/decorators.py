import hmac
from functools import wraps

from flask import current_app, request
from flask_jwt_extended import get_jwt, verify_jwt_in_request

from access_service.errors import Forbidden, Unauthorized
from access_service.services.guard_credentials import GUARD_ROLE


def core():
    return current_app.extensions["access"]


def guard_required(fn):
    """Only a guard claim issued by /api/auth/guard-login gets through."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if get_jwt().get("role") != GUARD_ROLE:
            raise Unauthorized("Guard credentials required")
        return fn(*args, **kwargs)
    return wrapper


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("ADMIN_SECRET")
        if not expected:
            raise Forbidden("Admin endpoints are disabled")
        presented = request.headers.get("X-Admin-Secret", "")
        if not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
            raise Forbidden("Invalid admin secret")
        return fn(*args, **kwargs)
    return wrapper

"""
Audit Log - Access Service
Append-only trail of authorization decisions (accessHistory/) and
checkpoint attendance marks (attendance/).

Writes here are best-effort: the decision they describe has already been
taken, so a store failure is logged and reported as None instead of raised.
"""

import logging

from access_service.errors import InvalidInput, StoreUnavailable
from access_service.services.record_store import now_ms

logger = logging.getLogger(__name__)

HISTORY_PATH = "accessHistory"
ATTENDANCE_PATH = "attendance"


class AuditLog:
    def __init__(self, store, default_limit=50, max_limit=500):
        self.store = store
        self.default_limit = default_limit
        self.max_limit = max_limit

    def record_decision(self, authorized, reason, identity_id=None, token_value=None,
                        session_id=None, display_name=None, override_id=None,
                        guard_id=None, timestamp=None):
        entry = {
            "identityId": identity_id,
            "displayName": display_name,
            "tokenValue": token_value,
            "authorized": bool(authorized),
            "reason": reason,
            "sessionId": session_id,
            "timestamp": timestamp if timestamp is not None else now_ms(),
        }
        if override_id:
            entry["overrideId"] = override_id
        if guard_id:
            entry["guardId"] = guard_id

        try:
            entry_id = self.store.push(HISTORY_PATH, entry)
        except StoreUnavailable as e:
            logger.error("Audit write failed (authorized=%s, reason=%s): %s", authorized, reason, e)
            return None
        return {"id": entry_id, **entry}

    def mark_attendance(self, session_id, identity_id, event_type, token_value=None, timestamp=None):
        mark = {
            "sessionId": session_id,
            "identityId": identity_id,
            "type": event_type,
            "timestamp": timestamp if timestamp is not None else now_ms(),
        }
        if token_value:
            mark["tokenValue"] = token_value

        try:
            mark_id = self.store.push(ATTENDANCE_PATH, mark)
        except StoreUnavailable as e:
            logger.warning("Could not record attendance for %s in %s: %s", identity_id, session_id, e)
            return None
        return {"id": mark_id, **mark}

    def clamp_limit(self, limit):
        if limit is None or limit == "":
            return self.default_limit
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise InvalidInput("limit must be an integer")
        return max(0, min(limit, self.max_limit))

    def history(self, limit=None):
        """Most recent decisions first; ties on timestamp fall back to entry id."""
        limit = self.clamp_limit(limit)
        if limit == 0:
            return []
        rows = self.store.query(
            HISTORY_PATH,
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [{"id": key, **value} for key, value in rows]

    def attendance(self, session_id=None, limit=None):
        limit = self.clamp_limit(limit)
        if limit == 0:
            return []
        equal_to = ("sessionId", session_id) if session_id else None
        rows = self.store.query(
            ATTENDANCE_PATH,
            equal_to=equal_to,
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [{"id": key, **value} for key, value in rows]

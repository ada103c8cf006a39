"""
Override Authorizer - Access Service
A guard's manual "let them through". Trusted human decision: no token
state is read or changed here.
"""

import logging

from access_service.errors import InvalidInput
from access_service.services.record_store import now_ms

logger = logging.getLogger(__name__)

OVERRIDES_PATH = "authorizations"
MANUAL_OVERRIDE = "manual_override"


class OverrideAuthorizer:
    def __init__(self, store, audit_log, default_session_id="default"):
        self.store = store
        self.audit_log = audit_log
        self.default_session_id = default_session_id

    def authorize(self, guard_id, identity_id=None, token_value=None, session_id=None,
                  note=None, shift_id=None):
        identity_id = str(identity_id).strip() if identity_id else None
        token_value = str(token_value).strip() if token_value else None
        if not identity_id and not token_value:
            raise InvalidInput("Provide identityId or token", payload={"reason": "missing_input"})
        session_id = str(session_id or self.default_session_id)

        now = now_ms()
        override = {
            "guardId": guard_id,
            "shiftId": shift_id,
            "identityId": identity_id,
            "tokenValue": token_value,
            "sessionId": session_id,
            "note": note,
            "authorized": True,
            "timestamp": now,
        }
        auth_id = self.store.push(OVERRIDES_PATH, override)

        if identity_id:
            self.audit_log.mark_attendance(
                session_id, identity_id, "override", token_value=token_value, timestamp=now
            )
        self.audit_log.record_decision(
            authorized=True,
            reason=MANUAL_OVERRIDE,
            identity_id=identity_id,
            token_value=token_value,
            session_id=session_id,
            override_id=auth_id,
            guard_id=guard_id,
            timestamp=now,
        )
        logger.info("Guard %s issued override %s for %s", guard_id, auth_id, identity_id or "token holder")
        return {"id": auth_id, **override}

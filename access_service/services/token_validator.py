"""
Token Validator - Access Service
Resolves a scanned token value to an identity and claims it.

Tokens live in one of two shapes:
    accessTokens/{identityId}  -> {value, createdAt, expiresAt?, used, usedAt?}
    tokens/{value}             -> {identityId, createdAt, expiresAt?, used, usedAt?}
TokenLookup hides the difference; everything after lookup works on a
TokenMatch and never looks at the raw shape.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from access_service.errors import Misconfigured, StoreUnavailable
from access_service.services.record_store import now_ms

logger = logging.getLogger(__name__)

TOKENS_BY_IDENTITY = "accessTokens"
TOKENS_BY_VALUE = "tokens"
IDENTITIES = "identities"

SINGLE_USE = "single_use"
PERMANENT = "permanent"
TOKEN_POLICIES = (SINGLE_USE, PERMANENT)

# Decline reasons
OK = "ok"
MISSING_INPUT = "missing_input"
NOT_FOUND = "not_found"
ALREADY_USED = "already_used"
EXPIRED = "expired"
SERVER_ERROR = "server_error"
ID_NOT_FOUND = "id_not_found"
TOKEN_MISMATCH = "token_mismatch"


def mask_token(value):
    if not value:
        return "<empty>"
    return value[:6] + "..." if len(value) > 6 else value


def is_expired(record, now):
    expires_at = record.get("expiresAt")
    if expires_at is None:
        return False
    try:
        return now > int(float(expires_at))
    except (TypeError, ValueError, OverflowError):
        # Unreadable expiry fails closed
        logger.warning("Unreadable expiresAt %r, treating token as expired", expires_at)
        return True


@dataclass(frozen=True)
class TokenMatch:
    identity_id: str
    path: str
    record: Dict[str, Any]
    shape: str


@dataclass(frozen=True)
class ValidationResult:
    authorized: bool
    reason: str
    identity_id: Optional[str] = None
    token_value: Optional[str] = None

    def to_dict(self):
        body = {"authorized": self.authorized, "reason": self.reason}
        if self.identity_id:
            body["identityId"] = self.identity_id
        return body


class TokenLookup:
    """Finds a token record by its value in either storage shape."""

    def __init__(self, store):
        self.store = store

    def resolve(self, token_value) -> Optional[TokenMatch]:
        matches = self.store.query(TOKENS_BY_IDENTITY, equal_to=("value", token_value), limit=1)
        if matches:
            identity_id, record = matches[0]
            return TokenMatch(
                identity_id=identity_id,
                path=f"{TOKENS_BY_IDENTITY}/{identity_id}",
                record=record,
                shape=TOKENS_BY_IDENTITY,
            )

        if "/" in token_value:
            return None
        record = self.store.get(f"{TOKENS_BY_VALUE}/{token_value}")
        if record and record.get("identityId"):
            return TokenMatch(
                identity_id=record["identityId"],
                path=f"{TOKENS_BY_VALUE}/{token_value}",
                record=record,
                shape=TOKENS_BY_VALUE,
            )
        return None


class TokenValidator:
    def __init__(self, store, audit_log, policy=SINGLE_USE, default_session_id="default"):
        if policy not in TOKEN_POLICIES:
            raise Misconfigured(f"Unknown token policy {policy!r}; expected one of {TOKEN_POLICIES}")
        self.store = store
        self.audit_log = audit_log
        self.lookup = TokenLookup(store)
        self.policy = policy
        self.default_session_id = default_session_id

    def display_name(self, identity_id) -> Optional[str]:
        """Best-effort display name; None when absent or unreadable."""
        try:
            identity = self.store.get(f"{IDENTITIES}/{identity_id}")
        except StoreUnavailable as e:
            logger.warning("Display name lookup failed for %s: %s", identity_id, e)
            return None
        return (identity or {}).get("displayName")

    def _decline(self, reason, token_value, session_id, identity_id=None, now=None):
        logger.info("Declined token %s: %s", mask_token(token_value), reason)
        self.audit_log.record_decision(
            authorized=False,
            reason=reason,
            identity_id=identity_id,
            token_value=token_value,
            session_id=session_id,
            timestamp=now,
        )
        return ValidationResult(
            authorized=False, reason=reason, identity_id=identity_id, token_value=token_value
        )

    def validate(self, token_value, session_id=None, event_type="entry") -> ValidationResult:
        token_value = str(token_value or "").strip()
        session_id = str(session_id or self.default_session_id)
        event_type = str(event_type or "entry")
        now = now_ms()

        if not token_value:
            return self._decline(MISSING_INPUT, token_value, session_id, now=now)

        try:
            match = self.lookup.resolve(token_value)
            if match is None:
                return self._decline(NOT_FOUND, token_value, session_id, now=now)
            logger.debug("Token %s resolved to %s via %s",
                         mask_token(token_value), match.identity_id, match.shape)

            if self.policy == PERMANENT:
                if is_expired(match.record, now):
                    return self._decline(EXPIRED, token_value, session_id, match.identity_id, now)
                return self._grant(match, token_value, session_id, event_type, now)

            def claim(current):
                if current is None or current.get("used") or is_expired(current, now):
                    return None
                if match.shape == TOKENS_BY_IDENTITY and current.get("value") != token_value:
                    return None
                current["used"] = True
                current["usedAt"] = now
                return current

            result = self.store.transaction(match.path, claim)
        except StoreUnavailable:
            logger.exception("Token validation failed on the store")
            self.audit_log.record_decision(
                authorized=False, reason=SERVER_ERROR, token_value=token_value, session_id=session_id
            )
            raise

        if not result.committed:
            snapshot = result.snapshot
            if snapshot is None:
                reason = NOT_FOUND
            elif match.shape == TOKENS_BY_IDENTITY and snapshot.get("value") != token_value:
                # Reissued between lookup and claim
                reason = NOT_FOUND
            elif is_expired(snapshot, now):
                reason = EXPIRED
            else:
                reason = ALREADY_USED
            return self._decline(reason, token_value, session_id, match.identity_id, now)

        return self._grant(match, token_value, session_id, event_type, now)

    def _grant(self, match, token_value, session_id, event_type, now):
        self.audit_log.mark_attendance(
            session_id, match.identity_id, event_type, token_value=token_value, timestamp=now
        )
        self.audit_log.record_decision(
            authorized=True,
            reason=OK,
            identity_id=match.identity_id,
            token_value=token_value,
            session_id=session_id,
            display_name=self.display_name(match.identity_id),
            timestamp=now,
        )
        logger.info("Authorized %s for session %s (%s)", match.identity_id, session_id, event_type)
        return ValidationResult(
            authorized=True, reason=OK, identity_id=match.identity_id, token_value=token_value
        )

    def verify(self, identity_id, token_value) -> ValidationResult:
        """
        Legacy id + token comparison. Read-only: it never marks the token
        used, so it is only suitable for deployments running permanent
        tokens or for diagnostics.
        """
        identity_id = str(identity_id or "").strip()
        token_value = str(token_value or "").strip()

        if not identity_id or not token_value:
            return self._decline(MISSING_INPUT, token_value, None, identity_id or None)
        if "/" in identity_id:
            return self._decline(ID_NOT_FOUND, token_value, None, identity_id)

        record = self.store.get(f"{TOKENS_BY_IDENTITY}/{identity_id}")
        if record is None:
            return self._decline(ID_NOT_FOUND, token_value, None, identity_id)

        stored = str(record.get("value") or "")
        if not hmac.compare_digest(stored.encode("utf-8"), token_value.encode("utf-8")):
            return self._decline(TOKEN_MISMATCH, token_value, None, identity_id)

        self.audit_log.record_decision(
            authorized=True,
            reason=OK,
            identity_id=identity_id,
            token_value=token_value,
            display_name=self.display_name(identity_id),
        )
        return ValidationResult(
            authorized=True, reason=OK, identity_id=identity_id, token_value=token_value
        )

"""
Identity Directory - Access Service
Admin-side identities (identities/{id}) and token issuance.

Issuing never flips a consumed token back to unused: an identity whose
current token is still usable keeps it, anything else gets a new value.
"""

import logging
import secrets

from access_service.errors import InvalidInput, NotFound
from access_service.services.record_store import now_ms
from access_service.services.token_validator import (
    IDENTITIES,
    TOKENS_BY_IDENTITY,
    TOKENS_BY_VALUE,
    is_expired,
)

logger = logging.getLogger(__name__)

ROLES = ("student", "teacher", "admin")


def generate_token_value():
    return secrets.token_hex(12)


def generate_identity_id():
    return f"est-{secrets.token_hex(3)}"


class IdentityDirectory:
    def __init__(self, store):
        self.store = store

    def _valid_id(self, identity_id):
        identity_id = str(identity_id or "").strip()
        if not identity_id or "/" in identity_id:
            raise InvalidInput("Invalid identity id")
        return identity_id

    def value_holder(self, value):
        """Identity already holding `value` in either token shape, or None."""
        holders = self.store.query(TOKENS_BY_IDENTITY, equal_to=("value", value), limit=1)
        if holders:
            return holders[0][0]
        by_value = self.store.get(f"{TOKENS_BY_VALUE}/{value}")
        if by_value is not None:
            return by_value.get("identityId") or ""
        return None

    def get_identity(self, identity_id):
        identity_id = self._valid_id(identity_id)
        identity = self.store.get(f"{IDENTITIES}/{identity_id}")
        if identity is None:
            raise NotFound(f"Identity {identity_id} not found")
        token = self.store.get(f"{TOKENS_BY_IDENTITY}/{identity_id}") or {}
        return {
            "id": identity_id,
            "displayName": identity.get("displayName"),
            "role": identity.get("role"),
            "token": token.get("value"),
            "tokenUsed": bool(token.get("used")),
            "expiresAt": token.get("expiresAt"),
        }

    def list_identities(self):
        tokens = dict(self.store.children(TOKENS_BY_IDENTITY))
        return [
            {
                "id": identity_id,
                "displayName": identity.get("displayName"),
                "role": identity.get("role"),
                "token": tokens.get(identity_id, {}).get("value"),
            }
            for identity_id, identity in self.store.children(IDENTITIES)
        ]

    def upsert_identity(self, display_name, role, identity_id=None, token=None,
                        regenerate=False, ttl_seconds=None):
        if role is not None and role not in ROLES:
            raise InvalidInput(f"role must be one of {', '.join(ROLES)}")
        identity_id = self._valid_id(identity_id) if identity_id else generate_identity_id()

        self.store.update(f"{IDENTITIES}/{identity_id}", {
            "displayName": display_name,
            "role": role,
        })
        record = self.issue_token(identity_id, value=token, regenerate=regenerate,
                                  ttl_seconds=ttl_seconds)
        return {
            "id": identity_id,
            "displayName": display_name,
            "role": role,
            "token": record["value"],
            "expiresAt": record.get("expiresAt"),
        }

    def issue_token(self, identity_id, value=None, regenerate=False, ttl_seconds=None):
        """Token keyed by identity, the preferred shape."""
        identity_id = self._valid_id(identity_id)
        if value and "/" in value:
            raise InvalidInput("Token value may not contain '/'")
        if value:
            if self.store.get(f"{TOKENS_BY_VALUE}/{value}") is not None:
                raise InvalidInput("Token value already issued")
            holders = self.store.query(TOKENS_BY_IDENTITY, equal_to=("value", value), limit=1)
            if holders and holders[0][0] != identity_id:
                raise InvalidInput("Token value already issued to another identity")
        if ttl_seconds is not None and int(ttl_seconds) <= 0:
            raise InvalidInput("ttlSeconds must be positive")
        now = now_ms()
        path = f"{TOKENS_BY_IDENTITY}/{identity_id}"

        def issue(current):
            reusable = (
                current is not None
                and not current.get("used")
                and not is_expired(current, now)
                and (value is None or value == current.get("value"))
            )
            if reusable and not regenerate:
                return None
            record = {
                "value": value if value and value != (current or {}).get("value") else generate_token_value(),
                "createdAt": now,
                "used": False,
            }
            if ttl_seconds is not None:
                record["expiresAt"] = now + int(ttl_seconds) * 1000
            return record

        result = self.store.transaction(path, issue)
        if result.committed:
            logger.info("Issued new token for %s", identity_id)
        return result.snapshot

    def issue_token_by_value(self, identity_id, value=None, ttl_seconds=None):
        """Token keyed by its own value (tokens/{value}), the alternate shape."""
        identity_id = self._valid_id(identity_id)
        value = value or generate_token_value()
        if "/" in value:
            raise InvalidInput("Token value may not contain '/'")
        if self.value_holder(value) is not None:
            raise InvalidInput("Token value already issued")
        now = now_ms()
        record = {"identityId": identity_id, "createdAt": now, "used": False}
        if ttl_seconds is not None:
            record["expiresAt"] = now + int(ttl_seconds) * 1000

        result = self.store.transaction(
            f"{TOKENS_BY_VALUE}/{value}",
            lambda current: record if current is None else None,
        )
        if not result.committed:
            raise InvalidInput("Token value already issued")
        return {"value": value, **record}

"""
Guard Credential Verifier - Access Service
PIN check against the bcrypt hash in guards/{guardId}, and issuance of the
signed guard claim (a flask-jwt-extended access token) that shift and
override routes require.
"""

import datetime
import logging

import bcrypt
from flask_jwt_extended import create_access_token

from access_service.errors import InvalidInput, Misconfigured, Unauthorized
from access_service.services.record_store import now_ms

logger = logging.getLogger(__name__)

GUARDS_PATH = "guards"
GUARD_ROLE = "guard"
MIN_SECRET_LENGTH = 4
# bcrypt only hashes the first 72 bytes and rejects anything longer
MAX_SECRET_BYTES = 72


def hash_secret(secret):
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def secret_too_long(secret):
    return len(secret.encode("utf-8")) > MAX_SECRET_BYTES


def check_secret(secret, credential_hash):
    credential_hash = str(credential_hash)
    if not credential_hash.startswith("$2"):
        raise Misconfigured("Guard credential hash is malformed")
    if secret_too_long(secret):
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), credential_hash.encode("utf-8"))
    except ValueError:
        raise Misconfigured("Guard credential hash is malformed")


class GuardCredentialVerifier:
    def __init__(self, store, claim_ttl_hours=8):
        self.store = store
        self.claim_ttl = datetime.timedelta(hours=claim_ttl_hours)

    def get_guard(self, guard_id):
        if not guard_id or "/" in guard_id:
            return None
        return self.store.get(f"{GUARDS_PATH}/{guard_id}")

    def register_guard(self, guard_id, display_name, secret):
        guard_id = str(guard_id or "").strip()
        secret = str(secret or "").strip()
        if not guard_id or "/" in guard_id:
            raise InvalidInput("Missing or invalid guard id")
        if len(secret) < MIN_SECRET_LENGTH:
            raise InvalidInput(f"PIN must be at least {MIN_SECRET_LENGTH} characters")
        if secret_too_long(secret):
            raise InvalidInput(f"PIN must be at most {MAX_SECRET_BYTES} bytes")

        guard = self.store.set(f"{GUARDS_PATH}/{guard_id}", {
            "displayName": display_name,
            "credentialHash": hash_secret(secret),
            "createdAt": now_ms(),
        })
        logger.info("Registered guard %s", guard_id)
        return {"id": guard_id, "displayName": guard["displayName"]}

    def authenticate(self, guard_id, secret):
        guard_id = str(guard_id or "").strip()
        secret = str(secret or "").strip()
        if not guard_id or not secret:
            raise InvalidInput("Missing guardId or pin")

        guard = self.get_guard(guard_id)
        if guard is None:
            logger.info("Login attempt for unknown guard %s", guard_id)
            raise Unauthorized("Invalid guard id or pin")

        credential_hash = guard.get("credentialHash")
        if not credential_hash:
            logger.error("Guard %s has no credential hash configured", guard_id)
            raise Misconfigured("Guard has no credential configured")

        if not check_secret(secret, credential_hash):
            logger.info("Wrong pin for guard %s", guard_id)
            raise Unauthorized("Invalid guard id or pin")

        display_name = guard.get("displayName")
        access_token = create_access_token(
            identity=guard_id,
            additional_claims={"role": GUARD_ROLE, "name": display_name},
            expires_delta=self.claim_ttl,
        )
        logger.info("Guard %s authenticated", guard_id)
        return {
            "accessToken": access_token,
            "expiresIn": int(self.claim_ttl.total_seconds()),
            "guard": {"id": guard_id, "displayName": display_name},
        }

"""
Core components, built once per app around a single RecordStore.
"""

from dataclasses import dataclass

from access_service.services.audit_log import AuditLog
from access_service.services.guard_credentials import GuardCredentialVerifier
from access_service.services.identity_directory import IdentityDirectory
from access_service.services.override_authorizer import OverrideAuthorizer
from access_service.services.record_store import RecordStore
from access_service.services.shift_manager import ShiftManager
from access_service.services.token_validator import TokenValidator


@dataclass
class AccessCore:
    store: RecordStore
    audit_log: AuditLog
    validator: TokenValidator
    shifts: ShiftManager
    overrides: OverrideAuthorizer
    guards: GuardCredentialVerifier
    identities: IdentityDirectory


def build_core(db, config):
    store = RecordStore(db, max_retries=config["STORE_MAX_RETRIES"])
    audit_log = AuditLog(
        store,
        default_limit=config["HISTORY_DEFAULT_LIMIT"],
        max_limit=config["HISTORY_MAX_LIMIT"],
    )
    return AccessCore(
        store=store,
        audit_log=audit_log,
        validator=TokenValidator(
            store,
            audit_log,
            policy=config["TOKEN_POLICY"],
            default_session_id=config["DEFAULT_SESSION_ID"],
        ),
        shifts=ShiftManager(store),
        overrides=OverrideAuthorizer(
            store, audit_log, default_session_id=config["DEFAULT_SESSION_ID"]
        ),
        guards=GuardCredentialVerifier(store, claim_ttl_hours=config["GUARD_CLAIM_TTL_HOURS"]),
        identities=IdentityDirectory(store),
    )

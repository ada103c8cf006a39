"""
Admin Routes
Identity and guard setup plus attendance lookup. Every route here sits
behind the X-Admin-Secret check; the core never sees the secret.
"""

from flask import Blueprint, jsonify, request

from access_service.errors import InvalidInput
from access_service.routes.decorators import admin_required, core

admin_bp = Blueprint("admin", __name__)


def optional_int(data, field):
    value = data.get(field)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be an integer")


def optional_str(data, field):
    value = data.get(field)
    if value is None:
        return None
    return str(value).strip() or None


@admin_bp.route("/users", methods=["GET"])
@admin_required
def list_users():
    """
    List identities with their current token
    ---
    tags:
      - Admin
    responses:
      200:
        description: Identities
      403:
        description: Missing or wrong admin secret
    """
    users = core().identities.list_identities()
    return jsonify({"success": True, "count": len(users), "data": users}), 200


@admin_bp.route("/users", methods=["POST"])
@admin_required
def upsert_user():
    """
    Create or update an identity and issue its access token
    ---
    tags:
      - Admin
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            id:
              type: string
            name:
              type: string
            role:
              type: string
              enum: [student, teacher, admin]
            token:
              type: string
            regenerate:
              type: boolean
            ttlSeconds:
              type: integer
    responses:
      200:
        description: Identity saved
      400:
        description: Invalid input
    """
    data = request.get_json(silent=True) or {}
    user = core().identities.upsert_identity(
        display_name=optional_str(data, "name"),
        role=optional_str(data, "role"),
        identity_id=optional_str(data, "id"),
        token=optional_str(data, "token"),
        regenerate=data.get("regenerate") is True,
        ttl_seconds=optional_int(data, "ttlSeconds"),
    )
    return jsonify({"success": True, "data": user}), 200


@admin_bp.route("/users/<identity_id>", methods=["GET"])
@admin_required
def get_user(identity_id):
    """
    Get one identity and its token
    ---
    tags:
      - Admin
    parameters:
      - name: identity_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Identity
      404:
        description: Identity not found
    """
    return jsonify({"success": True, "data": core().identities.get_identity(identity_id)}), 200


@admin_bp.route("/tokens", methods=["POST"])
@admin_required
def issue_token():
    """
    Issue a token for an existing identity
    ---
    tags:
      - Admin
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - identityId
          properties:
            identityId:
              type: string
            token:
              type: string
            ttlSeconds:
              type: integer
            keyedBy:
              type: string
              enum: [identity, value]
              default: identity
    responses:
      201:
        description: Token issued
      400:
        description: Invalid input
      404:
        description: Identity not found
    """
    data = request.get_json(silent=True) or {}
    identities = core().identities
    identity_id = optional_str(data, "identityId")
    ttl_seconds = optional_int(data, "ttlSeconds")
    identities.get_identity(identity_id)

    keyed_by = data.get("keyedBy", "identity")
    if keyed_by == "value":
        record = identities.issue_token_by_value(
            identity_id, value=optional_str(data, "token"), ttl_seconds=ttl_seconds
        )
    elif keyed_by == "identity":
        record = identities.issue_token(
            identity_id, value=optional_str(data, "token"), regenerate=True, ttl_seconds=ttl_seconds
        )
    else:
        raise InvalidInput("keyedBy must be 'identity' or 'value'")
    return jsonify({"success": True, "identityId": identity_id, "data": record}), 201


@admin_bp.route("/guards", methods=["POST"])
@admin_required
def register_guard():
    """
    Register a guard with a PIN
    ---
    tags:
      - Admin
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - id
            - name
            - pin
          properties:
            id:
              type: string
            name:
              type: string
            pin:
              type: string
    responses:
      201:
        description: Guard registered
      400:
        description: Invalid input
    """
    data = request.get_json(silent=True) or {}
    guard = core().guards.register_guard(data.get("id"), optional_str(data, "name"), data.get("pin"))
    return jsonify({"success": True, "data": guard}), 201


@admin_bp.route("/attendance", methods=["GET"])
@admin_required
def list_attendance():
    """
    Attendance marks, most recent first
    ---
    tags:
      - Admin
    parameters:
      - name: sessionId
        in: query
        type: string
      - name: limit
        in: query
        type: integer
        default: 50
    responses:
      200:
        description: Attendance marks
    """
    marks = core().audit_log.attendance(
        session_id=request.args.get("sessionId"),
        limit=request.args.get("limit"),
    )
    return jsonify({"success": True, "count": len(marks), "data": marks}), 200

"""
Validation Routes
Checkpoint scans (POST /validate), the legacy id+token check (POST /verify)
and the decision history (GET /history).
"""

from flask import Blueprint, jsonify, request

from access_service.routes.decorators import core, guard_required
from access_service.services import token_validator as tv

validation_bp = Blueprint("validation", __name__)

DECLINE_STATUS = {
    tv.MISSING_INPUT: 400,
    tv.NOT_FOUND: 404,
    tv.ID_NOT_FOUND: 404,
    tv.ALREADY_USED: 409,
    tv.EXPIRED: 409,
    tv.TOKEN_MISMATCH: 200,
}

DECLINE_MESSAGES = {
    tv.MISSING_INPUT: "Token required",
    tv.NOT_FOUND: "Token not found",
    tv.ID_NOT_FOUND: "ID not found",
    tv.ALREADY_USED: "Token already used",
    tv.EXPIRED: "Token expired",
    tv.TOKEN_MISMATCH: "Token does not match",
}


def decision_response(result):
    if result.authorized:
        return jsonify({"success": True, **result.to_dict()}), 200
    return jsonify({
        "success": False,
        "error_code": result.reason.upper(),
        "message": DECLINE_MESSAGES.get(result.reason, result.reason),
        **result.to_dict(),
    }), DECLINE_STATUS.get(result.reason, 400)


@validation_bp.route("/validate", methods=["POST"])
def validate_token():
    """
    Validate a scanned access token and claim it
    ---
    tags:
      - Validation
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - token
          properties:
            token:
              type: string
            sessionId:
              type: string
            type:
              type: string
              default: entry
    responses:
      200:
        description: Access authorized
      400:
        description: Token missing
      404:
        description: Token not found
      409:
        description: Token already used or expired
      503:
        description: Store unavailable
    """
    data = request.get_json(silent=True) or {}
    result = core().validator.validate(
        data.get("token"),
        session_id=data.get("sessionId"),
        event_type=data.get("type"),
    )
    return decision_response(result)


@validation_bp.route("/verify", methods=["POST"])
def verify_token():
    """
    Legacy check of an identity id against its token (does not consume it)
    ---
    tags:
      - Validation
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - id
            - token
          properties:
            id:
              type: string
            token:
              type: string
    responses:
      200:
        description: Decision (authorized true or false)
      400:
        description: Missing id or token
      404:
        description: ID not found
    """
    data = request.get_json(silent=True) or {}
    result = core().validator.verify(data.get("id"), data.get("token"))
    return decision_response(result)


@validation_bp.route("/history", methods=["GET"])
@guard_required
def access_history():
    """
    Most recent authorization decisions
    ---
    tags:
      - Validation
    security:
      - Bearer: []
    parameters:
      - name: limit
        in: query
        type: integer
        default: 50
    responses:
      200:
        description: Decisions, most recent first
      400:
        description: Invalid limit
    """
    entries = core().audit_log.history(request.args.get("limit"))
    return jsonify({"success": True, "count": len(entries), "data": entries}), 200

from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity

from access_service.routes.decorators import core, guard_required

overrides_bp = Blueprint("overrides", __name__)


@overrides_bp.route("/overrides", methods=["POST"])
@guard_required
def authorize_override():
    """
    Record a guard's manual authorization
    ---
    tags:
      - Overrides
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            identityId:
              type: string
            token:
              type: string
            sessionId:
              type: string
            note:
              type: string
            shiftId:
              type: string
    responses:
      201:
        description: Override recorded
      400:
        description: Neither identityId nor token given
    """
    data = request.get_json(silent=True) or {}
    override = core().overrides.authorize(
        get_jwt_identity(),
        identity_id=data.get("identityId"),
        token_value=data.get("token"),
        session_id=data.get("sessionId"),
        note=data.get("note"),
        shift_id=data.get("shiftId"),
    )
    return jsonify({
        "success": True,
        "authId": override["id"],
        "timestamp": override["timestamp"],
        "data": override,
    }), 201

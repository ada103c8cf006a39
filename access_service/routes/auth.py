from flask import Blueprint, jsonify, request

from access_service.routes.decorators import core

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/guard-login", methods=["POST"])
def guard_login():
    """
    Authenticate a guard with their PIN and return a signed claim
    ---
    tags:
      - Auth
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - guardId
            - pin
          properties:
            guardId:
              type: string
            pin:
              type: string
    responses:
      200:
        description: Login successful
      400:
        description: Missing guardId or pin
      401:
        description: Invalid credentials
      500:
        description: Guard has no credential configured
    """
    data = request.get_json(silent=True) or {}
    claim = core().guards.authenticate(data.get("guardId"), data.get("pin"))
    return jsonify({"success": True, "message": "Login successful", **claim}), 200

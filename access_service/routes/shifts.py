"""
Shift Routes
Guard on-duty periods. The guard is always the one named by the claim.
"""

from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity

from access_service.routes.decorators import core, guard_required

shifts_bp = Blueprint("shifts", __name__)


@shifts_bp.route("/start", methods=["POST"])
@guard_required
def start_shift():
    """
    Start a shift for the authenticated guard
    ---
    tags:
      - Shifts
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            notes:
              type: string
            force:
              type: boolean
              default: false
    responses:
      201:
        description: Shift started
      409:
        description: Guard already has an active shift
    """
    data = request.get_json(silent=True) or {}
    shift = core().shifts.start_shift(
        get_jwt_identity(),
        notes=data.get("notes"),
        force=data.get("force") is True,
    )
    return jsonify({
        "success": True,
        "shiftId": shift["id"],
        "startedAt": shift["startedAt"],
        "data": shift,
    }), 201


@shifts_bp.route("/end", methods=["POST"])
@guard_required
def end_shift():
    """
    End a shift (the given one, or the guard's latest active shift)
    ---
    tags:
      - Shifts
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            shiftId:
              type: string
            notes:
              type: string
    responses:
      200:
        description: Shift ended
      403:
        description: Shift belongs to another guard
      404:
        description: No such shift, or no active shift
      409:
        description: Shift already ended
    """
    data = request.get_json(silent=True) or {}
    shift = core().shifts.end_shift(
        get_jwt_identity(),
        shift_id=data.get("shiftId"),
        notes=data.get("notes"),
    )
    return jsonify({
        "success": True,
        "shiftId": shift["id"],
        "endedAt": shift["endedAt"],
        "data": shift,
    }), 200


@shifts_bp.route("", methods=["GET"])
@guard_required
def list_shifts():
    """
    List the authenticated guard's shifts, most recent first
    ---
    tags:
      - Shifts
    security:
      - Bearer: []
    parameters:
      - name: active
        in: query
        type: boolean
        default: false
    responses:
      200:
        description: Shifts
    """
    active_only = request.args.get("active", "false").lower() in ("1", "true", "yes")
    shifts = core().shifts.list_shifts(get_jwt_identity(), active_only=active_only)
    return jsonify({"success": True, "count": len(shifts), "data": shifts}), 200

# Overview: Flask API routes for team membership (owner area).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_access
from ..errors import DomainError
from ..services import team_service
from ..validation import json_payload


team_bp = Blueprint("team", __name__, url_prefix="/api/team")


@team_bp.get("")
@require_access("manage_team")
def list_team_route():
    members = team_service.list_team(g.tenant_id)
    return jsonify({"team": [m.to_dict() for m in members]}), 200


@team_bp.post("/grant")
@require_access("manage_team")
def grant_role_route():
    try:
        data = json_payload(request.get_json(silent=True))
        profile = team_service.grant_role(
            g.current_user,
            g.tenant_id,
            data.get("email"),
            data.get("role"),
            is_active_barber=data.get("is_active_barber"),
        )
        return jsonify({"profile": profile.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to grant role")
        return jsonify({"error": "Internal server error"}), 500


@team_bp.post("/<int:profile_id>/revoke")
@require_access("manage_team")
def revoke_staff_route(profile_id: int):
    try:
        profile = team_service.revoke_staff(g.current_user, g.tenant_id, profile_id)
        return jsonify({"profile": profile.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to revoke team member %s", profile_id)
        return jsonify({"error": "Internal server error"}), 500

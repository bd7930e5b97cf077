# Overview: Flask API routes for tenant settings, kiosk mode and the audit log.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_access
from ..errors import DomainError
from ..services import audit_service, policy_service
from ..services.tenant_service import get_tenant
from ..validation import json_payload, optional_int


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_access("manage_settings")
def get_settings_route():
    return jsonify({"tenant": get_tenant(g.tenant_id).to_dict()}), 200


@settings_bp.patch("")
@require_access("manage_settings")
def update_settings_route():
    try:
        data = json_payload(request.get_json(silent=True))
        tenant = policy_service.update_settings(g.current_user, g.tenant_id, data)
        return jsonify({"tenant": tenant.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("/kiosk/pin")
@require_access("set_kiosk_pin")
def set_kiosk_pin_route():
    try:
        data = json_payload(request.get_json(silent=True))
        pin = data.get("pin")
        policy_service.set_kiosk_pin(g.current_user, g.tenant_id, pin if isinstance(pin, str) else None)
        return jsonify({"message": "Kiosk PIN updated"}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set kiosk PIN")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.post("/kiosk/activate")
@require_access("activate_kiosk")
def activate_kiosk_route():
    try:
        tenant = policy_service.activate_kiosk(g.current_user, g.tenant_id)
        return jsonify({"kiosk_mode_active": tenant.kiosk_mode_active}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to activate kiosk mode")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.post("/kiosk/deactivate")
@require_access("deactivate_kiosk")
def deactivate_kiosk_route():
    try:
        data = json_payload(request.get_json(silent=True))
        pin = data.get("pin")
        tenant = policy_service.deactivate_kiosk(g.current_user, g.tenant_id, pin if isinstance(pin, str) else "")
        return jsonify({"kiosk_mode_active": tenant.kiosk_mode_active}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate kiosk mode")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.get("/audit")
@require_access("view_audit_log")
def audit_log_route():
    """GET /api/settings/audit?entity=bookings&entity_id=12"""
    try:
        entries = audit_service.list_entries(
            g.tenant_id,
            entity=request.args.get("entity") or None,
            entity_id=request.args.get("entity_id") or None,
            limit=min(optional_int(request.args, "limit", 200), 1000),
        )
    except DomainError as e:
        return error_response(e)
    return jsonify({"entries": [entry.to_dict() for entry in entries]}), 200

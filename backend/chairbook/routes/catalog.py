# Overview: Flask API routes for the service catalog (owner area).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_access
from ..errors import DomainError
from ..services import catalog_service
from ..validation import json_payload


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/services")


@catalog_bp.get("")
@require_access("manage_services")
def list_catalog_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    services = catalog_service.list_services(g.tenant_id, include_inactive=include_inactive)
    return jsonify({"services": [s.to_dict() for s in services]}), 200


@catalog_bp.post("")
@require_access("manage_services")
def create_service_route():
    try:
        data = json_payload(request.get_json(silent=True))
        service = catalog_service.create_service(
            g.current_user,
            g.tenant_id,
            name=data.get("name"),
            price_cents=data.get("price_cents"),
            duration_min=data.get("duration_min"),
        )
        return jsonify({"service": service.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create service")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/<int:service_id>")
@require_access("manage_services")
def update_service_route(service_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        service = catalog_service.update_service(g.current_user, g.tenant_id, service_id, data)
        return jsonify({"service": service.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update service %s", service_id)
        return jsonify({"error": "Internal server error"}), 500

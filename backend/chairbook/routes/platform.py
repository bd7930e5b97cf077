# Overview: Flask API routes for platform administration (super admin only).

from flask import Blueprint, current_app, jsonify, request

from ..decorators import error_response, require_auth, require_roles
from ..errors import DomainError
from ..extensions import db
from ..models import Tenant
from ..models.auth import ROLE_SUPER_ADMIN
from ..services import tenant_service
from ..validation import json_payload


platform_bp = Blueprint("platform", __name__, url_prefix="/api/platform")


@platform_bp.get("/tenants")
@require_auth
@require_roles(ROLE_SUPER_ADMIN)
def list_tenants_route():
    tenants = db.session.query(Tenant).order_by(Tenant.slug.asc()).all()
    return jsonify({"tenants": [t.to_dict() for t in tenants]}), 200


@platform_bp.post("/tenants")
@require_auth
@require_roles(ROLE_SUPER_ADMIN)
def create_tenant_route():
    try:
        data = json_payload(request.get_json(silent=True))
        tenant = tenant_service.create_tenant(
            slug=data.get("slug"),
            display_name=(data.get("display_name") or "").strip() or data.get("slug"),
            subscription_status=data.get("subscription_status") or "trial",
            logo_url=data.get("logo_url"),
        )
        return jsonify({"tenant": tenant.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create tenant")
        return jsonify({"error": "Internal server error"}), 500


@platform_bp.patch("/tenants/<int:tenant_id>/status")
@require_auth
@require_roles(ROLE_SUPER_ADMIN)
def set_tenant_status_route(tenant_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        tenant = tenant_service.set_subscription_status(tenant_id, data.get("subscription_status"))
        return jsonify({"tenant": tenant.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update tenant %s", tenant_id)
        return jsonify({"error": "Internal server error"}), 500

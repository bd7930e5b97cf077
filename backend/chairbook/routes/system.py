# backend/chairbook/routes/system.py
"""
System health and tenant resolution endpoints.
"""

import time

from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..models import Tenant
from ..services import tenant_service
from chairbook.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tenants": tenant_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503


@system_bp.get("/api/tenant")
def current_tenant_route():
    """Public branding of the tenant named by the request host."""
    tenant = g.host_tenant
    if tenant is None:
        return jsonify({"tenant": None}), 200
    return jsonify({
        "tenant": {
            "slug": tenant.slug,
            "display_name": tenant.display_name,
            "logo_url": tenant.logo_url,
            "is_suspended": tenant.is_suspended,
            "guest_checkout_enabled": tenant.guest_checkout_enabled,
        }
    }), 200


@system_bp.get("/api/resolve-tenant")
def resolve_tenant_route():
    """GET /api/resolve-tenant?host=shop.example.com -> {"slug": "shop"}"""
    host = request.args.get("host", "")
    slug = tenant_service.resolve_tenant_slug(
        host,
        non_tenant_hosts=tuple(current_app.config["NON_TENANT_HOSTS"]),
        non_tenant_suffixes=tuple(current_app.config["NON_TENANT_HOST_SUFFIXES"]),
    )
    return jsonify({"host": host, "slug": slug}), 200

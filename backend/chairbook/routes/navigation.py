# Overview: Navigation guard routes and the access-decision API shared with client menus.

"""
Navigation

The admin and customer page routes are the boundary with the page renderer:
they answer with the access decision for the requested page (200 when the
page may render, a redirect when it may not). The same decision backs
GET /api/access-decision and GET /api/navigation, so a client menu built
from them never shows an entry the server would refuse.
"""

from flask import Blueprint, current_app, g, jsonify, redirect, request

from ..decorators import error_response, require_auth, unauthenticated_response
from ..errors import DomainError
from ..services import policy_service
from ..services.tenant_service import require_active_tenant


navigation_bp = Blueprint("navigation", __name__)


def _page_decision(route: str):
    if g.current_user is None:
        return unauthenticated_response()
    if g.tenant_error is not None:
        return error_response(g.tenant_error)

    decision = policy_service.get_access_decision(g.current_user, g.tenant_id, route)
    if not decision.allowed:
        current_app.logger.info(
            "Navigation to %s denied for profile %s: %s", route, g.current_user.id, decision.reason,
        )
        return redirect(decision.redirect_to)

    if g.tenant_id is not None and route.startswith("/admin"):
        try:
            require_active_tenant(g.tenant_id)
        except DomainError as e:
            return error_response(e)

    return jsonify({
        "route": decision.route,
        "allowed": True,
        "tenant_id": g.tenant_id,
        "kiosk_mode_active": policy_service.is_kiosk_active(g.tenant_id),
    }), 200


@navigation_bp.get("/admin")
@navigation_bp.get("/admin/<path:subpath>")
def admin_page_route(subpath: str | None = None):
    return _page_decision(request.path)


@navigation_bp.get("/app")
@navigation_bp.get("/app/<path:subpath>")
def customer_page_route(subpath: str | None = None):
    return _page_decision(request.path)


@navigation_bp.get("/api/access-decision")
@require_auth
def access_decision_route():
    """GET /api/access-decision?route=/admin/reports"""
    route = request.args.get("route")
    if not route:
        return jsonify({"error": "route query parameter required"}), 400
    if g.tenant_error is not None:
        return error_response(g.tenant_error)
    decision = policy_service.get_access_decision(g.current_user, g.tenant_id, route)
    return jsonify(decision.to_dict()), 200


@navigation_bp.get("/api/navigation")
@require_auth
def navigation_menu_route():
    if g.tenant_error is not None:
        return error_response(g.tenant_error)
    return jsonify(policy_service.get_navigation(g.current_user, g.tenant_id)), 200

# Overview: Request and access-policy decorators for API and navigation routes.

from functools import wraps

from flask import current_app, g, jsonify, redirect, request

from .errors import DomainError, NotFound
from .services import policy_service
from .services.tenant_service import require_active_tenant


def error_response(exc: DomainError):
    return jsonify(exc.to_dict()), exc.status_code


def _is_navigation() -> bool:
    return not request.path.startswith("/api/")


def unauthenticated_response():
    """
    No session on a protected route.

    API calls get 401. Page navigations are sent to /login once; a one-shot
    marker cookie turns the next consecutive miss into a 401 so the browser
    cannot loop between a protected page and the login page.
    """
    config = current_app.config
    marker = config["LOGIN_REDIRECT_MARKER_COOKIE"]

    if not _is_navigation():
        return jsonify({"error": "Authentication required"}), 401

    if request.cookies.get(marker):
        response = jsonify({"error": "Authentication required", "redirect_to": "/login"})
        response.status_code = 401
        response.delete_cookie(marker, path="/", domain=config.get("COOKIE_DOMAIN"))
        return response

    response = redirect(f"/login?next={request.path}")
    response.set_cookie(
        marker,
        "1",
        max_age=config["LOGIN_REDIRECT_MARKER_SECONDS"],
        httponly=True,
        samesite="Lax",
        secure=config.get("COOKIE_SECURE", False),
        domain=config.get("COOKIE_DOMAIN"),
        path="/",
    )
    return response


def require_auth(f):
    """
    Require a VALID session (established by the gateway).

    Sets nothing new on g; g.current_user is already the profile.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return unauthenticated_response()
        return f(*args, **kwargs)

    return decorated_function


def require_tenant(f):
    """
    Require an acting tenant that is not suspended.

    MULTI-TENANT: a staff member on another shop's host, or a request with
    no tenant context at all, gets NotFound.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.tenant_error is not None:
            return error_response(g.tenant_error)
        if g.tenant_id is None:
            return error_response(NotFound("Tenant not found"))
        try:
            require_active_tenant(g.tenant_id)
        except DomainError as exc:
            return error_response(exc)
        return f(*args, **kwargs)

    return decorated_function


def require_access(operation: str):
    """
    Authenticate, resolve the tenant and authorize `operation` against the
    access policy. This is the authoritative check; client menus only mirror it.

    Denials return 403 with the policy's redirect target and an explicit message.
    """
    def decorator(f):
        @wraps(f)
        @require_auth
        @require_tenant
        def decorated_function(*args, **kwargs):
            try:
                policy_service.authorize(g.current_user, g.tenant_id, operation)
            except DomainError as exc:
                return error_response(exc)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_roles(*roles):
    """Require one of the given roles (after require_auth)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return unauthenticated_response()
            if user.role not in roles:
                return jsonify({
                    "error": "PolicyDenied",
                    "message": "Your account cannot perform this action",
                    "required_roles": sorted(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator

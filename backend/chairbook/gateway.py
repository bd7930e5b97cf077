# Overview: Per-request tenant and session resolution, and identity cookie handling.

"""
Session Gateway

Runs before every request:
1. Resolve the host tenant from the Host header.
2. Classify the presented credentials (bearer header or cookies) as
   VALID, ANONYMOUS or CORRUPTED; near-expiry sessions are refreshed.
3. Resolve the acting tenant for the caller.

On CORRUPTED the token family is already revoked; the gateway clears every
identity cookie and sends the caller to /login?session_expired=1 (JSON 401
with the same redirect for API calls). Anonymous callers continue; routes
decide whether they need a session.

Sets on flask.g:
- g.host_tenant: Tenant | None
- g.current_user: Profile | None
- g.session_outcome: SessionOutcome
- g.tenant_id: acting tenant id or None
- g.tenant_error: DomainError raised while resolving the acting tenant, or None
"""

from __future__ import annotations

from flask import g, jsonify, redirect, request

from .errors import DomainError
from .services import session_service, tenant_service


SESSION_EXPIRED_REDIRECT = "/login?session_expired=1"

# Endpoints that must stay usable with a broken session (to sign in again)
SESSION_EXEMPT_PATHS = frozenset({
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/logout",
    "/login",
    "/health",
})


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        token = header.split(" ", 1)[1].strip()
        return token or None
    return None


def identity_cookie_names(config) -> tuple[str, ...]:
    return (config["ACCESS_COOKIE_NAME"], config["REFRESH_COOKIE_NAME"])


def set_identity_cookies(response, config, issued: session_service.IssuedTokens):
    common = {
        "domain": config.get("COOKIE_DOMAIN"),
        "secure": config.get("COOKIE_SECURE", False),
        "httponly": True,
        "samesite": "Lax",
        "path": "/",
    }
    response.set_cookie(config["ACCESS_COOKIE_NAME"], issued.access_token, expires=issued.access_expires_at, **common)
    response.set_cookie(config["REFRESH_COOKIE_NAME"], issued.refresh_token, expires=issued.refresh_expires_at, **common)
    return response


def clear_identity_cookies(response, config):
    for name in identity_cookie_names(config):
        response.delete_cookie(name, path="/", domain=config.get("COOKIE_DOMAIN"))
    response.delete_cookie(config["LOGIN_REDIRECT_MARKER_COOKIE"], path="/", domain=config.get("COOKIE_DOMAIN"))
    return response


def init_app(app) -> None:
    config = app.config

    @app.before_request
    def establish_request_context():
        g.current_user = None
        g.tenant_id = None
        g.tenant_error = None
        g.clear_identity = False

        slug = tenant_service.resolve_tenant_slug(
            request.host,
            non_tenant_hosts=tuple(config["NON_TENANT_HOSTS"]),
            non_tenant_suffixes=tuple(config["NON_TENANT_HOST_SUFFIXES"]),
        )
        g.host_tenant = tenant_service.get_tenant_by_slug(slug)

        refresh_token = request.cookies.get(config["REFRESH_COOKIE_NAME"]) or request.headers.get("X-Refresh-Token")
        outcome = session_service.resolve_session(
            _bearer_token() or request.cookies.get(config["ACCESS_COOKIE_NAME"]),
            refresh_token,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        g.session_outcome = outcome

        if outcome.is_corrupted:
            app.logger.warning("Session corrupted (%s) on %s", outcome.reason, request.path)
            g.clear_identity = True
            if request.path not in SESSION_EXEMPT_PATHS:
                if request.path.startswith("/api/"):
                    response = jsonify({
                        "error": "SessionCorrupted",
                        "message": "Your session has expired. Please sign in again.",
                        "redirect_to": SESSION_EXPIRED_REDIRECT,
                    })
                    response.status_code = 401
                else:
                    response = redirect(SESSION_EXPIRED_REDIRECT)
                return clear_identity_cookies(response, config)

        if outcome.is_valid:
            g.current_user = outcome.context.profile

        try:
            g.tenant_id = tenant_service.resolve_acting_tenant(g.current_user, g.host_tenant)
        except DomainError as exc:
            g.tenant_error = exc

        return None

    @app.after_request
    def write_identity_cookies(response):
        if getattr(g, "clear_identity", False):
            return clear_identity_cookies(response, config)
        outcome = getattr(g, "session_outcome", None)
        if outcome is not None and outcome.is_valid and outcome.context.issued is not None:
            set_identity_cookies(response, config, outcome.context.issued)
        return response

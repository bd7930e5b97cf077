# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/chairbook/routes/auth.py
"""
Authentication API routes

- Customers sign up themselves (unaffiliated; shops attach staff via /api/team)
- Login issues an access/refresh token pair, returned in the body and as
  httponly cookies
- Refresh rotates the pair; reuse of a rotated refresh token revokes the login
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_auth
from ..errors import DomainError
from ..gateway import clear_identity_cookies, set_identity_cookies
from ..services import auth_service, session_service
from ..validation import json_payload
from chairbook.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _token_body(profile, issued: session_service.IssuedTokens) -> dict:
    return {
        "profile": profile.to_dict(),
        "access_token": issued.access_token,
        "refresh_token": issued.refresh_token,
        "access_expires_at": to_utc_z(issued.access_expires_at),
        "refresh_expires_at": to_utc_z(issued.refresh_expires_at),
    }


@auth_bp.post("/register")
def register_route():
    """Customer self sign-up."""
    try:
        data = json_payload(request.get_json(silent=True))
        profile = auth_service.register_customer(
            email=data.get("email"),
            password=data.get("password"),
            full_name=data.get("full_name"),
            phone=data.get("phone"),
        )
        return jsonify({"profile": profile.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register customer")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """Authenticate and start a session."""
    try:
        data = json_payload(request.get_json(silent=True))
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        profile = auth_service.authenticate(email, password)
        if not profile:
            return jsonify({"error": "Invalid credentials"}), 401

        _, issued = session_service.create_session(
            profile.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        # A corrupted session on this request must not wipe the new cookies
        g.clear_identity = False
        response = jsonify({**_token_body(profile, issued), "message": "Login successful"})
        response.delete_cookie(current_app.config["LOGIN_REDIRECT_MARKER_COOKIE"], path="/")
        return set_identity_cookies(response, current_app.config, issued), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/refresh")
def refresh_route():
    """Explicit refresh for API clients that do not use cookies."""
    outcome = g.session_outcome
    if outcome.is_valid and outcome.context.issued is not None:
        # The gateway already rotated the cookie pair on this request
        return jsonify(_token_body(outcome.context.profile, outcome.context.issued)), 200

    data = request.get_json(silent=True)
    data = data if isinstance(data, dict) else {}
    refresh_token = data.get("refresh_token") or request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not refresh_token:
        return jsonify({"error": "refresh_token required"}), 400

    try:
        context = session_service.refresh_session(
            refresh_token,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except DomainError as e:
        g.clear_identity = True
        body, status = error_response(e)
        return clear_identity_cookies(body, current_app.config), status
    except Exception:
        current_app.logger.exception("Failed to refresh session")
        return jsonify({"error": "Internal server error"}), 500

    if context is None:
        return jsonify({"error": "Session expired", "redirect_to": "/login"}), 401
    if context.issued is None:
        # Rotated a moment ago by a concurrent request; that response carries the new pair
        return jsonify({
            "error": "Conflict",
            "message": "Refresh token was just rotated; use the newest tokens",
        }), 409

    response = jsonify(_token_body(context.profile, context.issued))
    return set_identity_cookies(response, current_app.config, context.issued), 200


@auth_bp.post("/logout")
def logout_route():
    """Revoke the current login and clear identity cookies."""
    try:
        header = request.headers.get("Authorization", "")
        token = header.split(" ", 1)[1] if header.startswith("Bearer ") else None
        token = token or request.cookies.get(current_app.config["ACCESS_COOKIE_NAME"])
        if token:
            session_service.revoke_session(token, "User logout")
        g.clear_identity = True
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    profile = g.current_user
    tenant = profile.tenant
    return jsonify({
        "profile": profile.to_dict(),
        "tenant": tenant.to_dict() if tenant else None,
        "acting_tenant_id": g.tenant_id,
    }), 200

# Overview: Flask API routes for the public booking page and the customer area.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_auth
from ..errors import DomainError, NotFound
from ..extensions import db
from ..models import LoyaltyEvent, Profile
from ..models.auth import ROLE_CUSTOMER, ROLE_OWNER, ROLE_STAFF
from ..services import booking_service, catalog_service, loyalty_service, tenant_service
from ..validation import json_payload, optional_str, required_int


customer_bp = Blueprint("customer", __name__, url_prefix="/api")


def _public_tenant(slug: str):
    tenant = tenant_service.get_tenant_by_slug(slug)
    if tenant is None:
        raise NotFound("Shop not found")
    return tenant


@customer_bp.get("/book/<slug>")
def booking_page_route(slug: str):
    """Everything the public booking page needs: branding, services, barbers."""
    try:
        tenant = _public_tenant(slug)
    except DomainError as e:
        return error_response(e)

    barbers = db.session.query(Profile).filter(
        Profile.tenant_id == tenant.id,
        Profile.role.in_((ROLE_STAFF, ROLE_OWNER)),
        Profile.is_active_barber.is_(True),
        Profile.is_active.is_(True),
    ).order_by(Profile.full_name.asc()).all()

    return jsonify({
        "tenant": {
            "slug": tenant.slug,
            "display_name": tenant.display_name,
            "logo_url": tenant.logo_url,
            "is_suspended": tenant.is_suspended,
            "guest_checkout_enabled": tenant.guest_checkout_enabled,
        },
        "services": [s.to_dict() for s in catalog_service.list_services(tenant.id)],
        "barbers": [{"id": b.id, "full_name": b.full_name} for b in barbers],
    }), 200


@customer_bp.post("/book/<slug>")
def public_booking_route(slug: str):
    """Book online, signed in as a customer or as a guest (if the shop allows it)."""
    try:
        tenant = _public_tenant(slug)
        data = json_payload(request.get_json(silent=True))
        actor = g.current_user if g.current_user is not None and g.current_user.role == ROLE_CUSTOMER else None
        booking = booking_service.create_booking(
            actor,
            tenant.id,
            service_id=required_int(data, "service_id"),
            staff_id=required_int(data, "staff_id"),
            start_time=data.get("start_time"),
            guest_name=optional_str(data, "guest_name"),
            notes=optional_str(data, "notes", max_length=2000),
        )
        return jsonify({"booking": booking_service.booking_view(booking)}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create online booking for %s", slug)
        return jsonify({"error": "Internal server error"}), 500


@customer_bp.get("/app/bookings")
@require_auth
def my_bookings_route():
    bookings = booking_service.my_bookings(g.current_user, tenant_id=g.host_tenant.id if g.host_tenant else None)
    return jsonify({"bookings": [booking_service.booking_view(b) for b in bookings]}), 200


@customer_bp.post("/app/bookings/<int:booking_id>/cancel")
@require_auth
def cancel_my_booking_route(booking_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        booking = booking_service.cancel_my_booking(g.current_user, booking_id, optional_str(data, "reason"))
        return jsonify({"booking": booking_service.booking_view(booking)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@customer_bp.post("/app/bookings/<int:booking_id>/rate")
@require_auth
def rate_booking_route(booking_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        booking = booking_service.rate_booking(
            g.current_user,
            booking_id,
            required_int(data, "rating"),
            optional_str(data, "comment", max_length=1000),
        )
        return jsonify({"booking": booking_service.booking_view(booking)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to rate booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@customer_bp.get("/app/loyalty")
@require_auth
def my_loyalty_route():
    profile = g.current_user
    events = db.session.query(LoyaltyEvent).filter(
        LoyaltyEvent.profile_id == profile.id,
    ).order_by(LoyaltyEvent.occurred_at.desc(), LoyaltyEvent.id.desc()).limit(50).all()
    return jsonify({
        "loyalty": loyalty_service.loyalty_status(profile.loyalty_points),
        "history": [e.to_dict() for e in events],
    }), 200

# Overview: Flask API routes for the booking ledger; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_access
from ..errors import DomainError
from ..services import booking_service, team_service
from ..validation import datetime_arg, json_payload, optional_int, optional_str, required_int


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api")


@bookings_bp.get("/bookings")
@require_access("list_bookings")
def list_bookings_route():
    """GET /api/bookings?status=confirmed&from=...&to=...&staff_id=..."""
    try:
        bookings = booking_service.list_bookings(
            g.tenant_id,
            status=request.args.get("status") or None,
            staff_id=optional_int(request.args, "staff_id"),
            date_from=datetime_arg(request.args, "from"),
            date_to=datetime_arg(request.args, "to"),
        )
        return jsonify({"bookings": [booking_service.booking_view(b) for b in bookings]}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list bookings")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/bookings")
@require_access("create_booking")
def create_booking_route():
    try:
        data = json_payload(request.get_json(silent=True))
        booking = booking_service.create_booking(
            g.current_user,
            g.tenant_id,
            service_id=required_int(data, "service_id"),
            staff_id=required_int(data, "staff_id"),
            start_time=data.get("start_time"),
            customer_id=optional_int(data, "customer_id"),
            guest_name=optional_str(data, "guest_name"),
            notes=optional_str(data, "notes", max_length=2000),
        )
        return jsonify({"booking": booking_service.booking_view(booking)}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/bookings/<int:booking_id>")
@require_access("list_bookings")
def get_booking_route(booking_id: int):
    try:
        booking = booking_service.get_booking(g.tenant_id, booking_id)
        return jsonify({"booking": booking_service.booking_view(booking)}), 200
    except DomainError as e:
        return error_response(e)


@bookings_bp.post("/bookings/<int:booking_id>/seat")
@require_access("seat_booking")
def seat_booking_route(booking_id: int):
    try:
        booking = booking_service.seat_booking(g.current_user, g.tenant_id, booking_id)
        return jsonify({"booking": booking_service.booking_view(booking)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to seat booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/bookings/<int:booking_id>/cancel")
@require_access("cancel_booking")
def cancel_booking_route(booking_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        booking = booking_service.cancel_booking(
            g.current_user, g.tenant_id, booking_id, optional_str(data, "reason"),
        )
        return jsonify({"booking": booking_service.booking_view(booking)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/bookings/<int:booking_id>/no-show")
@require_access("mark_no_show")
def mark_no_show_route(booking_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        booking = booking_service.mark_no_show(
            g.current_user, g.tenant_id, booking_id, optional_str(data, "reason"),
        )
        return jsonify({"booking": booking_service.booking_view(booking)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark no-show for booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/bookings/<int:booking_id>/forgive")
@require_access("forgive_no_show")
def forgive_no_show_route(booking_id: int):
    try:
        booking = booking_service.forgive_no_show(g.current_user, g.tenant_id, booking_id)
        return jsonify({"booking": booking_service.booking_view(booking)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to forgive no-show for booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/clients")
@require_access("list_clients")
def list_clients_route():
    return jsonify({"clients": booking_service.list_clients(g.tenant_id)}), 200


@bookings_bp.post("/clients")
@require_access("create_client")
def create_client_route():
    """Register a walk-in client at the desk: full_name, phone, [email]."""
    try:
        data = json_payload(request.get_json(silent=True))
        profile, temporary_password = team_service.create_managed_client(
            g.current_user,
            g.tenant_id,
            full_name=optional_str(data, "full_name"),
            phone=data.get("phone"),
            email=optional_str(data, "email"),
        )
        body = {"client": profile.to_dict(), "created": temporary_password is not None}
        if temporary_password is not None:
            body["temporary_password"] = temporary_password
        return jsonify(body), 201 if temporary_password is not None else 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register client")
        return jsonify({"error": "Internal server error"}), 500

# Overview: Flask API routes for the point-of-sale terminal; walk-ins, quotes and settlement.

# backend/chairbook/routes/pos.py
"""
Terminal API

POST /api/pos/settle is the only way a booking becomes completed. A failed
sale answers with the error kind and, for storage failures, "Sale not
recorded" (nothing was written).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_access
from ..errors import DomainError
from ..services import booking_service, catalog_service, settlement_service
from ..validation import amount_cents, json_payload, optional_int, optional_str, required_int


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.get("/services")
@require_access("list_services")
def list_services_route():
    services = catalog_service.list_services(g.tenant_id)
    return jsonify({"services": [s.to_dict() for s in services]}), 200


@pos_bp.post("/walk-ins")
@require_access("seat_walk_in")
def seat_walk_in_route():
    try:
        data = json_payload(request.get_json(silent=True))
        booking = booking_service.seat_walk_in(
            g.current_user,
            g.tenant_id,
            staff_id=required_int(data, "staff_id"),
            client_id=optional_int(data, "client_id"),
            guest_name=optional_str(data, "guest_name"),
            notes=optional_str(data, "notes", max_length=2000),
        )
        return jsonify({"booking": booking_service.booking_view(booking)}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to seat walk-in")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/quote")
@require_access("quote_settlement")
def quote_route():
    try:
        data = json_payload(request.get_json(silent=True))
        quote = settlement_service.quote_settlement(
            g.tenant_id,
            service_id=required_int(data, "service_id"),
            booking_id=optional_int(data, "booking_id"),
            amount_cents=amount_cents(data),
            client_id=optional_int(data, "client_id"),
            redeem_points=optional_int(data, "redeem_points", 0),
        )
        return jsonify({"quote": quote}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to quote settlement")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/settle")
@require_access("settle")
def settle_route():
    """
    Settle a scheduled booking (booking_id) or a walk-in sale (no booking_id).

    Body: staff_id, service_id, payment_method, [booking_id], [amount_cents],
          [client_id], [redeem_points]
    """
    try:
        data = json_payload(request.get_json(silent=True))
        transaction = settlement_service.settle(
            g.current_user,
            g.tenant_id,
            booking_id=optional_int(data, "booking_id"),
            staff_id=required_int(data, "staff_id"),
            service_id=required_int(data, "service_id"),
            amount_cents=amount_cents(data),
            payment_method=data.get("payment_method"),
            redeem_points=optional_int(data, "redeem_points", 0),
            client_id=optional_int(data, "client_id"),
        )
        return jsonify({"transaction": transaction.to_dict(), "message": "Sale recorded"}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": "SettlementFailed", "message": settlement_service.SALE_NOT_RECORDED}), 500


@pos_bp.post("/transactions/<int:transaction_id>/link-client")
@require_access("link_client")
def link_client_route(transaction_id: int):
    """Attach a client (scanned id or email) to an anonymous sale and credit its points."""
    try:
        data = json_payload(request.get_json(silent=True))
        transaction = settlement_service.link_client(g.current_user, g.tenant_id, transaction_id, data.get("client"))
        return jsonify({"transaction": transaction.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to link client to sale %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500

# Overview: Flask API routes for owner reports and sale voids.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_access
from ..errors import DomainError
from ..services import settlement_service
from ..validation import datetime_arg, json_payload, optional_str


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
@require_access("view_reports")
def summary_route():
    """GET /api/reports/summary?from=2026-01-01&to=2026-02-01"""
    try:
        summary = settlement_service.sales_summary(
            g.tenant_id,
            date_from=datetime_arg(request.args, "from"),
            date_to=datetime_arg(request.args, "to"),
        )
        return jsonify({"summary": summary}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build sales summary")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/transactions")
@require_access("view_reports")
def list_transactions_route():
    try:
        transactions = settlement_service.list_transactions(
            g.tenant_id,
            date_from=datetime_arg(request.args, "from"),
            date_to=datetime_arg(request.args, "to"),
        )
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except DomainError as e:
        return error_response(e)


@reports_bp.post("/transactions/<int:transaction_id>/void")
@require_access("void_transaction")
def void_transaction_route(transaction_id: int):
    try:
        data = json_payload(request.get_json(silent=True))
        transaction = settlement_service.void_transaction(
            g.current_user, g.tenant_id, transaction_id, optional_str(data, "reason"),
        )
        return jsonify({"transaction": transaction.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500

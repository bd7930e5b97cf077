from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_access
from ..errors import DomainError
from ..services import expense_service
from ..validation import datetime_arg, json_payload, optional_str, required_int


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_access("list_expenses")
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(
            g.tenant_id,
            date_from=datetime_arg(request.args, "from"),
            date_to=datetime_arg(request.args, "to"),
        )
        return jsonify({"expenses": [e.to_dict() for e in expenses]}), 200
    except DomainError as e:
        return error_response(e)


@expenses_bp.post("")
@require_access("record_expense")
def record_expense_route():
    try:
        data = json_payload(request.get_json(silent=True))
        expense = expense_service.record_expense(
            g.current_user,
            g.tenant_id,
            amount_cents=required_int(data, "amount_cents"),
            category=optional_str(data, "category", max_length=64),
            description=optional_str(data, "description"),
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500

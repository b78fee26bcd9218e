# Overview: Flask API routes for cash movements; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_user, handle_service_errors
from ..models import TransactionCategory, TransactionType
from ..services import transaction_service
from ..time_utils import period_bounds
from ..validation import (
    ValidationError, parse_cents, parse_date, parse_enum, parse_optional_int, require_fields,
)


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("/")
@transactions_bp.post("")
@require_user
@handle_service_errors
def create_transaction_route():
    """
    Record a movement on an open session.

    Request body:
    {
        "cash_register_session_id": 1,
        "type": "INCOME" | "EXPENSE",
        "category": "SERVICE_PAYMENT" | "SUPPLIER_PAYMENT" | "SERVICE_REFUND" | "OTHER",
        "amount_cents": 25000,
        "concept": "Consulta general",
        "patient_id": 3, "professional_id": 7, "service_request_id": 12   (optional)
    }

    COMMISSION_LIQUIDATION and CASH_DIFFERENCE movements are only created by
    liquidation payments and cancellations.
    """
    data = require_fields(
        request.get_json(silent=True), "cash_register_session_id", "type", "category", "amount_cents", "concept"
    )
    category = parse_enum(TransactionCategory, data["category"], "category")
    if category in (TransactionCategory.COMMISSION_LIQUIDATION, TransactionCategory.CASH_DIFFERENCE):
        raise ValidationError(f"{category.value} movements cannot be created directly")

    tx = transaction_service.create_transaction(
        parse_optional_int(data["cash_register_session_id"], "cash_register_session_id"),
        parse_enum(TransactionType, data["type"], "type"),
        category,
        parse_cents(data["amount_cents"], "amount_cents"),
        data["concept"],
        g.current_user.id,
        patient_id=parse_optional_int(data.get("patient_id"), "patient_id"),
        professional_id=parse_optional_int(data.get("professional_id"), "professional_id"),
        service_request_id=parse_optional_int(data.get("service_request_id"), "service_request_id"),
    )
    return jsonify({"transaction": tx.to_dict()}), 201


@transactions_bp.post("/<int:transaction_id>/cancel")
@require_user
@handle_service_errors
def cancel_transaction_route(transaction_id: int):
    data = require_fields(request.get_json(silent=True), "reason")
    tx = transaction_service.cancel_transaction(transaction_id, data["reason"], g.current_user.id)
    return jsonify({"transaction": tx.to_dict()})


@transactions_bp.post("/<int:transaction_id>/void")
@require_user
@handle_service_errors
def void_transaction_route(transaction_id: int):
    data = require_fields(request.get_json(silent=True), "reason")
    tx = transaction_service.void_transaction(transaction_id, data["reason"], g.current_user.id)
    return jsonify({"transaction": tx.to_dict()})


@transactions_bp.get("/report")
@require_user
@handle_service_errors
def transaction_report_route():
    """
    Active movements between two dates (inclusive).

    Query params: start_date, end_date, type, category, user_id (all but the dates optional)
    """
    start = parse_date(request.args.get("start_date"), "start_date")
    end = parse_date(request.args.get("end_date"), "end_date")
    if start > end:
        raise ValidationError("start_date cannot be after end_date")

    type_arg = request.args.get("type")
    category_arg = request.args.get("category")
    window_start, window_end = period_bounds(start, end)

    report = transaction_service.get_transaction_report(
        window_start,
        window_end,
        type=parse_enum(TransactionType, type_arg, "type") if type_arg else None,
        category=parse_enum(TransactionCategory, category_arg, "category") if category_arg else None,
        user_id=parse_optional_int(request.args.get("user_id"), "user_id"),
    )
    report["period"] = {"start_date": start.isoformat(), "end_date": end.isoformat()}
    return jsonify(report)

# Overview: Flask API routes for commission computation and liquidations.

"""
Commission API Routes

Liquidation lifecycle: draft -> approved -> paid, paid -> approved (revert),
draft/approved -> cancelled. Reverting a payment is restricted to cashier
managers by the upstream authorization layer.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_user, handle_service_errors
from ..services import commission_service
from ..validation import parse_date, parse_int_list, parse_optional_int, require_fields


commissions_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


@commissions_bp.get("/professionals/<int:professional_id>/data")
@require_user
@handle_service_errors
def commission_data_route(professional_id: int):
    """Preview of what a liquidation for the period would contain."""
    start = parse_date(request.args.get("start_date"), "start_date")
    end = parse_date(request.args.get("end_date"), "end_date")

    data = commission_service.compute_commission_data(professional_id, start, end)
    body = data.to_dict()
    body["warnings"] = commission_service.validate_liquidation_period(professional_id, start, end)
    return jsonify(body)


@commissions_bp.post("/liquidations")
@require_user
@handle_service_errors
def generate_liquidation_route():
    """
    Generate a draft liquidation.

    Request body:
    {
        "professional_id": 7,
        "start_date": "2026-01-01",
        "end_date": "2026-01-31",
        "service_request_ids": [12, 15]   (optional filter)
    }
    """
    data = require_fields(request.get_json(silent=True), "professional_id", "start_date", "end_date")

    liquidation = commission_service.generate_liquidation(
        parse_optional_int(data["professional_id"], "professional_id"),
        parse_date(data["start_date"], "start_date"),
        parse_date(data["end_date"], "end_date"),
        g.current_user.id,
        service_request_ids=parse_int_list(data.get("service_request_ids"), "service_request_ids"),
    )
    return jsonify({"liquidation": liquidation.to_dict(include_details=True)}), 201


@commissions_bp.get("/liquidations/pending")
@require_user
@handle_service_errors
def pending_liquidations_route():
    liquidations = commission_service.get_pending_liquidations()
    return jsonify({"liquidations": [liq.to_dict() for liq in liquidations]})


@commissions_bp.get("/liquidations/<int:liquidation_id>")
@require_user
@handle_service_errors
def get_liquidation_route(liquidation_id: int):
    liquidation = commission_service.get_liquidation(liquidation_id)
    return jsonify({"liquidation": liquidation.to_dict(include_details=True)})


@commissions_bp.post("/liquidations/<int:liquidation_id>/approve")
@require_user
@handle_service_errors
def approve_liquidation_route(liquidation_id: int):
    liquidation = commission_service.approve_liquidation(liquidation_id, g.current_user.id)
    return jsonify({"liquidation": liquidation.to_dict()})


@commissions_bp.post("/liquidations/<int:liquidation_id>/pay")
@require_user
@handle_service_errors
def pay_liquidation_route(liquidation_id: int):
    """
    Pay an approved liquidation out of a cash register session.

    Request body: {"cash_register_session_id": 1}
    """
    data = require_fields(request.get_json(silent=True), "cash_register_session_id")
    liquidation = commission_service.pay_liquidation(
        liquidation_id,
        parse_optional_int(data["cash_register_session_id"], "cash_register_session_id"),
        g.current_user.id,
    )
    return jsonify({
        "liquidation": liquidation.to_dict(),
        "movement": liquidation.payment_movement.to_dict(),
    })


@commissions_bp.post("/liquidations/<int:liquidation_id>/revert")
@require_user
@handle_service_errors
def revert_payment_route(liquidation_id: int):
    data = require_fields(request.get_json(silent=True), "reason")
    liquidation = commission_service.revert_payment(liquidation_id, g.current_user.id, data["reason"])
    return jsonify({"liquidation": liquidation.to_dict()})


@commissions_bp.post("/liquidations/<int:liquidation_id>/cancel")
@require_user
@handle_service_errors
def cancel_liquidation_route(liquidation_id: int):
    liquidation = commission_service.cancel_liquidation(liquidation_id, g.current_user.id)
    return jsonify({"liquidation": liquidation.to_dict()})


@commissions_bp.get("/professionals/<int:professional_id>/report")
@require_user
@handle_service_errors
def commission_report_route(professional_id: int):
    start_arg = request.args.get("start_date")
    end_arg = request.args.get("end_date")
    start = parse_date(start_arg, "start_date") if start_arg else None
    end = parse_date(end_arg, "end_date") if end_arg else None
    return jsonify(commission_service.get_commission_report(professional_id, start, end))

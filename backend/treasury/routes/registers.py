# Overview: Flask API routes for cash register sessions; parses input and returns JSON responses.

"""
Cash Register Session API Routes

Session lifecycle: open -> close (immutable once closed).
Close stores the difference against the physical count; discrepancy review
is a separate read-only endpoint.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_user, handle_service_errors
from ..services import ledger_service, register_service
from ..validation import parse_cents, parse_optional_int, require_fields


registers_bp = Blueprint("registers", __name__, url_prefix="/api/cash-register")


@registers_bp.post("/sessions")
@require_user
@handle_service_errors
def open_session_route():
    """
    Open a cash register session for the calling operator.

    Request body:
    {
        "initial_amount_cents": 10000,
        "notes": "Morning shift"  (optional)
    }
    """
    data = require_fields(request.get_json(silent=True), "initial_amount_cents")
    initial_amount_cents = parse_cents(data["initial_amount_cents"], "initial_amount_cents", allow_zero=True)

    session = register_service.open_session(
        user_id=g.current_user.id,
        initial_amount_cents=initial_amount_cents,
        notes=data.get("notes"),
    )
    return jsonify({"session": session.to_dict()}), 201


@registers_bp.get("/sessions/active")
@require_user
@handle_service_errors
def active_session_route():
    active = register_service.get_active_session(g.current_user.id)
    if active is None:
        return jsonify({"session": None, "transactions": []})

    return jsonify({
        "session": active.session.to_dict(),
        "transactions": [tx.to_dict() for tx in active.transactions],
    })


@registers_bp.post("/sessions/<int:session_id>/close")
@require_user
@handle_service_errors
def close_session_route(session_id: int):
    """
    Close a session with the physical cash count.

    Request body:
    {
        "final_physical_amount_cents": 34500,
        "authorized_by_user_id": 2,          (optional)
        "difference_justification": "..."    (optional)
    }
    """
    data = require_fields(request.get_json(silent=True), "final_physical_amount_cents")

    session = register_service.close_session(
        session_id,
        parse_cents(data["final_physical_amount_cents"], "final_physical_amount_cents", allow_zero=True),
        closed_by_user_id=g.current_user.id,
        authorized_by_user_id=parse_optional_int(data.get("authorized_by_user_id"), "authorized_by_user_id"),
        difference_justification=data.get("difference_justification"),
    )
    return jsonify({
        "session": session.to_dict(),
        "discrepancy": register_service.check_discrepancies(session),
    })


@registers_bp.get("/sessions/<int:session_id>/summary")
@require_user
@handle_service_errors
def session_summary_route(session_id: int):
    session = register_service.get_session(session_id)
    return jsonify(ledger_service.get_session_summary(session))


@registers_bp.get("/sessions/<int:session_id>/discrepancies")
@require_user
@handle_service_errors
def session_discrepancies_route(session_id: int):
    threshold = request.args.get("threshold_cents", type=int)
    session = register_service.get_session(session_id)
    return jsonify(register_service.check_discrepancies(session, threshold))


@registers_bp.get("/sessions/history")
@require_user
@handle_service_errors
def session_history_route():
    limit = request.args.get("limit", default=20, type=int)
    return jsonify(register_service.get_user_session_history(g.current_user.id, limit=min(max(limit, 1), 100)))

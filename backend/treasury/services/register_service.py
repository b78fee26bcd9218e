"""
Cash Register Session Service

WHY: Each session is a period of cash accountability for one operator.
Close-time reconciliation compares the ledger balance with the physical
count.

DESIGN PRINCIPLES:
- One open session per operator at a time (service check + partial unique index)
- Sessions are immutable once closed (no reopen)
- Balance at close is recomputed fresh from transactions, never trusted
- Closing with a difference is allowed; discrepancies are flagged afterwards
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashRegisterSession, SessionStatus, Transaction, TransactionStatus, User
from ..money import format_cents
from ..time_utils import utcnow
from . import audit_service
from .concurrency import lock_for_update, unit_of_work
from .errors import AlreadyClosed, DuplicateOpenSession, InvalidAmount, NotFoundError
from .ledger_service import get_session_transactions, recompute_totals


@dataclass(frozen=True)
class ActiveSession:
    session: CashRegisterSession
    transactions: list[Transaction]


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_session(user_id: int, initial_amount_cents: int, notes: str | None = None) -> CashRegisterSession:
    """
    Open a new cash-register session for an operator.

    Args:
        user_id: Operator owning the session
        initial_amount_cents: Starting cash in drawer (in cents)
        notes: Optional opening notes

    Raises:
        InvalidAmount: negative or non-integer starting cash
        NotFoundError: unknown operator
        DuplicateOpenSession: operator already has an open session
    """
    if isinstance(initial_amount_cents, bool) or not isinstance(initial_amount_cents, int):
        raise InvalidAmount("Initial amount must be an integer number of cents")
    if initial_amount_cents < 0:
        raise InvalidAmount("Initial amount cannot be negative")

    try:
        with unit_of_work():
            # Serialize opens per operator on the user row
            user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
            if not user:
                raise NotFoundError(f"User {user_id} not found")

            existing_open = db.session.query(CashRegisterSession).filter_by(
                user_id=user_id,
                status=SessionStatus.OPEN,
            ).first()
            if existing_open:
                raise DuplicateOpenSession(
                    f"User {user_id} already has an open cash register session ({existing_open.id})"
                )

            session = CashRegisterSession(
                user_id=user_id,
                status=SessionStatus.OPEN,
                opening_date=utcnow(),
                initial_amount_cents=initial_amount_cents,
                total_income_cents=0,
                total_expenses_cents=0,
                calculated_balance_cents=initial_amount_cents,
                notes=notes,
            )
            db.session.add(session)
            db.session.flush()

            audit_service.record(
                entity_type="cash_register_session",
                entity_id=session.id,
                event="opened",
                new_values=audit_service.snapshot(session),
                description="Cash register session opened" + (f": {notes}" if notes else ""),
                user_id=user_id,
            )
    except IntegrityError as exc:
        # Lost a race against a concurrent open on the partial unique index
        raise DuplicateOpenSession(f"User {user_id} already has an open cash register session") from exc

    current_app.logger.info(
        "Cash session %s opened by user %s with %s", session.id, user_id, format_cents(initial_amount_cents)
    )
    return session


def close_session(
    session_id: int,
    final_physical_amount_cents: int,
    *,
    closed_by_user_id: int | None = None,
    authorized_by_user_id: int | None = None,
    difference_justification: str | None = None,
) -> CashRegisterSession:
    """
    Close a session and reconcile against the physical cash count.

    The balance is recomputed from transactions at close time; the
    difference (physical - calculated) is stored as-is, whatever its size.

    Raises:
        InvalidAmount: negative or non-integer count
        NotFoundError: unknown session
        AlreadyClosed: session is not open
    """
    if isinstance(final_physical_amount_cents, bool) or not isinstance(final_physical_amount_cents, int):
        raise InvalidAmount("Final physical amount must be an integer number of cents")
    if final_physical_amount_cents < 0:
        raise InvalidAmount("Final physical amount cannot be negative")

    with unit_of_work():
        session = lock_for_update(db.session.query(CashRegisterSession).filter_by(id=session_id)).first()
        if not session:
            raise NotFoundError(f"Cash register session {session_id} not found")

        if session.status is not SessionStatus.OPEN:
            raise AlreadyClosed(f"Cash register session {session.id} is already closed")

        old_values = audit_service.snapshot(session)

        totals = recompute_totals(session)
        difference = final_physical_amount_cents - totals.calculated_balance_cents

        session.status = SessionStatus.CLOSED
        session.closing_date = utcnow()
        session.final_physical_amount_cents = final_physical_amount_cents
        session.difference_cents = difference
        session.difference_justification = difference_justification
        session.authorized_by_user_id = authorized_by_user_id
        db.session.flush()

        audit_service.record(
            entity_type="cash_register_session",
            entity_id=session.id,
            event="closed",
            old_values=old_values,
            new_values=audit_service.snapshot(session),
            description=f"Cash register session closed. Difference: {format_cents(difference)}",
            user_id=closed_by_user_id or session.user_id,
        )

    threshold = current_app.config["CASH_DISCREPANCY_THRESHOLD_CENTS"]
    if abs(difference) > threshold:
        current_app.logger.warning(
            "Cash session %s closed with discrepancy %s (threshold %s)",
            session.id, format_cents(difference), format_cents(threshold),
        )
    else:
        current_app.logger.info("Cash session %s closed. Difference: %s", session.id, format_cents(difference))

    return session


def get_session(session_id: int) -> CashRegisterSession:
    session = db.session.get(CashRegisterSession, session_id)
    if not session:
        raise NotFoundError(f"Cash register session {session_id} not found")
    return session


def get_active_session(user_id: int) -> ActiveSession | None:
    """The operator's open session with its active transactions (newest first), if any."""
    session = db.session.query(CashRegisterSession).filter_by(
        user_id=user_id,
        status=SessionStatus.OPEN,
    ).first()
    if not session:
        return None

    transactions = get_session_transactions(session.id, status=TransactionStatus.ACTIVE, newest_first=True)
    return ActiveSession(session=session, transactions=transactions)


# =============================================================================
# RECONCILIATION REPORTING
# =============================================================================

def check_discrepancies(session: CashRegisterSession, threshold_cents: int | None = None) -> dict:
    """
    Read-only review of a closed session's difference.

    Open sessions (or closed ones with no stored difference) report no
    discrepancy.
    """
    if threshold_cents is None:
        threshold_cents = current_app.config["CASH_DISCREPANCY_THRESHOLD_CENTS"]

    if session.status is not SessionStatus.CLOSED or session.difference_cents is None:
        return {"has_discrepancy": False}

    has_discrepancy = abs(session.difference_cents) > threshold_cents

    return {
        "has_discrepancy": has_discrepancy,
        "difference_cents": session.difference_cents,
        "threshold_cents": threshold_cents,
        "requires_authorization": has_discrepancy,
        "status": "discrepancy_detected" if has_discrepancy else "normal",
    }


def get_user_session_history(user_id: int, limit: int = 20) -> dict:
    """Operator's latest sessions with difference statistics over the closed ones."""
    threshold_cents = current_app.config["CASH_DISCREPANCY_THRESHOLD_CENTS"]

    sessions = db.session.query(CashRegisterSession).filter_by(
        user_id=user_id
    ).order_by(CashRegisterSession.opening_date.desc(), CashRegisterSession.id.desc()).limit(limit).all()

    closed_differences = [
        s.difference_cents or 0
        for s in sessions
        if s.status is SessionStatus.CLOSED
    ]
    average = round(sum(closed_differences) / len(closed_differences)) if closed_differences else 0

    return {
        "sessions": [s.to_dict() for s in sessions],
        "statistics": {
            "total_sessions": len(sessions),
            "average_difference_cents": average,
            "sessions_with_discrepancies": sum(1 for d in closed_differences if abs(d) > threshold_cents),
        },
    }


def list_sessions(status: SessionStatus | None = None, limit: int = 20) -> list[CashRegisterSession]:
    query = db.session.query(CashRegisterSession)
    if status is not None:
        query = query.filter(CashRegisterSession.status == status)
    return query.order_by(CashRegisterSession.opening_date.desc(), CashRegisterSession.id.desc()).limit(limit).all()


def list_sessions_with_discrepancies(threshold_cents: int | None = None, limit: int = 50) -> list[CashRegisterSession]:
    if threshold_cents is None:
        threshold_cents = current_app.config["CASH_DISCREPANCY_THRESHOLD_CENTS"]
    return db.session.query(CashRegisterSession).filter(
        CashRegisterSession.status == SessionStatus.CLOSED,
        db.func.abs(CashRegisterSession.difference_cents) > threshold_cents,
    ).order_by(CashRegisterSession.closing_date.desc()).limit(limit).all()

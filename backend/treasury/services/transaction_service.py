# Overview: Transaction state machine; records, cancels and voids cash movements.

"""
Cash Movement Service

States: active (initial) -> cancelled | voided (terminal)

- create: only against an open session; recomputes session totals.
- cancel: only active rows on an open session. Adds a compensating row of
  the opposite type (category CASH_DIFFERENCE, kept as history and not
  summed) and recomputes totals, so the balance returns to where it was.
- void: only on a closed session. Flags the row for audit and leaves the
  session totals untouched.
- A payout backing a paid liquidation can be neither cancelled nor voided,
  and a service payment claimed by a live liquidation cannot be cancelled.

Every state change runs inside a unit of work holding the session row lock,
so concurrent movements on one session serialize on the totals.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import (
    CashRegisterSession, CommissionLiquidation, LiquidationStatus, MedicalService, ServiceRequestDetail,
    SessionStatus, Transaction, TransactionCategory, TransactionStatus, TransactionType,
)
from ..money import format_cents
from ..time_utils import utcnow
from . import audit_service
from .concurrency import lock_for_update, unit_of_work
from .errors import (
    AlreadyCancelled, AlreadyVoided, ClaimedByLiquidation, InvalidAmount, NotFoundError, PayoutLocked, SessionClosed,
    SessionStillOpen,
)
from .ledger_service import recompute_totals

CONCEPT_MAX_LENGTH = 255
CANCELLATION_PREFIX = "Cancelación: "


# =============================================================================
# CREATION
# =============================================================================

def create_transaction(
    session_id: int,
    type: TransactionType,
    category: TransactionCategory,
    amount_cents: int,
    concept: str,
    user_id: int,
    *,
    patient_id: int | None = None,
    professional_id: int | None = None,
    service_request_id: int | None = None,
    liquidation_id: int | None = None,
    original_transaction_id: int | None = None,
) -> Transaction:
    """
    Record a movement against an open session and refresh its totals.

    Raises:
        InvalidAmount: amount is not a positive integer number of cents
        NotFoundError: session does not exist
        SessionClosed: session is not open
    """
    _validate_amount(amount_cents)
    type = TransactionType(type)
    category = TransactionCategory(category)

    with unit_of_work():
        session = _lock_session(session_id)
        _require_open(session)

        tx = Transaction(
            cash_register_session_id=session.id,
            type=type,
            category=category,
            amount_cents=amount_cents,
            concept=_clip(concept),
            patient_id=patient_id,
            professional_id=professional_id,
            service_request_id=service_request_id,
            liquidation_id=liquidation_id,
            original_transaction_id=original_transaction_id,
            status=TransactionStatus.ACTIVE,
            user_id=user_id,
            created_at=utcnow(),
        )
        db.session.add(tx)
        db.session.flush()

        recompute_totals(session)

        audit_service.record(
            entity_type="transaction",
            entity_id=tx.id,
            event="created",
            new_values=audit_service.snapshot(tx),
            description=f"{category.value} {type.value} {format_cents(amount_cents)}: {tx.concept}",
            user_id=user_id,
        )

    return tx


def record_service_payment(
    session_id: int,
    amount_cents: int,
    user_id: int,
    *,
    service_request_id: int,
    professional_id: int | None = None,
    patient_id: int | None = None,
    concept: str | None = None,
) -> Transaction:
    """Income for a paid service; the source of commission liquidations."""
    if concept is None:
        concept = f"Pago de servicio: {_service_label(service_request_id, professional_id)}"
    return create_transaction(
        session_id,
        TransactionType.INCOME,
        TransactionCategory.SERVICE_PAYMENT,
        amount_cents,
        concept,
        user_id,
        patient_id=patient_id,
        professional_id=professional_id,
        service_request_id=service_request_id,
    )


def record_supplier_payment(session_id: int, amount_cents: int, concept: str, user_id: int) -> Transaction:
    return create_transaction(
        session_id, TransactionType.EXPENSE, TransactionCategory.SUPPLIER_PAYMENT, amount_cents, concept, user_id
    )


def record_income(session_id: int, amount_cents: int, concept: str, user_id: int, **refs) -> Transaction:
    """Manual cash in (category OTHER)."""
    return create_transaction(
        session_id, TransactionType.INCOME, TransactionCategory.OTHER, amount_cents, concept, user_id, **refs
    )


def record_expense(session_id: int, amount_cents: int, concept: str, user_id: int, **refs) -> Transaction:
    """Manual cash out (category OTHER)."""
    return create_transaction(
        session_id, TransactionType.EXPENSE, TransactionCategory.OTHER, amount_cents, concept, user_id, **refs
    )


def record_service_refund(
    session_id: int,
    amount_cents: int,
    concept: str,
    user_id: int,
    *,
    patient_id: int | None = None,
    service_request_id: int | None = None,
) -> Transaction:
    return create_transaction(
        session_id,
        TransactionType.EXPENSE,
        TransactionCategory.SERVICE_REFUND,
        amount_cents,
        concept,
        user_id,
        patient_id=patient_id,
        service_request_id=service_request_id,
    )


def record_commission_payout(
    session_id: int,
    professional_id: int,
    amount_cents: int,
    concept: str,
    liquidation_id: int,
    user_id: int,
) -> Transaction:
    return create_transaction(
        session_id,
        TransactionType.EXPENSE,
        TransactionCategory.COMMISSION_LIQUIDATION,
        amount_cents,
        concept,
        user_id,
        professional_id=professional_id,
        liquidation_id=liquidation_id,
    )


# =============================================================================
# CANCELLATION / VOID
# =============================================================================

def cancel_transaction(transaction_id: int, reason: str, user_id: int) -> Transaction:
    """
    Reverse an active movement on an open session.

    Creates the compensating row, marks the original cancelled (amount
    untouched) and recomputes totals, all in one unit of work.

    Raises:
        AlreadyCancelled / AlreadyVoided: movement is not active
        SessionClosed: owning session is closed
        PayoutLocked: movement pays a liquidation that is still 'paid'
        ClaimedByLiquidation: service payment is part of a live liquidation
    """
    with unit_of_work():
        tx = _get_transaction(transaction_id)
        session = _lock_session(tx.cash_register_session_id)
        tx = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()

        _require_active(tx)
        _require_open(session)
        _require_not_backing_paid_liquidation(tx)
        _require_unclaimed(tx)

        old_values = audit_service.snapshot(tx)

        reversal = Transaction(
            cash_register_session_id=tx.cash_register_session_id,
            type=tx.type.opposite(),
            category=TransactionCategory.CASH_DIFFERENCE,
            amount_cents=tx.amount_cents,
            concept=_clip(f"{CANCELLATION_PREFIX}{tx.concept}"),
            original_transaction_id=tx.id,
            status=TransactionStatus.ACTIVE,
            user_id=user_id,
            created_at=utcnow(),
        )
        db.session.add(reversal)

        tx.status = TransactionStatus.CANCELLED
        tx.cancellation_reason = reason
        tx.cancelled_by_user_id = user_id
        tx.cancelled_at = utcnow()
        db.session.flush()

        recompute_totals(session)

        audit_service.record(
            entity_type="transaction",
            entity_id=tx.id,
            event="cancelled",
            old_values=old_values,
            new_values=audit_service.snapshot(tx),
            description=f"Transaction cancelled: {reason} (reversal {reversal.id})",
            user_id=user_id,
        )

    current_app.logger.info(
        "Transaction %s cancelled by user %s; reversal %s", tx.id, user_id, reversal.id
    )
    return tx


def void_transaction(transaction_id: int, reason: str, user_id: int) -> Transaction:
    """
    Flag a movement of a closed session as voided.

    Audit-only correction: the session's totals and close-time figures are
    left exactly as they were reconciled.

    Raises:
        AlreadyVoided: movement already voided
        SessionStillOpen: owning session has not been closed
        PayoutLocked: movement pays a liquidation that is still 'paid'
    """
    with unit_of_work():
        tx = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not tx:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        if tx.status is TransactionStatus.VOIDED:
            raise AlreadyVoided(f"Transaction {tx.id} is already voided")

        session = db.session.get(CashRegisterSession, tx.cash_register_session_id)
        if session.status is not SessionStatus.CLOSED:
            raise SessionStillOpen(
                f"Transaction {tx.id} belongs to open session {session.id}; cancel it instead"
            )
        _require_not_backing_paid_liquidation(tx)

        old_values = audit_service.snapshot(tx)

        tx.status = TransactionStatus.VOIDED
        tx.void_reason = reason
        tx.voided_by_user_id = user_id
        tx.voided_at = utcnow()
        db.session.flush()

        audit_service.record(
            entity_type="transaction",
            entity_id=tx.id,
            event="voided",
            old_values=old_values,
            new_values=audit_service.snapshot(tx),
            description=f"Transaction voided: {reason}",
            user_id=user_id,
        )

    return tx


# =============================================================================
# REPORTING
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    return _get_transaction(transaction_id)


def get_transaction_report(
    start: datetime,
    end: datetime,
    *,
    type: TransactionType | None = None,
    category: TransactionCategory | None = None,
    user_id: int | None = None,
) -> dict:
    """Counted movements created in [start, end) with income/expense totals; compensating rows are left out."""
    query = db.session.query(Transaction).filter(
        Transaction.status == TransactionStatus.ACTIVE,
        Transaction.original_transaction_id.is_(None),
        Transaction.created_at >= start,
        Transaction.created_at < end,
    )
    if type is not None:
        query = query.filter(Transaction.type == type)
    if category is not None:
        query = query.filter(Transaction.category == category)
    if user_id is not None:
        query = query.filter(Transaction.user_id == user_id)

    transactions = query.order_by(Transaction.created_at, Transaction.id).all()

    income = sum(tx.amount_cents for tx in transactions if tx.type is TransactionType.INCOME)
    expenses = sum(tx.amount_cents for tx in transactions if tx.type is TransactionType.EXPENSE)

    return {
        "transactions": [tx.to_dict() for tx in transactions],
        "summary": {
            "total_transactions": len(transactions),
            "total_income_cents": income,
            "total_expenses_cents": expenses,
            "net_amount_cents": income - expenses,
        },
    }


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _validate_amount(amount_cents) -> None:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidAmount("Amount must be an integer number of cents")
    if amount_cents <= 0:
        raise InvalidAmount("Amount must be positive")


def _clip(concept: str) -> str:
    concept = (concept or "").strip()
    return concept[:CONCEPT_MAX_LENGTH]


def _lock_session(session_id: int) -> CashRegisterSession:
    session = lock_for_update(db.session.query(CashRegisterSession).filter_by(id=session_id)).first()
    if not session:
        raise NotFoundError(f"Cash register session {session_id} not found")
    return session


def _get_transaction(transaction_id: int) -> Transaction:
    tx = db.session.get(Transaction, transaction_id)
    if not tx:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return tx


def _require_open(session: CashRegisterSession) -> None:
    if session.status is SessionStatus.OPEN:
        return
    if session.status is SessionStatus.CLOSED:
        raise SessionClosed(f"Cash register session {session.id} is closed")
    raise ValueError(f"Unhandled session status {session.status!r}")


def _require_active(tx: Transaction) -> None:
    if tx.status is TransactionStatus.ACTIVE:
        return
    if tx.status is TransactionStatus.CANCELLED:
        raise AlreadyCancelled(f"Transaction {tx.id} is already cancelled")
    if tx.status is TransactionStatus.VOIDED:
        raise AlreadyVoided(f"Transaction {tx.id} is voided")
    raise ValueError(f"Unhandled transaction status {tx.status!r}")


def _require_not_backing_paid_liquidation(tx: Transaction) -> None:
    if tx.category is not TransactionCategory.COMMISSION_LIQUIDATION:
        return
    paid = db.session.query(CommissionLiquidation).filter(
        CommissionLiquidation.payment_movement_id == tx.id,
        CommissionLiquidation.status == LiquidationStatus.PAID,
    ).first()
    if paid:
        raise PayoutLocked(
            f"Transaction {tx.id} pays liquidation {paid.id}; revert the liquidation payment instead"
        )


def _require_unclaimed(tx: Transaction) -> None:
    if tx.commission_liquidation_id is None:
        return
    raise ClaimedByLiquidation(
        f"Transaction {tx.id} is claimed by liquidation {tx.commission_liquidation_id}; "
        "cancel the liquidation first"
    )


def _service_label(service_request_id: int, professional_id: int | None) -> str:
    query = db.session.query(MedicalService.name).join(
        ServiceRequestDetail, ServiceRequestDetail.medical_service_id == MedicalService.id
    ).filter(ServiceRequestDetail.service_request_id == service_request_id)
    if professional_id is not None:
        query = query.filter(ServiceRequestDetail.professional_id == professional_id)
    row = query.first()
    return row[0] if row else f"solicitud {service_request_id}"

# Overview: Ledger core; derives cash-register session totals from its transactions.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..extensions import db
from ..models import CashRegisterSession, Transaction, TransactionCategory, TransactionStatus, TransactionType
"""
Ledger Invariants (authoritative)

- calculated_balance = initial_amount + sum(counted INCOME) - sum(counted EXPENSE),
  where a counted row is active and is not a compensating entry
  (original_transaction_id unset).
- Totals are recomputed from scratch after every transaction insert or
  status change; they are never adjusted incrementally.
- Cancelled and voided rows never count. Compensating rows are kept as history
  only: the cancelled original drops out and its reversal is not summed, so a
  cancellation nets to zero.
- Only this module writes total_income_cents, total_expenses_cents and
  calculated_balance_cents.
"""


@dataclass(frozen=True)
class SessionTotals:
    total_income_cents: int
    total_expenses_cents: int
    calculated_balance_cents: int


def is_counted(tx: Transaction) -> bool:
    """Active and not a compensating entry."""
    return tx.status is TransactionStatus.ACTIVE and tx.original_transaction_id is None


def compute_totals(initial_amount_cents: int, transactions: Iterable[Transaction]) -> SessionTotals:
    """Pure computation over a session's transactions (only counted rows are summed)."""
    income = 0
    expenses = 0
    for tx in transactions:
        if not is_counted(tx):
            continue
        if tx.type is TransactionType.INCOME:
            income += tx.amount_cents
        elif tx.type is TransactionType.EXPENSE:
            expenses += tx.amount_cents
        else:
            raise ValueError(f"Unhandled transaction type {tx.type!r}")

    return SessionTotals(
        total_income_cents=income,
        total_expenses_cents=expenses,
        calculated_balance_cents=initial_amount_cents + income - expenses,
    )


def recompute_totals(session: CashRegisterSession) -> SessionTotals:
    """
    Recompute and persist session totals from its active transactions.

    Callers hold the session row lock inside their unit of work so the
    snapshot read here is consistent with the write.
    """
    db.session.flush()
    transactions = get_session_transactions(session.id, status=TransactionStatus.ACTIVE)
    totals = compute_totals(session.initial_amount_cents, transactions)

    session.total_income_cents = totals.total_income_cents
    session.total_expenses_cents = totals.total_expenses_cents
    session.calculated_balance_cents = totals.calculated_balance_cents
    db.session.flush()

    return totals


def get_session_transactions(
    session_id: int,
    status: TransactionStatus | None = None,
    newest_first: bool = False,
) -> list[Transaction]:
    query = db.session.query(Transaction).filter_by(cash_register_session_id=session_id)
    if status is not None:
        query = query.filter(Transaction.status == status)
    if newest_first:
        query = query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
    else:
        query = query.order_by(Transaction.created_at, Transaction.id)
    return query.all()


def get_session_summary(session: CashRegisterSession, recent_limit: int = 10) -> dict:
    """
    Session totals with movements split into income, expenses and refunds.

    Expense figures here exclude SERVICE_REFUND rows, which are reported on
    their own. calculated_balance_cents still counts refunds. Compensating
    rows appear only in "recent".
    """
    transactions = get_session_transactions(session.id, status=TransactionStatus.ACTIVE, newest_first=True)
    counted = [tx for tx in transactions if is_counted(tx)]

    income = [tx for tx in counted if tx.type is TransactionType.INCOME]
    expenses = [
        tx for tx in counted
        if tx.type is TransactionType.EXPENSE and tx.category is not TransactionCategory.SERVICE_REFUND
    ]
    refunds = [
        tx for tx in counted
        if tx.type is TransactionType.EXPENSE and tx.category is TransactionCategory.SERVICE_REFUND
    ]
    totals = compute_totals(session.initial_amount_cents, transactions)

    return {
        "session": session.to_dict(),
        "summary": {
            "initial_amount_cents": session.initial_amount_cents,
            "total_income_cents": sum(tx.amount_cents for tx in income),
            "total_expenses_cents": sum(tx.amount_cents for tx in expenses),
            "total_refunds_cents": sum(tx.amount_cents for tx in refunds),
            "calculated_balance_cents": totals.calculated_balance_cents,
            "transactions_count": len(counted),
            "income_transactions_count": len(income),
            "expense_transactions_count": len(expenses),
            "refund_transactions_count": len(refunds),
        },
        "transactions": {
            "income": [tx.to_dict() for tx in income],
            "expenses": [tx.to_dict() for tx in expenses],
            "refunds": [tx.to_dict() for tx in refunds],
            "recent": [tx.to_dict() for tx in transactions[:recent_limit]],
        },
    }

"""
Tests for session totals derivation.

Totals come only from active transactions and are recomputed from scratch,
so cancelled/voided rows and reversals must net out correctly.
"""

from treasury.models import (
    Transaction, TransactionCategory, TransactionStatus, TransactionType,
)
from treasury.services import ledger_service, transaction_service


def _tx(type_, amount, status=TransactionStatus.ACTIVE):
    return Transaction(type=type_, category=TransactionCategory.OTHER, amount_cents=amount, status=status)


def test_compute_totals_counts_only_active_rows():
    txs = [
        _tx(TransactionType.INCOME, 25000),
        _tx(TransactionType.EXPENSE, 5000),
        _tx(TransactionType.INCOME, 9999, TransactionStatus.CANCELLED),
        _tx(TransactionType.EXPENSE, 7777, TransactionStatus.VOIDED),
    ]

    totals = ledger_service.compute_totals(10000, txs)

    assert totals.total_income_cents == 25000
    assert totals.total_expenses_cents == 5000
    assert totals.calculated_balance_cents == 30000


def test_compute_totals_skips_compensating_rows():
    original = _tx(TransactionType.INCOME, 5000, TransactionStatus.CANCELLED)
    reversal = _tx(TransactionType.EXPENSE, 5000)
    reversal.original_transaction_id = 1

    totals = ledger_service.compute_totals(10000, [original, reversal])

    assert totals.total_income_cents == 0
    assert totals.total_expenses_cents == 0
    assert totals.calculated_balance_cents == 10000


def test_compute_totals_empty_session_is_initial_amount():
    totals = ledger_service.compute_totals(4200, [])
    assert totals.total_income_cents == 0
    assert totals.total_expenses_cents == 0
    assert totals.calculated_balance_cents == 4200


def test_balance_may_go_negative():
    totals = ledger_service.compute_totals(1000, [_tx(TransactionType.EXPENSE, 5000)])
    assert totals.calculated_balance_cents == -4000


def test_recompute_totals_matches_stored_fields(db_session, operator, open_session):
    transaction_service.record_income(open_session.id, 25000, "Consulta", operator.id)
    transaction_service.record_expense(open_session.id, 3000, "Insumos", operator.id)

    # Corrupt the stored totals; recompute must restore them from rows
    open_session.total_income_cents = 1
    open_session.calculated_balance_cents = 1
    db_session.flush()

    totals = ledger_service.recompute_totals(open_session)

    assert totals.calculated_balance_cents == 10000 + 25000 - 3000
    assert open_session.total_income_cents == 25000
    assert open_session.total_expenses_cents == 3000
    assert open_session.calculated_balance_cents == 32000


def test_session_transactions_filters_and_orders(db_session, operator, open_session):
    first = transaction_service.record_income(open_session.id, 1000, "Uno", operator.id)
    second = transaction_service.record_income(open_session.id, 2000, "Dos", operator.id)
    transaction_service.cancel_transaction(first.id, "error", operator.id)

    all_rows = ledger_service.get_session_transactions(open_session.id)
    active = ledger_service.get_session_transactions(open_session.id, status=TransactionStatus.ACTIVE)
    newest = ledger_service.get_session_transactions(open_session.id, newest_first=True)

    assert len(all_rows) == 3  # original, second, reversal
    assert {tx.id for tx in active} == {second.id} | {tx.id for tx in all_rows if tx.original_transaction_id == first.id}
    assert newest[0].id == max(tx.id for tx in all_rows)


def test_session_summary_reports_refunds_separately(db_session, operator, open_session):
    transaction_service.record_income(open_session.id, 20000, "Consulta", operator.id)
    transaction_service.record_supplier_payment(open_session.id, 3000, "Guantes", operator.id)
    transaction_service.record_service_refund(open_session.id, 5000, "Devolución", operator.id)

    summary = ledger_service.get_session_summary(open_session)

    assert summary["summary"]["total_income_cents"] == 20000
    assert summary["summary"]["total_expenses_cents"] == 3000
    assert summary["summary"]["total_refunds_cents"] == 5000
    # Refunds still leave the drawer
    assert summary["summary"]["calculated_balance_cents"] == 10000 + 20000 - 3000 - 5000
    assert summary["summary"]["transactions_count"] == 3
    assert len(summary["transactions"]["refunds"]) == 1
    assert summary["session"]["id"] == open_session.id

"""
Liquidation lifecycle against a real cash session.

draft -> approved -> paid -> (revert) approved -> cancelled, with the
session balance checked at every money-moving step.
"""

import pytest

from treasury.extensions import db
from treasury.models import (
    CashRegisterSession, CommissionLiquidation, LiquidationStatus, Transaction, TransactionCategory,
    TransactionStatus, TransactionType,
)
from treasury.services import commission_service, register_service, transaction_service
from treasury.services.errors import (
    AlreadyReverted, CannotCancelPaid, ClaimedByLiquidation, LiquidationAlreadyCancelled, NotApproved, NotDraft,
    NotFoundError, NotPaid, PayoutLocked, SessionClosed,
)
from treasury.time_utils import utcnow


@pytest.fixture
def draft(db_session, operator, open_session, professional, service_request):
    transaction_service.record_service_payment(
        open_session.id, 10000, operator.id,
        service_request_id=service_request.id,
        professional_id=professional.id,
    )
    today = utcnow().date()
    return commission_service.generate_liquidation(professional.id, today, today, operator.id)


def _balance(session_id):
    db.session.expire_all()
    return db.session.get(CashRegisterSession, session_id).calculated_balance_cents


def _liquidation(liquidation_id):
    db.session.expire_all()
    return db.session.get(CommissionLiquidation, liquidation_id)


def test_full_lifecycle(db_session, operator, manager, open_session, draft):
    # 100.00 opening + 100.00 service payment
    assert _balance(open_session.id) == 20000

    approved = commission_service.approve_liquidation(draft.id, manager.id)
    assert approved.status is LiquidationStatus.APPROVED
    assert approved.approved_by_user_id == manager.id

    paid = commission_service.pay_liquidation(draft.id, open_session.id, operator.id)
    assert paid.status is LiquidationStatus.PAID
    payout = db.session.get(Transaction, paid.payment_movement_id)
    assert payout.type is TransactionType.EXPENSE
    assert payout.category is TransactionCategory.COMMISSION_LIQUIDATION
    assert payout.amount_cents == 3000
    assert payout.liquidation_id == draft.id
    assert payout.professional_id == draft.professional_id
    assert payout.concept.startswith("Liquidación de comisiones - Período: ")
    assert _balance(open_session.id) == 17000

    reverted = commission_service.revert_payment(draft.id, manager.id, "Pago a cuenta equivocada")
    assert reverted.status is LiquidationStatus.APPROVED
    assert reverted.payment_movement_id is None
    assert db.session.get(Transaction, payout.id).status is TransactionStatus.CANCELLED
    reversal = db_session.query(Transaction).filter_by(original_transaction_id=payout.id).one()
    assert reversal.type is TransactionType.INCOME
    assert _balance(open_session.id) == 20000

    cancelled = commission_service.cancel_liquidation(draft.id, manager.id)
    assert cancelled.status is LiquidationStatus.CANCELLED
    claimed = db_session.query(Transaction).filter(Transaction.commission_liquidation_id.isnot(None)).count()
    assert claimed == 0


def test_pay_again_after_revert(db_session, operator, manager, open_session, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    commission_service.pay_liquidation(draft.id, open_session.id, operator.id)
    commission_service.revert_payment(draft.id, manager.id, "error")

    repaid = commission_service.pay_liquidation(draft.id, open_session.id, operator.id)

    assert repaid.status is LiquidationStatus.PAID
    assert _balance(open_session.id) == 17000


def test_approve_requires_draft(db_session, manager, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    with pytest.raises(NotDraft):
        commission_service.approve_liquidation(draft.id, manager.id)


def test_pay_requires_approved(db_session, operator, open_session, draft):
    with pytest.raises(NotApproved):
        commission_service.pay_liquidation(draft.id, open_session.id, operator.id)

    assert _liquidation(draft.id).status is LiquidationStatus.DRAFT
    assert _balance(open_session.id) == 20000


def test_pay_into_closed_session_fails_atomically(db_session, operator, manager, open_session, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    register_service.close_session(open_session.id, 20000)

    with pytest.raises(SessionClosed):
        commission_service.pay_liquidation(draft.id, open_session.id, operator.id)

    liquidation = _liquidation(draft.id)
    assert liquidation.status is LiquidationStatus.APPROVED
    assert liquidation.payment_movement_id is None
    assert db_session.query(Transaction).filter_by(category=TransactionCategory.COMMISSION_LIQUIDATION).count() == 0


def test_pay_into_unknown_session(db_session, operator, manager, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    with pytest.raises(NotFoundError):
        commission_service.pay_liquidation(draft.id, 999999, operator.id)
    assert _liquidation(draft.id).status is LiquidationStatus.APPROVED


def test_revert_requires_paid(db_session, manager, draft):
    with pytest.raises(NotPaid):
        commission_service.revert_payment(draft.id, manager.id, "x")


def test_revert_when_payout_already_cancelled(db_session, operator, manager, open_session, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    paid = commission_service.pay_liquidation(draft.id, open_session.id, operator.id)
    payout_id = paid.payment_movement_id

    # Simulate an out-of-band cancellation of the payout row
    db.session.get(Transaction, payout_id).status = TransactionStatus.CANCELLED
    db_session.commit()

    with pytest.raises(AlreadyReverted):
        commission_service.revert_payment(draft.id, manager.id, "x")
    assert _liquidation(draft.id).status is LiquidationStatus.PAID


def test_revert_on_closed_session_rolls_back(db_session, operator, manager, open_session, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    commission_service.pay_liquidation(draft.id, open_session.id, operator.id)
    register_service.close_session(open_session.id, 17000)

    with pytest.raises(SessionClosed):
        commission_service.revert_payment(draft.id, manager.id, "tarde")

    liquidation = _liquidation(draft.id)
    assert liquidation.status is LiquidationStatus.PAID
    assert liquidation.payment_movement_id is not None


def test_paid_payout_cannot_be_cancelled_directly(db_session, operator, manager, open_session, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    paid = commission_service.pay_liquidation(draft.id, open_session.id, operator.id)

    with pytest.raises(PayoutLocked):
        transaction_service.cancel_transaction(paid.payment_movement_id, "x", operator.id)

    assert _balance(open_session.id) == 17000


def test_cancel_paid_liquidation_is_refused(db_session, operator, manager, open_session, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    commission_service.pay_liquidation(draft.id, open_session.id, operator.id)

    with pytest.raises(CannotCancelPaid):
        commission_service.cancel_liquidation(draft.id, manager.id)


def test_cancel_twice(db_session, manager, draft):
    commission_service.cancel_liquidation(draft.id, manager.id)
    with pytest.raises(LiquidationAlreadyCancelled):
        commission_service.cancel_liquidation(draft.id, manager.id)


def test_cancel_approved_releases_claims(db_session, manager, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    commission_service.cancel_liquidation(draft.id, manager.id)

    db.session.expire_all()
    assert db_session.query(Transaction).filter_by(commission_liquidation_id=draft.id).count() == 0


def test_paid_payout_cannot_be_voided_after_close(db_session, operator, manager, open_session, draft):
    commission_service.approve_liquidation(draft.id, manager.id)
    paid = commission_service.pay_liquidation(draft.id, open_session.id, operator.id)
    payout_id = paid.payment_movement_id
    register_service.close_session(open_session.id, 17000)

    with pytest.raises(PayoutLocked):
        transaction_service.void_transaction(payout_id, "auditoría", manager.id)

    db.session.expire_all()
    assert db.session.get(Transaction, payout_id).status is TransactionStatus.ACTIVE
    assert _liquidation(draft.id).status is LiquidationStatus.PAID


def test_claimed_service_payment_cannot_be_cancelled(db_session, operator, manager, open_session, draft):
    source_id = draft.details[0].payment_movement_id

    with pytest.raises(ClaimedByLiquidation):
        transaction_service.cancel_transaction(source_id, "devolución", operator.id)

    db.session.expire_all()
    assert db.session.get(Transaction, source_id).status is TransactionStatus.ACTIVE
    assert _balance(open_session.id) == 20000

    # Still refused once approved; cancelling the liquidation releases the payment
    commission_service.approve_liquidation(draft.id, manager.id)
    with pytest.raises(ClaimedByLiquidation):
        transaction_service.cancel_transaction(source_id, "devolución", operator.id)

    commission_service.cancel_liquidation(draft.id, manager.id)
    cancelled = transaction_service.cancel_transaction(source_id, "devolución", operator.id)
    assert cancelled.status is TransactionStatus.CANCELLED
    assert _balance(open_session.id) == 10000

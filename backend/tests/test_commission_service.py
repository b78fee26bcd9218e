"""
Tests for commission computation and liquidation generation.

Covers the percentage fallback order, data-integrity failures, half-up
rounding, the unweighted mean percentage and claim exclusivity.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from treasury.extensions import db
from treasury.models import (
    CommissionLiquidation, LiquidationStatus, MedicalService, Professional, Transaction,
)
from treasury.services import commission_service, transaction_service
from treasury.services.errors import (
    DataIntegrityError, EmptySelection, InvalidPeriod, MissingCommissionConfiguration, NotFoundError,
)
from treasury.time_utils import utcnow


def _today():
    return utcnow().date()


def _pay(session, operator, professional, request, amount_cents):
    return transaction_service.record_service_payment(
        session.id, amount_cents, operator.id,
        service_request_id=request.id,
        professional_id=professional.id,
    )


# =============================================================================
# PURE COMPUTATION
# =============================================================================

@pytest.mark.parametrize("amount,pct,expected", [
    (10000, "30.00", 3000),
    (3333, "15.00", 500),       # 499.95 -> 500
    (3331, "15.00", 500),       # 499.65 -> 500
    (3330, "15.00", 500),       # 499.50 -> 500 (half-up)
    (1, "50.00", 1),            # 0.5 -> 1
    (1, "49.99", 0),
    (12345, "12.50", 1543),     # 1543.125 -> 1543
])
def test_calculate_commission_rounds_half_up(amount, pct, expected):
    assert commission_service.calculate_commission(amount, Decimal(pct)) == expected


def test_resolve_prefers_detail_snapshot():
    detail = type("Detail", (), {"professional_commission_percentage": Decimal("40.00")})()
    professional = Professional(id=1, full_name="X", commission_percentage=Decimal("30.00"))
    service = MedicalService(id=2, code="A", name="A", default_commission_percentage=Decimal("20.00"))

    assert commission_service.resolve_commission_percentage(detail, professional, service) == Decimal("40.00")


def test_resolve_skips_zero_and_missing_values():
    detail = type("Detail", (), {"professional_commission_percentage": Decimal("0.00")})()
    professional = Professional(id=1, full_name="X", commission_percentage=None)
    service = MedicalService(id=2, code="A", name="A", default_commission_percentage=Decimal("20.00"))

    assert commission_service.resolve_commission_percentage(detail, professional, service) == Decimal("20.00")


def test_resolve_falls_back_to_professional():
    professional = Professional(id=1, full_name="X", commission_percentage=Decimal("35.00"))
    service = MedicalService(id=2, code="A", name="A", default_commission_percentage=Decimal("20.00"))

    assert commission_service.resolve_commission_percentage(None, professional, service) == Decimal("35.00")


def test_resolve_raises_when_nothing_configured():
    professional = Professional(id=1, full_name="X", commission_percentage=Decimal("0"))
    service = MedicalService(id=2, code="A", name="A", default_commission_percentage=None)

    with pytest.raises(MissingCommissionConfiguration) as excinfo:
        commission_service.resolve_commission_percentage(None, professional, service, transaction_id=77)

    assert excinfo.value.transaction_id == 77
    assert excinfo.value.service_id == 2


# =============================================================================
# COMMISSION DATA
# =============================================================================

def test_commission_data_uses_fallback_order(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    with_snapshot = make_service_request(professional, medical_service, percentage=Decimal("40.00"))
    without_snapshot = make_service_request(professional, medical_service)
    _pay(open_session, operator, professional, with_snapshot, 10000)
    _pay(open_session, operator, professional, without_snapshot, 10000)

    data = commission_service.compute_commission_data(professional.id, _today(), _today())

    assert [line.commission_percentage for line in data.services] == [Decimal("40.00"), Decimal("30.00")]
    assert [line.commission_amount_cents for line in data.services] == [4000, 3000]
    summary = data.summary
    assert summary.total_services == 2
    assert summary.gross_amount_cents == 20000
    assert summary.commission_amount_cents == 7000
    assert summary.commission_percentage == Decimal("35.00")


def test_commission_data_falls_back_to_service_default(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    professional.commission_percentage = None
    db_session.commit()
    request = make_service_request(professional, medical_service)
    _pay(open_session, operator, professional, request, 5000)

    data = commission_service.compute_commission_data(professional.id, _today(), _today())

    assert data.services[0].commission_percentage == Decimal("20.00")
    assert data.services[0].commission_amount_cents == 1000


def test_mean_percentage_is_not_weighted_by_amount(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    small = make_service_request(professional, medical_service, percentage=Decimal("10.00"))
    large = make_service_request(professional, medical_service, percentage=Decimal("50.00"))
    _pay(open_session, operator, professional, small, 1000)
    _pay(open_session, operator, professional, large, 99000)

    summary = commission_service.compute_commission_data(professional.id, _today(), _today()).summary

    assert summary.commission_percentage == Decimal("30.00")
    assert summary.commission_amount_cents == 100 + 49500


def test_missing_configuration_is_an_error_not_zero(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    professional.commission_percentage = None
    medical_service.default_commission_percentage = None
    db_session.commit()
    request = make_service_request(professional, medical_service)
    payment = _pay(open_session, operator, professional, request, 5000)

    with pytest.raises(MissingCommissionConfiguration) as excinfo:
        commission_service.compute_commission_data(professional.id, _today(), _today())

    assert excinfo.value.transaction_id == payment.id


def test_payment_without_medical_service_is_integrity_error(
    db_session, operator, open_session, professional, make_service_request
):
    request = make_service_request(professional, None)
    payment = _pay(open_session, operator, professional, request, 5000)

    with pytest.raises(DataIntegrityError) as excinfo:
        commission_service.compute_commission_data(professional.id, _today(), _today())

    assert not isinstance(excinfo.value, MissingCommissionConfiguration)
    assert excinfo.value.transaction_id == payment.id


def test_excludes_cancelled_unrelated_and_out_of_period_payments(
    db_session, operator, open_session, professional, medical_service, service_request
):
    kept = _pay(open_session, operator, professional, service_request, 10000)
    cancelled = _pay(open_session, operator, professional, service_request, 7000)
    transaction_service.cancel_transaction(cancelled.id, "error", operator.id)
    transaction_service.record_income(open_session.id, 3000, "Venta", operator.id, professional_id=professional.id)
    old = _pay(open_session, operator, professional, service_request, 8000)
    db.session.get(Transaction, old.id).created_at = utcnow() - timedelta(days=40)
    db_session.commit()

    data = commission_service.compute_commission_data(professional.id, _today(), _today())

    assert [line.transaction_id for line in data.services] == [kept.id]


def test_period_includes_whole_end_day(
    db_session, operator, open_session, professional, medical_service, service_request
):
    payment = _pay(open_session, operator, professional, service_request, 10000)
    end_day = date(2026, 3, 31)
    db.session.get(Transaction, payment.id).created_at = utcnow().replace(
        year=2026, month=3, day=31, hour=23, minute=59, second=59
    )
    db_session.commit()

    data = commission_service.compute_commission_data(professional.id, date(2026, 3, 1), end_day)
    assert len(data.services) == 1

    next_period = commission_service.compute_commission_data(professional.id, date(2026, 4, 1), date(2026, 4, 30))
    assert next_period.services == []


def test_service_date_uses_scheduled_date(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    scheduled = _today() - timedelta(days=3)
    request = make_service_request(professional, medical_service, scheduled_date=scheduled)
    _pay(open_session, operator, professional, request, 10000)

    line = commission_service.compute_commission_data(professional.id, _today(), _today()).services[0]
    assert line.service_date == scheduled
    assert line.payment_date == _today()


def test_unknown_professional(db_session):
    with pytest.raises(NotFoundError):
        commission_service.compute_commission_data(4242, _today(), _today())


# =============================================================================
# GENERATION
# =============================================================================

def test_generate_liquidation_creates_draft_and_claims(
    db_session, operator, open_session, professional, medical_service, service_request
):
    payment = _pay(open_session, operator, professional, service_request, 10000)

    liquidation = commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)

    assert liquidation.status is LiquidationStatus.DRAFT
    assert liquidation.total_services == 1
    assert liquidation.gross_amount_cents == 10000
    assert liquidation.commission_amount_cents == 3000
    assert liquidation.commission_percentage == Decimal("30.00")
    assert len(liquidation.details) == 1
    detail = liquidation.details[0]
    assert detail.payment_movement_id == payment.id
    assert detail.commission_amount_cents == 3000
    assert detail.medical_service_id == medical_service.id

    db.session.expire_all()
    assert db.session.get(Transaction, payment.id).commission_liquidation_id == liquidation.id


def test_header_amount_equals_sum_of_details(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    for amount, pct in ((3333, "15.00"), (3331, "15.00"), (12345, "12.50")):
        request = make_service_request(professional, medical_service, percentage=Decimal(pct))
        _pay(open_session, operator, professional, request, amount)

    liquidation = commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)

    assert liquidation.commission_amount_cents == sum(d.commission_amount_cents for d in liquidation.details)
    assert liquidation.commission_amount_cents == 500 + 500 + 1543


def test_same_payment_is_never_liquidated_twice(
    db_session, operator, open_session, professional, medical_service, service_request
):
    _pay(open_session, operator, professional, service_request, 10000)
    commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)

    with pytest.raises(EmptySelection):
        commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)

    assert db_session.query(CommissionLiquidation).count() == 1


def test_cancelled_liquidation_releases_payments(
    db_session, operator, open_session, professional, medical_service, service_request
):
    _pay(open_session, operator, professional, service_request, 10000)
    first = commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)
    commission_service.cancel_liquidation(first.id, operator.id)

    second = commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)
    assert second.id != first.id
    assert second.commission_amount_cents == 3000


def test_service_request_filter(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    wanted = make_service_request(professional, medical_service)
    other = make_service_request(professional, medical_service)
    _pay(open_session, operator, professional, wanted, 10000)
    left_out = _pay(open_session, operator, professional, other, 20000)

    liquidation = commission_service.generate_liquidation(
        professional.id, _today(), _today(), operator.id, service_request_ids=[wanted.id]
    )

    assert [d.service_request_id for d in liquidation.details] == [wanted.id]
    db.session.expire_all()
    assert db.session.get(Transaction, left_out.id).commission_liquidation_id is None


def test_filter_matching_nothing_is_empty_selection(
    db_session, operator, open_session, professional, medical_service, service_request
):
    _pay(open_session, operator, professional, service_request, 10000)

    with pytest.raises(EmptySelection):
        commission_service.generate_liquidation(
            professional.id, _today(), _today(), operator.id, service_request_ids=[999999]
        )


def test_inverted_period_is_rejected(db_session, operator, professional):
    with pytest.raises(InvalidPeriod):
        commission_service.generate_liquidation(professional.id, date(2026, 2, 1), date(2026, 1, 1), operator.id)


def test_failed_generation_leaves_nothing_behind(
    db_session, operator, open_session, professional, medical_service, make_service_request
):
    good = make_service_request(professional, medical_service)
    broken = make_service_request(professional, None)
    good_payment = _pay(open_session, operator, professional, good, 10000)
    _pay(open_session, operator, professional, broken, 10000)

    with pytest.raises(DataIntegrityError):
        commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)

    assert db_session.query(CommissionLiquidation).count() == 0
    db.session.expire_all()
    assert db.session.get(Transaction, good_payment.id).commission_liquidation_id is None


def test_validate_period_warns_on_overlap(
    db_session, operator, open_session, professional, medical_service, service_request
):
    _pay(open_session, operator, professional, service_request, 10000)
    commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)

    warnings = commission_service.validate_liquidation_period(professional.id, _today(), _today())
    assert len(warnings) == 1
    assert "already covers" in warnings[0]

    assert commission_service.validate_liquidation_period(
        professional.id, _today() + timedelta(days=1), _today() + timedelta(days=2)
    ) == []


def test_pending_liquidations_and_report(
    db_session, operator, manager, open_session, professional, medical_service, make_service_request
):
    first = make_service_request(professional, medical_service)
    second = make_service_request(professional, medical_service)
    _pay(open_session, operator, professional, first, 10000)
    draft = commission_service.generate_liquidation(
        professional.id, _today(), _today(), operator.id, service_request_ids=[first.id]
    )
    _pay(open_session, operator, professional, second, 20000)
    paid = commission_service.generate_liquidation(professional.id, _today(), _today(), operator.id)
    commission_service.approve_liquidation(paid.id, manager.id)
    commission_service.pay_liquidation(paid.id, open_session.id, operator.id)

    pending = commission_service.get_pending_liquidations()
    assert [liq.id for liq in pending] == [draft.id]

    report = commission_service.get_commission_report(professional.id)
    assert report["summary"]["total_liquidations"] == 2
    assert report["summary"]["total_commission_cents"] == 3000 + 6000
    assert report["summary"]["paid_commission_cents"] == 6000
    assert report["summary"]["pending_commission_cents"] == 3000

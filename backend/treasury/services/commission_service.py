# Overview: Commission computation and liquidation lifecycle for medical professionals.

"""
Commission Liquidation Service

WHY: Professionals are paid a percentage of the services they performed and
the clinic collected. A liquidation freezes that computation for a period
and drives it through approval and payment out of a cash register session.

LIFECYCLE:
- draft -> approved -> paid
- paid -> approved (revert payment: payout cancelled with a compensating entry)
- draft/approved -> cancelled (claimed payments return to the pool)

CLAIMS: Transaction.commission_liquidation_id is set iff a non-cancelled
liquidation consumed that service payment. Claim and release happen only
through claim_transactions() / release_claims(), inside the same unit of
work as the liquidation change they belong to.

PERCENTAGE RESOLUTION (business rule, order is fixed):
1. percentage snapshotted on the service request detail, if > 0
2. the professional's configured percentage, if > 0
3. the medical service's default percentage, if > 0
4. otherwise MissingCommissionConfiguration (never a silent zero)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import (
    CommissionLiquidation, CommissionLiquidationDetail, LiquidationStatus, MedicalService, Professional,
    ServiceRequestDetail, Transaction, TransactionCategory, TransactionStatus, TransactionType,
)
from ..money import format_cents, mean_percentage, percent_of, to_percentage
from ..time_utils import period_bounds
from . import audit_service, transaction_service
from .concurrency import lock_for_update, unit_of_work
from .errors import (
    AlreadyLiquidated, AlreadyReverted, CannotCancelPaid, DataIntegrityError, EmptySelection, InvalidPeriod,
    LiquidationAlreadyCancelled, MissingCommissionConfiguration, NotApproved, NotDraft, NotFoundError, NotPaid,
)


@dataclass(frozen=True)
class CommissionLine:
    transaction_id: int
    service_request_id: int
    patient_id: int | None
    medical_service_id: int
    service_date: date
    payment_date: date
    service_amount_cents: int
    commission_percentage: Decimal
    commission_amount_cents: int

    def to_dict(self) -> dict:
        return {
            "movement_id": self.transaction_id,
            "service_request_id": self.service_request_id,
            "patient_id": self.patient_id,
            "medical_service_id": self.medical_service_id,
            "service_date": self.service_date.isoformat(),
            "payment_date": self.payment_date.isoformat(),
            "service_amount_cents": self.service_amount_cents,
            "commission_percentage": str(self.commission_percentage),
            "commission_amount_cents": self.commission_amount_cents,
        }


@dataclass(frozen=True)
class CommissionSummary:
    total_services: int
    gross_amount_cents: int
    commission_percentage: Decimal
    commission_amount_cents: int

    @classmethod
    def of(cls, lines: Iterable[CommissionLine]) -> "CommissionSummary":
        lines = list(lines)
        return cls(
            total_services=len(lines),
            gross_amount_cents=sum(line.service_amount_cents for line in lines),
            # Simple mean across services, not weighted by amount
            commission_percentage=mean_percentage(line.commission_percentage for line in lines),
            commission_amount_cents=sum(line.commission_amount_cents for line in lines),
        )

    def to_dict(self) -> dict:
        return {
            "total_services": self.total_services,
            "gross_amount_cents": self.gross_amount_cents,
            "commission_percentage": str(self.commission_percentage),
            "commission_amount_cents": self.commission_amount_cents,
        }


@dataclass(frozen=True)
class CommissionData:
    professional: Professional
    period_start: date
    period_end: date
    services: list[CommissionLine] = field(default_factory=list)

    @property
    def summary(self) -> CommissionSummary:
        return CommissionSummary.of(self.services)

    def to_dict(self) -> dict:
        return {
            "professional": self.professional.to_dict(),
            "period": {"start": self.period_start.isoformat(), "end": self.period_end.isoformat()},
            "summary": self.summary.to_dict(),
            "services": [line.to_dict() for line in self.services],
        }


# =============================================================================
# COMPUTATION
# =============================================================================

def calculate_commission(amount_cents: int, percentage) -> int:
    """Commission in cents for an amount, rounded half-up."""
    return percent_of(amount_cents, percentage)


def resolve_commission_percentage(
    detail: ServiceRequestDetail | None,
    professional: Professional,
    medical_service: MedicalService | None,
    *,
    transaction_id: int | None = None,
) -> Decimal:
    """First positive percentage in fallback order; raises when none is configured."""
    candidates = (
        detail.professional_commission_percentage if detail is not None else None,
        professional.commission_percentage,
        medical_service.default_commission_percentage if medical_service is not None else None,
    )
    for value in candidates:
        pct = to_percentage(value)
        if pct is not None and pct > 0:
            return pct

    service_id = medical_service.id if medical_service is not None else None
    raise MissingCommissionConfiguration(
        f"No commission percentage configured for professional {professional.id}"
        f" (service {service_id}, transaction {transaction_id})",
        transaction_id=transaction_id,
        service_id=service_id,
    )


def compute_commission_data(
    professional_id: int,
    start_date: date,
    end_date: date,
    *,
    lock: bool = False,
) -> CommissionData:
    """
    Commission lines for a professional's unliquidated service payments.

    Candidates are active SERVICE_PAYMENT incomes created within the
    inclusive [start_date, end_date] calendar window, tied to a service
    request and not yet claimed by a liquidation.

    Raises:
        NotFoundError: unknown professional
        DataIntegrityError: a candidate has no service request detail or no
            medical service
        MissingCommissionConfiguration: no percentage resolves for a candidate
    """
    professional = db.session.get(Professional, professional_id)
    if not professional:
        raise NotFoundError(f"Professional {professional_id} not found")

    lines = [
        _build_line(tx, professional)
        for tx in _candidate_transactions(professional_id, start_date, end_date, lock=lock)
    ]

    return CommissionData(
        professional=professional,
        period_start=start_date,
        period_end=end_date,
        services=lines,
    )


# =============================================================================
# LIQUIDATION LIFECYCLE
# =============================================================================

def generate_liquidation(
    professional_id: int,
    start_date: date,
    end_date: date,
    generated_by_user_id: int,
    service_request_ids: Iterable[int] | None = None,
) -> CommissionLiquidation:
    """
    Create a draft liquidation and claim its service payments.

    Candidate selection, liquidation/detail creation and the claim write are
    one unit of work under the professional's row lock; the claim is a
    conditional update, so a concurrent run can never claim the same payment.

    Raises:
        InvalidPeriod: start_date after end_date
        EmptySelection: nothing left to liquidate after filtering
    """
    if start_date > end_date:
        raise InvalidPeriod("Period start cannot be after period end")

    with unit_of_work():
        professional = lock_for_update(db.session.query(Professional).filter_by(id=professional_id)).first()
        if not professional:
            raise NotFoundError(f"Professional {professional_id} not found")

        # Overlaps are reported, not blocking: claims already exclude liquidated payments
        for warning in validate_liquidation_period(professional_id, start_date, end_date):
            current_app.logger.warning("Liquidation for professional %s: %s", professional_id, warning)

        data = compute_commission_data(professional_id, start_date, end_date, lock=True)
        lines = data.services
        if service_request_ids is not None:
            wanted = set(service_request_ids)
            lines = [line for line in lines if line.service_request_id in wanted]

        if not lines:
            raise EmptySelection("No paid services left to liquidate in the selected period")

        summary = CommissionSummary.of(lines)

        liquidation = CommissionLiquidation(
            professional_id=professional_id,
            period_start=start_date,
            period_end=end_date,
            total_services=summary.total_services,
            gross_amount_cents=summary.gross_amount_cents,
            commission_percentage=summary.commission_percentage,
            commission_amount_cents=summary.commission_amount_cents,
            status=LiquidationStatus.DRAFT,
            generated_by_user_id=generated_by_user_id,
        )
        db.session.add(liquidation)
        db.session.flush()

        for line in lines:
            db.session.add(CommissionLiquidationDetail(
                liquidation_id=liquidation.id,
                service_request_id=line.service_request_id,
                patient_id=line.patient_id,
                medical_service_id=line.medical_service_id,
                service_date=line.service_date,
                payment_date=line.payment_date,
                service_amount_cents=line.service_amount_cents,
                commission_percentage=line.commission_percentage,
                commission_amount_cents=line.commission_amount_cents,
                payment_movement_id=line.transaction_id,
            ))

        claim_transactions(liquidation.id, [line.transaction_id for line in lines])

        audit_service.record(
            entity_type="commission_liquidation",
            entity_id=liquidation.id,
            event="generated",
            new_values=audit_service.snapshot(liquidation),
            description=(
                f"Liquidation generated for professional {professional_id}: "
                f"{summary.total_services} services, commission {format_cents(summary.commission_amount_cents)}"
            ),
            user_id=generated_by_user_id,
        )

    current_app.logger.info(
        "Liquidation %s generated for professional %s (%s services, %s)",
        liquidation.id, professional_id, summary.total_services, format_cents(summary.commission_amount_cents),
    )
    return liquidation


def approve_liquidation(liquidation_id: int, approved_by_user_id: int) -> CommissionLiquidation:
    """draft -> approved."""
    with unit_of_work():
        liquidation = _lock_liquidation(liquidation_id)
        if liquidation.status is not LiquidationStatus.DRAFT:
            raise NotDraft(
                f"Only draft liquidations can be approved (liquidation {liquidation.id} is {liquidation.status.value})"
            )

        old_values = audit_service.snapshot(liquidation)
        liquidation.status = LiquidationStatus.APPROVED
        liquidation.approved_by_user_id = approved_by_user_id
        db.session.flush()

        audit_service.record(
            entity_type="commission_liquidation",
            entity_id=liquidation.id,
            event="approved",
            old_values=old_values,
            new_values=audit_service.snapshot(liquidation),
            description="Liquidation approved",
            user_id=approved_by_user_id,
        )

    return liquidation


def pay_liquidation(liquidation_id: int, cash_register_session_id: int, processed_by_user_id: int) -> CommissionLiquidation:
    """
    approved -> paid, recording the payout as a COMMISSION_LIQUIDATION expense.

    The payout goes through the transaction state machine, so a closed or
    missing session fails the whole operation with that machine's error.
    """
    with unit_of_work():
        liquidation = _lock_liquidation(liquidation_id)
        if liquidation.status is not LiquidationStatus.APPROVED:
            raise NotApproved(
                f"Only approved liquidations can be paid (liquidation {liquidation.id} is {liquidation.status.value})"
            )

        old_values = audit_service.snapshot(liquidation)

        payout = transaction_service.record_commission_payout(
            cash_register_session_id,
            liquidation.professional_id,
            liquidation.commission_amount_cents,
            f"Liquidación de comisiones - Período: {liquidation.period_start.isoformat()} "
            f"a {liquidation.period_end.isoformat()}",
            liquidation.id,
            processed_by_user_id,
        )

        liquidation.status = LiquidationStatus.PAID
        liquidation.payment_movement_id = payout.id
        db.session.flush()

        audit_service.record(
            entity_type="commission_liquidation",
            entity_id=liquidation.id,
            event="paid",
            old_values=old_values,
            new_values=audit_service.snapshot(liquidation),
            description=f"Liquidation paid from session {cash_register_session_id} (movement {payout.id})",
            user_id=processed_by_user_id,
        )

    current_app.logger.info("Liquidation %s paid with movement %s", liquidation.id, liquidation.payment_movement_id)
    return liquidation


def revert_payment(liquidation_id: int, reverted_by_user_id: int, reason: str) -> CommissionLiquidation:
    """
    paid -> approved, cancelling the payout with a compensating entry.

    Raises:
        NotPaid: liquidation is not paid
        AlreadyReverted: payout already cancelled or voided
        SessionClosed: payout's session is closed (from the state machine)
    """
    with unit_of_work():
        liquidation = _lock_liquidation(liquidation_id)
        if liquidation.status is not LiquidationStatus.PAID:
            raise NotPaid(
                f"Only paid liquidations can be reverted (liquidation {liquidation.id} is {liquidation.status.value})"
            )

        payout = db.session.get(Transaction, liquidation.payment_movement_id) if liquidation.payment_movement_id else None
        if payout is None:
            raise DataIntegrityError(
                f"Paid liquidation {liquidation.id} has no payment movement",
                transaction_id=liquidation.payment_movement_id,
            )
        if payout.status is not TransactionStatus.ACTIVE:
            raise AlreadyReverted(f"Payment movement {payout.id} is already {payout.status.value}")

        old_values = audit_service.snapshot(liquidation)

        # Leave 'paid' first so the payout is no longer locked to this liquidation
        liquidation.status = LiquidationStatus.APPROVED
        liquidation.payment_movement_id = None
        db.session.flush()

        transaction_service.cancel_transaction(payout.id, reason, reverted_by_user_id)

        audit_service.record(
            entity_type="commission_liquidation",
            entity_id=liquidation.id,
            event="payment_reverted",
            old_values=old_values,
            new_values=audit_service.snapshot(liquidation),
            description=f"Liquidation payment reverted (movement {payout.id}): {reason}",
            user_id=reverted_by_user_id,
        )

    current_app.logger.info("Liquidation %s payment reverted by user %s", liquidation.id, reverted_by_user_id)
    return liquidation


def cancel_liquidation(liquidation_id: int, cancelled_by_user_id: int | None = None) -> CommissionLiquidation:
    """
    draft/approved -> cancelled, releasing every claimed service payment.

    A paid liquidation must have its payment reverted first.
    """
    with unit_of_work():
        liquidation = _lock_liquidation(liquidation_id)
        if liquidation.status is LiquidationStatus.PAID:
            raise CannotCancelPaid(f"Liquidation {liquidation.id} is paid; revert the payment before cancelling")
        if liquidation.status is LiquidationStatus.CANCELLED:
            raise LiquidationAlreadyCancelled(f"Liquidation {liquidation.id} is already cancelled")
        if liquidation.status not in (LiquidationStatus.DRAFT, LiquidationStatus.APPROVED):
            raise ValueError(f"Unhandled liquidation status {liquidation.status!r}")

        old_values = audit_service.snapshot(liquidation)

        released = release_claims(liquidation.id)
        liquidation.status = LiquidationStatus.CANCELLED
        db.session.flush()

        audit_service.record(
            entity_type="commission_liquidation",
            entity_id=liquidation.id,
            event="cancelled",
            old_values=old_values,
            new_values=audit_service.snapshot(liquidation),
            description=f"Liquidation cancelled; {released} service payments released",
            user_id=cancelled_by_user_id,
        )

    current_app.logger.info("Liquidation %s cancelled (%s payments released)", liquidation.id, released)
    return liquidation


# =============================================================================
# CLAIMS
# =============================================================================

def claim_transactions(liquidation_id: int, transaction_ids: list[int]) -> None:
    """
    Stamp service payments with the liquidation that consumes them.

    Conditional on the rows still being unclaimed; if any was claimed in the
    meantime the enclosing unit of work is aborted.
    """
    if not transaction_ids:
        return
    claimed = db.session.query(Transaction).filter(
        Transaction.id.in_(transaction_ids),
        Transaction.commission_liquidation_id.is_(None),
    ).update({Transaction.commission_liquidation_id: liquidation_id}, synchronize_session="fetch")

    if claimed != len(transaction_ids):
        raise AlreadyLiquidated(
            f"{len(transaction_ids) - claimed} service payments were already claimed by another liquidation"
        )


def release_claims(liquidation_id: int) -> int:
    """Return a liquidation's service payments to the liquidatable pool."""
    return db.session.query(Transaction).filter(
        Transaction.commission_liquidation_id == liquidation_id,
    ).update({Transaction.commission_liquidation_id: None}, synchronize_session="fetch")


# =============================================================================
# QUERIES
# =============================================================================

def get_liquidation(liquidation_id: int) -> CommissionLiquidation:
    liquidation = db.session.get(CommissionLiquidation, liquidation_id)
    if not liquidation:
        raise NotFoundError(f"Commission liquidation {liquidation_id} not found")
    return liquidation


def get_pending_liquidations() -> list[CommissionLiquidation]:
    """Drafts awaiting approval, oldest first."""
    return db.session.query(CommissionLiquidation).filter(
        CommissionLiquidation.status == LiquidationStatus.DRAFT,
    ).order_by(CommissionLiquidation.created_at, CommissionLiquidation.id).all()


def get_commission_report(
    professional_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    professional = db.session.get(Professional, professional_id)
    if not professional:
        raise NotFoundError(f"Professional {professional_id} not found")

    query = db.session.query(CommissionLiquidation).filter_by(professional_id=professional_id)
    if start_date and end_date:
        query = query.filter(_overlaps(start_date, end_date))
    liquidations = query.order_by(CommissionLiquidation.period_end.desc(), CommissionLiquidation.id.desc()).all()

    def _total(statuses) -> int:
        return sum(liq.commission_amount_cents for liq in liquidations if liq.status in statuses)

    return {
        "professional": professional.to_dict(),
        "period": {
            "start": start_date.isoformat() if start_date else None,
            "end": end_date.isoformat() if end_date else None,
        },
        "summary": {
            "total_liquidations": len(liquidations),
            "total_commission_cents": sum(liq.commission_amount_cents for liq in liquidations),
            "paid_commission_cents": _total({LiquidationStatus.PAID}),
            "pending_commission_cents": _total({LiquidationStatus.DRAFT, LiquidationStatus.APPROVED}),
        },
        "liquidations": [liq.to_dict() for liq in liquidations],
    }


def validate_liquidation_period(professional_id: int, start_date: date, end_date: date) -> list[str]:
    """
    Advisory checks before generating a liquidation.

    An overlapping period is reported but does not block generation: claims
    already prevent any payment from being liquidated twice.
    """
    errors = []

    professional = db.session.get(Professional, professional_id)
    if not professional:
        errors.append("Professional not found.")

    if start_date > end_date:
        errors.append("Period start cannot be after period end.")

    if professional:
        overlapping = db.session.query(CommissionLiquidation).filter(
            CommissionLiquidation.professional_id == professional_id,
            CommissionLiquidation.status != LiquidationStatus.CANCELLED,
            _overlaps(start_date, end_date),
        ).first()
        if overlapping:
            errors.append(
                f"Liquidation {overlapping.id} already covers part of this period and is not cancelled."
            )

    return errors


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _candidate_transactions(professional_id: int, start_date: date, end_date: date, *, lock: bool):
    window_start, window_end = period_bounds(start_date, end_date)
    query = db.session.query(Transaction).filter(
        Transaction.professional_id == professional_id,
        Transaction.type == TransactionType.INCOME,
        Transaction.category == TransactionCategory.SERVICE_PAYMENT,
        Transaction.status == TransactionStatus.ACTIVE,
        Transaction.service_request_id.isnot(None),
        Transaction.commission_liquidation_id.is_(None),
        Transaction.created_at >= window_start,
        Transaction.created_at < window_end,
    ).order_by(Transaction.created_at, Transaction.id)
    if lock:
        query = lock_for_update(query)
    return query.all()


def _build_line(tx: Transaction, professional: Professional) -> CommissionLine:
    detail = _find_detail(tx)
    if detail is None:
        raise DataIntegrityError(
            f"Transaction {tx.id} references service request {tx.service_request_id} with no service detail",
            transaction_id=tx.id,
        )

    medical_service = detail.medical_service
    if medical_service is None:
        raise DataIntegrityError(
            f"Transaction {tx.id}: service detail {detail.id} has no valid medical service",
            transaction_id=tx.id,
            service_id=detail.medical_service_id,
        )

    percentage = resolve_commission_percentage(detail, professional, medical_service, transaction_id=tx.id)
    payment_date = tx.created_at.date()

    return CommissionLine(
        transaction_id=tx.id,
        service_request_id=tx.service_request_id,
        patient_id=tx.patient_id if tx.patient_id is not None else detail.service_request.patient_id,
        medical_service_id=medical_service.id,
        service_date=detail.scheduled_date or payment_date,
        payment_date=payment_date,
        service_amount_cents=tx.amount_cents,
        commission_percentage=percentage,
        commission_amount_cents=calculate_commission(tx.amount_cents, percentage),
    )


def _find_detail(tx: Transaction) -> ServiceRequestDetail | None:
    """The request line performed by this payment's professional, else the request's first line."""
    details = db.session.query(ServiceRequestDetail).filter_by(
        service_request_id=tx.service_request_id
    ).order_by(ServiceRequestDetail.id).all()
    for detail in details:
        if detail.professional_id == tx.professional_id:
            return detail
    return details[0] if details else None


def _overlaps(start_date: date, end_date: date):
    return db.and_(
        CommissionLiquidation.period_start <= end_date,
        CommissionLiquidation.period_end >= start_date,
    )


def _lock_liquidation(liquidation_id: int) -> CommissionLiquidation:
    liquidation = lock_for_update(
        db.session.query(CommissionLiquidation).filter_by(id=liquidation_id)
    ).first()
    if not liquidation:
        raise NotFoundError(f"Commission liquidation {liquidation_id} not found")
    return liquidation

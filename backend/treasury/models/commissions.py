from __future__ import annotations

from ..extensions import db
from ..money import to_percentage
from ..time_utils import to_iso_date, to_utc_z
from .enums import LiquidationStatus, enum_column


class CommissionLiquidation(db.Model):
    """
    Commission payable to a professional for a period.

    LIFECYCLE:
    - draft -> approved -> paid
    - paid -> approved (payment reverted)
    - draft/approved -> cancelled (claims on transactions released)

    INVARIANTS:
    - commission_amount_cents == sum(details.commission_amount_cents)
    - status paid <=> payment_movement_id references an active
      COMMISSION_LIQUIDATION expense
    """
    __tablename__ = "commission_liquidations"
    __table_args__ = (
        db.Index("ix_liquidations_professional_period", "professional_id", "period_start", "period_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    professional_id = db.Column(db.Integer, db.ForeignKey("professionals.id"), nullable=False, index=True)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    total_services = db.Column(db.Integer, nullable=False, default=0)
    gross_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    # Arithmetic mean of the per-service percentages (not amount-weighted)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    commission_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(enum_column(LiquidationStatus, 16), nullable=False, default=LiquidationStatus.DRAFT, index=True)

    generated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payment_movement_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id", use_alter=True, name="fk_liquidations_payment_movement"),
        nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    professional = db.relationship("Professional", backref=db.backref("liquidations", lazy=True))
    details = db.relationship(
        "CommissionLiquidationDetail",
        backref="liquidation",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CommissionLiquidationDetail.id",
    )
    payment_movement = db.relationship("Transaction", foreign_keys=[payment_movement_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_details: bool = False) -> dict:
        data = {
            "id": self.id,
            "professional_id": self.professional_id,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "total_services": self.total_services,
            "gross_amount_cents": self.gross_amount_cents,
            "commission_percentage": str(to_percentage(self.commission_percentage)),
            "commission_amount_cents": self.commission_amount_cents,
            "status": self.status.value,
            "generated_by_user_id": self.generated_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "payment_movement_id": self.payment_movement_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_details:
            data["details"] = [d.to_dict() for d in self.details]
        return data


class CommissionLiquidationDetail(db.Model):
    """
    One liquidated service payment. Immutable once created.

    payment_movement_id is the original SERVICE_PAYMENT income, not the
    liquidation payout.
    """
    __tablename__ = "commission_liquidation_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    liquidation_id = db.Column(
        db.Integer, db.ForeignKey("commission_liquidations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_request_id = db.Column(db.Integer, db.ForeignKey("service_requests.id"), nullable=False)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=True)
    medical_service_id = db.Column(db.Integer, db.ForeignKey("medical_services.id"), nullable=False)
    service_date = db.Column(db.Date, nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    service_amount_cents = db.Column(db.Integer, nullable=False)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    commission_amount_cents = db.Column(db.Integer, nullable=False)
    payment_movement_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "liquidation_id": self.liquidation_id,
            "service_request_id": self.service_request_id,
            "patient_id": self.patient_id,
            "medical_service_id": self.medical_service_id,
            "service_date": to_iso_date(self.service_date),
            "payment_date": to_iso_date(self.payment_date),
            "service_amount_cents": self.service_amount_cents,
            "commission_percentage": str(to_percentage(self.commission_percentage)),
            "commission_amount_cents": self.commission_amount_cents,
            "payment_movement_id": self.payment_movement_id,
        }

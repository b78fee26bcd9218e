from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import SessionStatus, TransactionCategory, TransactionStatus, TransactionType, enum_column


class CashRegisterSession(db.Model):
    """
    One operator's cash-register shift, from open to close.

    LIFECYCLE:
    - open: transactions can be recorded and cancelled
    - closed: final count stored, difference computed; only voids allowed

    TOTALS: total_income_cents, total_expenses_cents and
    calculated_balance_cents are derived from active, non-compensating
    transactions by
    ledger_service.recompute_totals and are never written anywhere else.
    """
    __tablename__ = "cash_register_sessions"
    __table_args__ = (
        # At most one open session per operator
        db.Index(
            "uq_cash_sessions_user_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(enum_column(SessionStatus, 16), nullable=False, default=SessionStatus.OPEN, index=True)

    opening_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closing_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking (all amounts in cents)
    initial_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_income_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expenses_cents = db.Column(db.Integer, nullable=False, default=0)
    calculated_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set at close
    final_physical_amount_cents = db.Column(db.Integer, nullable=True)
    difference_cents = db.Column(db.Integer, nullable=True)  # physical - calculated
    difference_justification = db.Column(db.Text, nullable=True)
    authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("cash_sessions", lazy=True))
    authorized_by = db.relationship("User", foreign_keys=[authorized_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status is SessionStatus.OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status.value,
            "opening_date": to_utc_z(self.opening_date),
            "closing_date": to_utc_z(self.closing_date),
            "initial_amount_cents": self.initial_amount_cents,
            "total_income_cents": self.total_income_cents,
            "total_expenses_cents": self.total_expenses_cents,
            "calculated_balance_cents": self.calculated_balance_cents,
            "final_physical_amount_cents": self.final_physical_amount_cents,
            "difference_cents": self.difference_cents,
            "difference_justification": self.difference_justification,
            "authorized_by_user_id": self.authorized_by_user_id,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class Transaction(db.Model):
    """
    Single cash movement recorded against a session.

    IMMUTABLE AMOUNT: amount_cents is always positive and never changes.
    Cancelling creates a compensating row of the opposite type pointing back
    through original_transaction_id; voiding only flags the row.

    CLAIM: commission_liquidation_id is set iff a non-cancelled liquidation
    has consumed this service payment. It is only written by the
    commission engine's claim/release helpers.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_session_status", "cash_register_session_id", "status"),
        db.Index("ix_transactions_professional_created", "professional_id", "created_at"),
        db.Index("ix_transactions_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_register_session_id = db.Column(
        db.Integer, db.ForeignKey("cash_register_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    type = db.Column(enum_column(TransactionType, 16), nullable=False)
    category = db.Column(enum_column(TransactionCategory, 32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    concept = db.Column(db.String(255), nullable=False)

    # Optional references
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=True, index=True)
    professional_id = db.Column(db.Integer, db.ForeignKey("professionals.id"), nullable=True)
    service_request_id = db.Column(db.Integer, db.ForeignKey("service_requests.id"), nullable=True, index=True)
    # Liquidation paid out by this expense (COMMISSION_LIQUIDATION only)
    liquidation_id = db.Column(db.Integer, db.ForeignKey("commission_liquidations.id"), nullable=True, index=True)
    # Liquidation that claimed this service payment
    commission_liquidation_id = db.Column(
        db.Integer, db.ForeignKey("commission_liquidations.id"), nullable=True, index=True
    )
    original_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    status = db.Column(enum_column(TransactionStatus, 16), nullable=False, default=TransactionStatus.ACTIVE)

    cancellation_reason = db.Column(db.Text, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    void_reason = db.Column(db.Text, nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    session = db.relationship(
        "CashRegisterSession",
        backref=db.backref("transactions", lazy=True, cascade="all, delete-orphan", passive_deletes=True),
    )
    original_transaction = db.relationship(
        "Transaction", remote_side=[id], backref=db.backref("reversals", lazy=True)
    )
    patient = db.relationship("Patient")
    professional = db.relationship("Professional")
    service_request = db.relationship("ServiceRequest")

    @property
    def is_active(self) -> bool:
        return self.status is TransactionStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_register_session_id": self.cash_register_session_id,
            "type": self.type.value,
            "category": self.category.value,
            "amount_cents": self.amount_cents,
            "concept": self.concept,
            "patient_id": self.patient_id,
            "professional_id": self.professional_id,
            "service_request_id": self.service_request_id,
            "liquidation_id": self.liquidation_id,
            "commission_liquidation_id": self.commission_liquidation_id,
            "original_transaction_id": self.original_transaction_id,
            "status": self.status.value,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "void_reason": self.void_reason,
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from ..money import to_percentage
from ..time_utils import to_iso_date


def _pct(value) -> str | None:
    pct = to_percentage(value)
    return str(pct) if pct is not None else None


class Patient(db.Model):
    __tablename__ = "patients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(32), nullable=True, unique=True)
    full_name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "full_name": self.full_name,
        }


class Professional(db.Model):
    """
    Medical professional earning commissions on paid services.

    commission_percentage is the professional's current configured rate;
    it is the second step of the commission fallback and may be unset.
    """
    __tablename__ = "professionals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "commission_percentage": _pct(self.commission_percentage),
            "is_active": self.is_active,
        }


class MedicalService(db.Model):
    """Catalog entry; default_commission_percentage is the last commission fallback."""
    __tablename__ = "medical_services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    default_commission_percentage = db.Column(db.Numeric(5, 2), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "default_commission_percentage": _pct(self.default_commission_percentage),
        }


class ServiceRequest(db.Model):
    __tablename__ = "service_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    request_number = db.Column(db.String(32), nullable=False, unique=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    patient = db.relationship("Patient", backref=db.backref("service_requests", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_number": self.request_number,
            "patient_id": self.patient_id,
        }


class ServiceRequestDetail(db.Model):
    """
    One requested service line.

    professional_commission_percentage is snapshotted when the request is
    created so later changes to the professional's rate do not alter what
    was agreed for this service.
    """
    __tablename__ = "service_request_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    service_request_id = db.Column(db.Integer, db.ForeignKey("service_requests.id"), nullable=False, index=True)
    medical_service_id = db.Column(db.Integer, db.ForeignKey("medical_services.id"), nullable=True, index=True)
    professional_id = db.Column(db.Integer, db.ForeignKey("professionals.id"), nullable=True, index=True)
    professional_commission_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    scheduled_date = db.Column(db.Date, nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    service_request = db.relationship("ServiceRequest", backref=db.backref("details", lazy=True))
    medical_service = db.relationship("MedicalService")
    professional = db.relationship("Professional")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_request_id": self.service_request_id,
            "medical_service_id": self.medical_service_id,
            "professional_id": self.professional_id,
            "professional_commission_percentage": _pct(self.professional_commission_percentage),
            "scheduled_date": to_iso_date(self.scheduled_date),
            "total_amount_cents": self.total_amount_cents,
        }

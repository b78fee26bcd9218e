"""
Pytest fixtures for treasury backend tests.

Provides an in-memory database, a test client and the clinic reference
data (operators, patient, professional, medical service, service request)
most cash and commission tests start from.
"""

from datetime import date
from decimal import Decimal

import pytest
from treasury import create_app
from treasury.extensions import db
from treasury.models import (
    User, Patient, Professional, MedicalService, ServiceRequest, ServiceRequestDetail,
)
from treasury.services import register_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CASH_DISCREPANCY_THRESHOLD_CENTS': 1000,
        'AUDIT_ENABLED': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test; schema is kept."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def operator(db_session):
    """Cashier running the register."""
    user = User(username="cajero1", name="Cajero Uno", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session):
    """Cash manager authorizing corrections."""
    user = User(username="jefe_caja", name="Jefe de Caja", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def patient(db_session):
    p = Patient(document_number="12345678", full_name="Ana Torres")
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def professional(db_session):
    """Professional with a configured 30% rate."""
    p = Professional(full_name="Dr. Luis Paredes", commission_percentage=Decimal("30.00"), is_active=True)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def medical_service(db_session):
    s = MedicalService(code="CONS-GEN", name="Consulta general", default_commission_percentage=Decimal("20.00"))
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def make_service_request(db_session, patient):
    """Factory for a one-line service request."""
    counter = {"n": 0}

    def _make(professional, medical_service, *, percentage=None, scheduled_date=None, amount_cents=10000):
        counter["n"] += 1
        request = ServiceRequest(request_number=f"SR-{counter['n']:04d}", patient_id=patient.id)
        db_session.add(request)
        db_session.flush()
        db_session.add(ServiceRequestDetail(
            service_request_id=request.id,
            medical_service_id=medical_service.id if medical_service is not None else None,
            professional_id=professional.id,
            professional_commission_percentage=percentage,
            scheduled_date=scheduled_date,
            total_amount_cents=amount_cents,
        ))
        db_session.commit()
        return request

    return _make


@pytest.fixture(scope='function')
def service_request(make_service_request, professional, medical_service):
    return make_service_request(professional, medical_service, scheduled_date=date.today())


@pytest.fixture(scope='function')
def open_session(db_session, operator):
    """Operator's open cash session with 100.00 in the drawer."""
    return register_service.open_session(operator.id, 10000)

import os
import tempfile

_tmp = tempfile.mkdtemp(prefix="hospital-tests-")
os.environ["SQLALCHEMY_DATABASE_URL"] = f"sqlite:///{_tmp}/test.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["UPLOAD_DIR"] = os.path.join(_tmp, "uploads")
os.environ["PRESCRIPTION_DIR"] = os.path.join(_tmp, "prescriptions")
os.environ["LOG_FILE"] = os.path.join(_tmp, "logs", "app.log")

from datetime import date, time, timedelta

import pytest
from fastapi.testclient import TestClient

import main
import models
import oauth2
import utils
from database import engine, SessionLocal

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def reset_db():
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


def make_user(db, role, email, name=None, status="active"):
    user = models.User(
        name=name or email.split("@")[0].title(),
        email=email,
        phone="+1 555 010 0000",
        password_hash=utils.hash(PASSWORD),
        role=role,
        status=status,
    )
    db.add(user)
    db.flush()
    return user


def make_doctor(db, email="doctor@example.com", status="approved", fee=150.0, license_number="LIC-001"):
    user = make_user(db, "doctor", email)
    doctor = models.Doctor(user_id=user.id, specialty="Cardiology", license_number=license_number, experience_years=8, consultation_fee=fee, status=status)
    db.add(doctor)
    db.flush()
    for day in models.WEEKDAYS:
        db.add(models.DoctorSchedule(doctor_id=doctor.id, day_of_week=day, start_time=time(9, 0), end_time=time(12, 0), slot_duration=30, break_time=15))
    db.commit()
    return doctor


def make_patient(db, email="patient@example.com"):
    user = make_user(db, "patient", email)
    patient = models.Patient(user_id=user.id, gender="female", date_of_birth=date(1990, 5, 17))
    db.add(patient)
    db.commit()
    return patient


def headers_for(user):
    token = oauth2.create_access_token({"user_id": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db):
    user = make_user(db, "admin", "admin@example.com")
    db.commit()
    return user


@pytest.fixture
def manager(db):
    user = make_user(db, "manager", "manager@example.com")
    db.add(models.Manager(user_id=user.id, department="Finance", position="Billing Lead"))
    db.commit()
    return user


@pytest.fixture
def doctor(db):
    return make_doctor(db)


@pytest.fixture
def patient(db):
    return make_patient(db)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def manager_headers(manager):
    return headers_for(manager)


@pytest.fixture
def doctor_headers(doctor):
    return headers_for(doctor.user)


@pytest.fixture
def patient_headers(patient):
    return headers_for(patient.user)


@pytest.fixture
def booking_date():
    return (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture
def book(client, doctor, patient_headers, booking_date):
    def _book(appointment_time="09:00", headers=None, **extra):
        body = {"doctor_id": doctor.id, "appointment_date": booking_date, "appointment_time": appointment_time, "reason": "Chest pain"}
        body.update(extra)
        return client.post("/api/appointments/create", json=body, headers=headers or patient_headers)
    return _book

import os
from datetime import date, datetime, time, timedelta, timezone

import models
from conftest import make_doctor, make_user


def add_certificate(db, doctor, status="pending"):
    certificate = models.Certificate(doctor_id=doctor.id, certificate_name="MBBS", issuing_authority="Medical Council", issue_date=date(2015, 6, 1), status=status)
    db.add(certificate)
    db.commit()
    return certificate.id


def test_pending_doctors_with_certificate_counts(client, db, admin_headers):
    pending = make_doctor(db, email="pending@example.com", status="pending", license_number="LIC-P")
    make_doctor(db, email="approved@example.com", license_number="LIC-A")
    add_certificate(db, pending)
    add_certificate(db, pending)
    data = client.get("/api/admin/pending-doctors", headers=admin_headers).json()["data"]
    assert [(d["email"], d["certificate_count"]) for d in data] == [("pending@example.com", 2)]


def test_approve_doctor_verifies_pending_certificates(client, db, admin, admin_headers):
    pending = make_doctor(db, email="pending@example.com", status="pending", license_number="LIC-P")
    first = add_certificate(db, pending)
    rejected = add_certificate(db, pending, status="rejected")
    r = client.post("/api/admin/approve-doctor", params={"id": pending.id}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["certificates_verified"] == 1

    db.expire_all()
    doctor = db.query(models.Doctor).filter(models.Doctor.id == pending.id).one()
    assert doctor.status == "approved"
    assert doctor.approved_by == admin.id
    statuses = {c.id: c.status for c in doctor.certificates}
    assert statuses == {first: "verified", rejected: "rejected"}

    assert client.post("/api/admin/approve-doctor", params={"id": pending.id}, headers=admin_headers).status_code == 400


def test_reject_doctor_deactivates_user(client, db, admin_headers):
    pending = make_doctor(db, email="pending@example.com", status="pending", license_number="LIC-P")
    r = client.post("/api/admin/reject-doctor", params={"id": pending.id}, json={"reason": "License could not be verified"}, headers=admin_headers)
    assert r.status_code == 200
    db.expire_all()
    doctor = db.query(models.Doctor).filter(models.Doctor.id == pending.id).one()
    assert doctor.status == "rejected"
    assert doctor.rejection_reason == "License could not be verified"
    assert doctor.user.status == "inactive"
    r = client.post("/api/auth/login", json={"email": "pending@example.com", "password": "secret123"})
    assert r.status_code == 401


def test_certificate_verification_is_idempotent(client, db, doctor, admin_headers):
    certificate_id = add_certificate(db, doctor)
    assert client.post("/api/admin/verify-certificate", params={"id": certificate_id}, headers=admin_headers).status_code == 200
    assert client.post("/api/admin/verify-certificate", params={"id": certificate_id}, headers=admin_headers).status_code == 200
    audits = db.query(models.AuditLog).filter(models.AuditLog.table_name == "certificates").count()
    assert audits == 1
    r = client.post("/api/admin/reject-certificate", params={"id": certificate_id}, headers=admin_headers)
    assert r.status_code == 400


def test_rejected_certificate_cannot_be_verified(client, db, doctor, admin_headers):
    certificate_id = add_certificate(db, doctor)
    r = client.post("/api/admin/reject-certificate", params={"id": certificate_id}, json={"reason": "Blurry scan"}, headers=admin_headers)
    assert r.status_code == 200
    assert client.post("/api/admin/verify-certificate", params={"id": certificate_id}, headers=admin_headers).status_code == 400
    listed = client.get("/api/admin/certificates", params={"status": "rejected"}, headers=admin_headers).json()["data"]
    assert listed["certificates"][0]["rejection_reason"] == "Blurry scan"
    assert listed["certificates"][0]["doctor_name"] == "Doctor"


def test_doctor_uploads_certificate(client, db, doctor, doctor_headers):
    r = client.post(
        "/api/admin/upload-certificate",
        data={"certificate_name": "Board certification", "issuing_authority": "Cardiology Board", "issue_date": "2019-03-01"},
        files={"certificate": ("board.pdf", b"%PDF-1.4 fake", "application/pdf")},
        headers=doctor_headers,
    )
    assert r.status_code == 200
    certificate = db.query(models.Certificate).filter(models.Certificate.id == r.json()["data"]["certificate_id"]).one()
    assert certificate.status == "pending"
    assert certificate.file_type == "application/pdf"

    r = client.post(
        "/api/admin/upload-certificate",
        data={"certificate_name": "Bad", "issuing_authority": "Nobody", "issue_date": "2019-03-01"},
        files={"certificate": ("run.exe", b"MZ", "application/octet-stream")},
        headers=doctor_headers,
    )
    assert r.status_code == 400


def test_dashboard_stats(client, db, admin, doctor, patient, admin_headers, book):
    make_doctor(db, email="pending@example.com", status="pending", license_number="LIC-P")
    book("09:00")
    client.post("/api/auth/login", json={"email": "patient@example.com", "password": "secret123"})
    stats = client.get("/api/admin/dashboard-stats", headers=admin_headers).json()["data"]
    roles = {row["role"]: row["count"] for row in stats["users_by_role"]}
    assert roles == {"admin": 1, "doctor": 2, "patient": 1}
    assert stats["pending_doctors"] == 1
    assert stats["pending_payments"] == 1
    assert stats["pending_certificates"] == 0
    activities = {row["activity"]: row["count"] for row in stats["recent_activity"]}
    assert activities == {"appointment_created": 1, "login": 1}
    assert len(stats["activity_by_day"]) == 7
    assert sum(day["count"] for day in stats["activity_by_day"]) == 2


def test_audit_and_activity_logs(client, db, admin_headers, doctor_headers, book):
    appointment_id = book("09:00").json()["data"]["appointment_id"]
    client.post("/api/appointments/approve", params={"id": appointment_id}, headers=doctor_headers)
    logs = client.get("/api/admin/audit-logs", params={"log_action": "status_change", "table": "appointments"}, headers=admin_headers).json()["data"]
    assert logs["pagination"]["total"] == 1
    assert logs["logs"][0]["new_values"] == {"status": "confirmed"}
    assert logs["logs"][0]["user_name"] == "Doctor"

    activity = client.get("/api/admin/activity-logs", params={"activity": "appointment"}, headers=admin_headers).json()["data"]
    assert [a["activity"] for a in activity["logs"]] == ["appointment_created"]


def test_admin_routes_require_admin(client, manager_headers):
    assert client.get("/api/admin/dashboard-stats", headers=manager_headers).status_code == 403
    assert client.get("/api/admin/users", headers=manager_headers).status_code == 403


NEW_USER = {"name": "Nina Nurse", "email": "nina@example.com", "phone": "+1 555 020 0000", "password": "secret123", "role": "patient", "gender": "female"}


def test_create_and_list_users(client, db, admin_headers):
    r = client.post("/api/admin/create-user", json=NEW_USER, headers=admin_headers)
    assert r.status_code == 200
    user_id = r.json()["data"]["user_id"]
    assert db.query(models.Patient).filter(models.Patient.user_id == user_id).count() == 1
    assert client.post("/api/admin/create-user", json=NEW_USER, headers=admin_headers).status_code == 400

    data = client.get("/api/admin/users", params={"role": "patient", "search": "nina"}, headers=admin_headers).json()["data"]
    assert data["pagination"]["total"] == 1
    assert data["users"][0]["gender"] == "female"
    assert "password_hash" not in data["users"][0]


def test_create_user_manager_needs_department(client, admin_headers):
    body = {**NEW_USER, "role": "manager"}
    assert client.post("/api/admin/create-user", json=body, headers=admin_headers).status_code == 400
    body.update(department="Finance", position="Cashier")
    assert client.post("/api/admin/create-user", json=body, headers=admin_headers).status_code == 200


def test_update_user_and_status(client, db, patient, admin_headers):
    other = make_user(db, "patient", "taken@example.com")
    db.commit()
    r = client.put("/api/admin/update-user", params={"id": patient.user_id}, json={"email": "taken@example.com"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["message"] == "Email already registered"

    r = client.put("/api/admin/update-user", params={"id": patient.user_id}, json={"name": "Renamed"}, headers=admin_headers)
    assert r.status_code == 200
    r = client.put("/api/admin/update-user-status", params={"id": other.id}, json={"status": "suspended"}, headers=admin_headers)
    assert r.status_code == 200

    db.expire_all()
    assert db.query(models.User.name).filter(models.User.id == patient.user_id).scalar() == "Renamed"
    assert db.query(models.User.status).filter(models.User.id == other.id).scalar() == "suspended"
    assert client.put("/api/admin/update-user-status", params={"id": other.id}, json={"status": "gone"}, headers=admin_headers).status_code == 400


def test_delete_user(client, db, admin, patient, admin_headers):
    r = client.delete("/api/admin/delete-user", params={"id": admin.id}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["message"] == "You cannot delete your own account"
    assert client.delete("/api/admin/delete-user", params={"id": patient.user_id}, headers=admin_headers).status_code == 200
    assert db.query(models.Patient).count() == 0
    assert client.delete("/api/admin/delete-user", params={"id": patient.user_id}, headers=admin_headers).status_code == 404


def test_manager_profiles(client, db, manager, manager_headers, admin_headers):
    body = {"name": "Omar Ops", "email": "omar@example.com", "phone": "+1 555 030 0000", "password": "secret123", "department": "Operations", "position": "Supervisor"}
    r = client.post("/api/admin/create-manager", json=body, headers=admin_headers)
    assert r.status_code == 200
    omar_id = r.json()["data"]["manager_id"]

    assert client.put("/api/admin/update-manager", json={"position": "Head of Billing"}, headers=manager_headers).status_code == 200
    r = client.put("/api/admin/update-manager", params={"user_id": omar_id}, json={"position": "Intern"}, headers=manager_headers)
    assert r.status_code == 403
    assert client.put("/api/admin/update-manager", params={"user_id": omar_id}, json={"department": "Logistics"}, headers=admin_headers).status_code == 200

    db.expire_all()
    positions = {m.user_id: (m.department, m.position) for m in db.query(models.Manager).all()}
    assert positions == {manager.id: ("Finance", "Head of Billing"), omar_id: ("Logistics", "Supervisor")}


def test_deleting_doctor_removes_prescription_documents(client, db, doctor, patient, doctor_headers, admin_headers):
    r = client.post("/api/prescriptions/create", json={"patient_id": patient.id, "diagnosis": "Hypertension"}, headers=doctor_headers)
    path = r.json()["data"]["pdf_path"]
    assert os.path.isfile(path)
    assert client.delete("/api/admin/delete-user", params={"id": doctor.user_id}, headers=admin_headers).status_code == 200
    assert not os.path.exists(path)
    assert db.query(models.Prescription).count() == 0


def test_today_appointments_use_utc_day(client, db, doctor, patient, admin_headers):
    today = datetime.now(timezone.utc).date()
    for offset in (0, 1):
        db.add(models.Appointment(patient_id=patient.id, doctor_id=doctor.id, appointment_date=today + timedelta(days=offset), appointment_time=time(9, 0), reason="Checkup"))
    db.commit()
    stats = client.get("/api/admin/dashboard-stats", headers=admin_headers).json()["data"]
    assert stats["today_appointments"] == 1
    assert stats["activity_by_day"][-1]["date"] == today.isoformat()

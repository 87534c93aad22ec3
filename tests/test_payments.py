import models


def booked_payment_id(db, book):
    appointment_id = book("09:00").json()["data"]["appointment_id"]
    return db.query(models.Payment.id).filter(models.Payment.appointment_id == appointment_id).scalar()


def test_manager_verifies_pending_payment_once(client, db, manager, manager_headers, book):
    payment_id = booked_payment_id(db, book)
    r = client.post("/api/appointments/verify-payment", params={"id": payment_id}, headers=manager_headers)
    assert r.status_code == 200
    payment = db.query(models.Payment).filter(models.Payment.id == payment_id).one()
    assert payment.status == "completed"
    assert payment.verified_by == manager.id
    assert payment.verified_at is not None

    r = client.post("/api/appointments/verify-payment", params={"id": payment_id}, headers=manager_headers)
    assert r.status_code == 400
    assert r.json()["message"] == "Payment already processed"


def test_manager_rejects_payment(client, db, manager_headers, book):
    payment_id = booked_payment_id(db, book)
    assert client.post("/api/appointments/reject-payment", params={"id": payment_id}, headers=manager_headers).status_code == 200
    assert db.query(models.Payment.status).filter(models.Payment.id == payment_id).scalar() == "failed"
    assert client.post("/api/appointments/verify-payment", params={"id": payment_id}, headers=manager_headers).status_code == 400


def test_only_managers_verify(client, db, admin_headers, patient_headers, book):
    payment_id = booked_payment_id(db, book)
    assert client.post("/api/appointments/verify-payment", params={"id": payment_id}, headers=admin_headers).status_code == 403
    assert client.post("/api/appointments/verify-payment", params={"id": payment_id}, headers=patient_headers).status_code == 403


def test_unknown_payment_is_404(client, manager_headers):
    assert client.post("/api/appointments/verify-payment", params={"id": 999}, headers=manager_headers).status_code == 404


def test_create_payment_rejected_when_one_exists(client, db, patient_headers, book):
    appointment_id = book("09:00").json()["data"]["appointment_id"]
    r = client.post("/api/appointments/create-payment", json={"appointment_id": appointment_id, "payment_method": "card"}, headers=patient_headers)
    assert r.status_code == 400
    assert db.query(models.Payment).count() == 1


def test_create_payment_for_appointment_without_one(client, db, patient_headers, book):
    appointment_id = book("09:00").json()["data"]["appointment_id"]
    db.query(models.Payment).delete()
    db.commit()
    r = client.post("/api/appointments/create-payment", json={"appointment_id": appointment_id, "payment_method": "card"}, headers=patient_headers)
    assert r.status_code == 200
    assert r.json()["data"]["amount"] == 150.0


def test_payments_list_scoping(client, manager_headers, patient_headers, doctor_headers, book):
    book("09:00")
    assert client.get("/api/appointments/payments", headers=patient_headers).json()["data"]["pagination"]["total"] == 1
    data = client.get("/api/appointments/payments", params={"status": "pending"}, headers=manager_headers).json()["data"]
    assert data["payments"][0]["doctor_name"] == "Doctor"
    assert client.get("/api/appointments/payments", headers=doctor_headers).status_code == 403

import os

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import main
import models
import storage
from conftest import make_doctor, make_patient, headers_for

PRESCRIPTION = {
    "diagnosis": "Seasonal <b>allergy</b>",
    "symptoms": "Sneezing",
    "notes": "Avoid pollen",
    "medicines": [
        {"medicine_name": "Cetirizine", "dosage": "10mg", "frequency": "once daily", "duration": "7 days", "quantity": 7},
    ],
    "tests": [
        {"test_name": "IgE level", "urgency": "routine"},
    ],
}


def create(client, patient, headers, **overrides):
    return client.post("/api/prescriptions/create", json={**PRESCRIPTION, "patient_id": patient.id, **overrides}, headers=headers)


def test_create_writes_lines_and_document(client, db, patient, doctor_headers):
    r = create(client, patient, doctor_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["prescription_number"].startswith("RX")
    assert len(data["prescription_number"]) == 14
    assert os.path.isfile(data["pdf_path"])
    with open(data["pdf_path"], encoding="utf-8") as f:
        html = f.read()
    assert "Cetirizine" in html
    assert "&lt;b&gt;allergy&lt;/b&gt;" in html

    prescription = db.query(models.Prescription).filter(models.Prescription.id == data["prescription_id"]).one()
    assert [m.medicine_name for m in prescription.medicines] == ["Cetirizine"]
    assert [t.test_name for t in prescription.tests] == ["IgE level"]


def test_create_requires_active_patient(client, db, patient, doctor_headers):
    patient.user.status = "inactive"
    db.commit()
    assert create(client, patient, doctor_headers).status_code == 400


def test_only_doctors_create(client, patient, patient_headers):
    assert create(client, patient, patient_headers).status_code == 403


def test_update_replaces_line_items(client, db, patient, doctor_headers):
    prescription_id = create(client, patient, doctor_headers).json()["data"]["prescription_id"]
    r = client.put(
        "/api/prescriptions/update",
        params={"id": prescription_id},
        json={"diagnosis": "Allergic rhinitis", "medicines": [{"medicine_name": "Loratadine"}, {"medicine_name": "Saline spray"}]},
        headers=doctor_headers,
    )
    assert r.status_code == 200
    data = client.get("/api/prescriptions/get", params={"id": prescription_id}, headers=doctor_headers).json()["data"]
    assert data["diagnosis"] == "Allergic rhinitis"
    assert [m["medicine_name"] for m in data["medicines"]] == ["Loratadine", "Saline spray"]
    assert [t["test_name"] for t in data["tests"]] == ["IgE level"]
    assert db.query(models.PrescriptionMedicine).count() == 2


def test_patients_see_only_their_prescriptions(client, db, patient, patient_headers, doctor_headers):
    create(client, patient, doctor_headers)
    other = make_patient(db, email="other@example.com")
    other_id = create(client, other, doctor_headers).json()["data"]["prescription_id"]
    listed = client.get("/api/prescriptions/list", headers=patient_headers).json()["data"]
    assert listed["pagination"]["total"] == 1
    assert listed["prescriptions"][0]["medicine_count"] == 1
    assert client.get("/api/prescriptions/get", params={"id": other_id}, headers=patient_headers).status_code == 404


def test_other_doctor_cannot_update(client, db, patient, doctor_headers):
    prescription_id = create(client, patient, doctor_headers).json()["data"]["prescription_id"]
    stranger = make_doctor(db, email="stranger@example.com", license_number="LIC-S")
    r = client.put("/api/prescriptions/update", params={"id": prescription_id}, json={"notes": "x"}, headers=headers_for(stranger.user))
    assert r.status_code == 404


def test_print_and_delete(client, db, patient, patient_headers, doctor_headers):
    data = create(client, patient, doctor_headers).json()["data"]
    printed = client.get("/api/prescriptions/print", params={"id": data["prescription_id"]}, headers=patient_headers).json()["data"]
    assert printed["pdf_path"] == data["pdf_path"]
    assert printed["download_url"].startswith("/api/download?file=")

    assert client.delete("/api/prescriptions/delete", params={"id": data["prescription_id"]}, headers=patient_headers).status_code == 403
    assert client.delete("/api/prescriptions/delete", params={"id": data["prescription_id"]}, headers=doctor_headers).status_code == 200
    assert not os.path.exists(data["pdf_path"])
    assert db.query(models.PrescriptionMedicine).count() == 0
    assert client.get("/api/prescriptions/print", params={"id": data["prescription_id"]}, headers=doctor_headers).status_code == 404


def test_print_missing_document_is_404(client, patient, doctor_headers):
    data = create(client, patient, doctor_headers).json()["data"]
    os.remove(data["pdf_path"])
    assert client.get("/api/prescriptions/print", params={"id": data["prescription_id"]}, headers=doctor_headers).status_code == 404


def test_templates(client, doctor_headers, patient_headers):
    template = {"template_name": "Common cold", "diagnosis": "Viral URTI", "medicines": [{"medicine_name": "Paracetamol", "dosage": "500mg"}]}
    r = client.post("/api/prescriptions/save-template", json=template, headers=doctor_headers)
    assert r.status_code == 200
    template_id = r.json()["data"]["template_id"]

    templates = client.get("/api/prescriptions/templates", headers=doctor_headers).json()["data"]
    assert [t["template_name"] for t in templates] == ["Common cold"]

    skeleton = client.post("/api/prescriptions/use-template", params={"template_id": template_id}, headers=doctor_headers).json()["data"]
    assert skeleton["diagnosis"] == "Viral URTI"
    assert skeleton["medicines"][0]["medicine_name"] == "Paracetamol"
    assert skeleton["tests"] == []
    assert client.post("/api/prescriptions/use-template", params={"template_id": 999}, headers=doctor_headers).status_code == 404
    assert client.get("/api/prescriptions/templates", headers=patient_headers).status_code == 403


def test_unknown_catalog_ids_are_rejected(client, db, patient, doctor_headers):
    r = create(client, patient, doctor_headers, medicines=[{"medicine_id": 999, "medicine_name": "Ghost"}])
    assert r.status_code == 400
    assert r.json()["message"] == "Medicine not found"
    r = create(client, patient, doctor_headers, tests=[{"test_id": 999, "test_name": "Ghost panel"}])
    assert r.status_code == 400
    assert r.json()["message"] == "Test not found"
    assert db.query(models.Prescription).count() == 0

    prescription_id = create(client, patient, doctor_headers).json()["data"]["prescription_id"]
    r = client.put("/api/prescriptions/update", params={"id": prescription_id}, json={"tests": [{"test_id": 999, "test_name": "Ghost panel"}]}, headers=doctor_headers)
    assert r.status_code == 400
    assert [t.test_name for t in db.query(models.PrescriptionTest).all()] == ["IgE level"]


def test_catalog_lines_link_to_medicines(client, db, patient, admin_headers, doctor_headers):
    medicine_id = client.post("/api/medicines/create", json={"name": "Cetirizine", "generic_name": "Cetirizine hydrochloride", "manufacturer": "Acme Pharma", "dosage_form": "tablet", "strength": "10mg", "category": "Antihistamine", "price": 3.5}, headers=admin_headers).json()["data"]["medicine_id"]
    r = create(client, patient, doctor_headers, medicines=[{"medicine_id": medicine_id, "medicine_name": "Cetirizine"}])
    assert r.status_code == 200
    data = client.get("/api/prescriptions/get", params={"id": r.json()["data"]["prescription_id"]}, headers=doctor_headers).json()["data"]
    assert data["medicines"][0]["price"] == 3.5


def fail_commits(monkeypatch):
    def commit(self):
        raise RuntimeError("database went away")
    monkeypatch.setattr(Session, "commit", commit)


def test_failed_create_leaves_no_document(db, patient, doctor_headers, monkeypatch):
    folder = storage.prescription_root()
    before = set(os.listdir(folder))
    fail_commits(monkeypatch)
    with TestClient(main.app, raise_server_exceptions=False) as failing:
        assert create(failing, patient, doctor_headers).status_code == 500
    assert set(os.listdir(folder)) == before


def test_failed_update_keeps_published_document(client, patient, doctor_headers, monkeypatch):
    data = create(client, patient, doctor_headers).json()["data"]
    with open(data["pdf_path"], encoding="utf-8") as f:
        original = f.read()
    fail_commits(monkeypatch)
    with TestClient(main.app, raise_server_exceptions=False) as failing:
        r = failing.put("/api/prescriptions/update", params={"id": data["prescription_id"]}, json={"diagnosis": "Something else"}, headers=doctor_headers)
        assert r.status_code == 500
    with open(data["pdf_path"], encoding="utf-8") as f:
        assert f.read() == original
    assert not os.path.exists(data["pdf_path"] + ".tmp")

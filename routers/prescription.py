import logging
import os
from urllib.parse import quote
from fastapi import APIRouter, HTTPException, Depends, Query, Request
from sqlalchemy.orm import Session, aliased
from sqlalchemy import or_
from database import get_db
import models, schemas, utils, oauth2, accounts, responses, documents, storage
from activity import record_activity, record_audit
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api/prescriptions", tags=['Prescriptions'])

NUMBER_ATTEMPTS = 10

DoctorUser = aliased(models.User)
PatientUser = aliased(models.User)


def _new_number(db: Session):
    for _ in range(NUMBER_ATTEMPTS):
        number = utils.reference_number("RX", 4)
        if not db.query(models.Prescription.id).filter(models.Prescription.prescription_number == number).first():
            return number
    raise HTTPException(status_code=500, detail="Could not allocate a prescription number")


def _check_catalog(db: Session, medicines, tests):
    medicine_ids = {m.medicine_id for m in medicines or [] if m.medicine_id is not None}
    if medicine_ids and db.query(models.Medicine).filter(models.Medicine.id.in_(medicine_ids)).count() != len(medicine_ids):
        raise HTTPException(status_code=400, detail="Medicine not found")
    test_ids = {t.test_id for t in tests or [] if t.test_id is not None}
    if test_ids and db.query(models.PathologyTest).filter(models.PathologyTest.id.in_(test_ids)).count() != len(test_ids):
        raise HTTPException(status_code=400, detail="Test not found")


def _lines(medicines, tests):
    return (
        [models.PrescriptionMedicine(**m.model_dump()) for m in medicines],
        [models.PrescriptionTest(**t.model_dump()) for t in tests],
    )


def _scoped(db: Session, current_user: models.User):
    query = db.query(models.Prescription)
    if current_user.role == "doctor":
        query = query.filter(models.Prescription.doctor_id == accounts.get_doctor(db, current_user).id)
    elif current_user.role == "patient":
        query = query.filter(models.Prescription.patient_id == accounts.get_patient(db, current_user).id)
    return query


def _get_scoped(db: Session, id: int, current_user: models.User):
    prescription = _scoped(db, current_user).filter(models.Prescription.id == id).first()
    if not prescription:
        raise HTTPException(status_code=404, detail="Prescription not found")
    return prescription


def _summary(p: models.Prescription):
    return {
        "id": p.id,
        "prescription_number": p.prescription_number,
        "doctor_id": p.doctor_id,
        "patient_id": p.patient_id,
        "appointment_id": p.appointment_id,
        "diagnosis": p.diagnosis,
        "symptoms": p.symptoms,
        "notes": p.notes,
        "follow_up_date": p.follow_up_date,
        "prescription_date": p.prescription_date,
        "status": p.status,
        "pdf_path": p.pdf_path,
        "pdf_filename": p.pdf_filename,
        "doctor_name": p.doctor.user.name,
        "doctor_email": p.doctor.user.email,
        "doctor_specialty": p.doctor.specialty,
        "patient_name": p.patient.user.name,
        "patient_email": p.patient.user.email,
        "medicine_count": len(p.medicines),
        "test_count": len(p.tests),
    }


def _detail(p: models.Prescription):
    data = _summary(p)
    data["license_number"] = p.doctor.license_number
    data["medicines"] = [{
        "id": m.id,
        "medicine_id": m.medicine_id,
        "medicine_name": m.medicine_name,
        "dosage": m.dosage,
        "frequency": m.frequency,
        "duration": m.duration,
        "instructions": m.instructions,
        "quantity": m.quantity,
        "generic_name": m.medicine.generic_name if m.medicine else None,
        "manufacturer": m.medicine.manufacturer if m.medicine else None,
        "category": m.medicine.category if m.medicine else None,
        "price": m.medicine.price if m.medicine else None,
    } for m in p.medicines]
    data["tests"] = [{
        "id": t.id,
        "test_id": t.test_id,
        "test_name": t.test_name,
        "instructions": t.instructions,
        "urgency": t.urgency,
        "test_code": t.test.test_code if t.test else None,
        "category": t.test.category if t.test else None,
        "price": t.test.price if t.test else None,
        "duration_hours": t.test.duration_hours if t.test else None,
    } for t in p.tests]
    return data


def _stage_document(prescription: models.Prescription):
    document = documents.stage_prescription_document(prescription)
    prescription.pdf_path = document["filepath"]
    prescription.pdf_filename = document["filename"]
    return document


def _commit_with_document(db: Session, document: dict):
    """Commit, then move the staged document over the live one; a failed commit leaves the old file alone."""
    try:
        db.commit()
    except Exception:
        storage.delete_file(document["staged"])
        raise
    documents.publish_document(document)


@router.post("/create")
def create_prescription(details: schemas.PrescriptionInput, request: Request, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    patient = db.query(models.Patient).join(models.User, models.Patient.user_id == models.User.id).filter(models.Patient.id == details.patient_id).filter(models.User.status == "active").first()
    if not patient:
        raise HTTPException(status_code=400, detail="Patient not found")
    if details.appointment_id is not None:
        appointment = db.query(models.Appointment).filter(models.Appointment.id == details.appointment_id).filter(models.Appointment.doctor_id == doctor.id).filter(models.Appointment.patient_id == patient.id).first()
        if not appointment:
            raise HTTPException(status_code=400, detail="Appointment not found")

    _check_catalog(db, details.medicines, details.tests)
    medicines, tests = _lines(details.medicines, details.tests)
    prescription = models.Prescription(
        doctor_id=doctor.id,
        patient_id=patient.id,
        appointment_id=details.appointment_id,
        prescription_number=_new_number(db),
        diagnosis=details.diagnosis,
        symptoms=details.symptoms,
        notes=details.notes,
        follow_up_date=details.follow_up_date,
        status="active",
        medicines=medicines,
        tests=tests,
    )
    db.add(prescription)
    db.flush()
    db.refresh(prescription)
    document = _stage_document(prescription)
    record_activity(db, current_user.id, "prescription_created", {"prescription_id": prescription.id}, request)
    _commit_with_document(db, document)
    logger.info("Prescription created id=%s number=%s doctor_id=%s patient_id=%s", prescription.id, prescription.prescription_number, doctor.id, patient.id)
    return responses.success({"prescription_id": prescription.id, "prescription_number": prescription.prescription_number, "pdf_path": prescription.pdf_path}, "Prescription created successfully")


@router.get("/list")
def list_prescriptions(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), status: Optional[str] = None, search: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    query = _scoped(db, current_user)
    if status:
        query = query.filter(models.Prescription.status == status)
    if search:
        term = utils.like(search)
        query = query.join(models.Doctor, models.Prescription.doctor_id == models.Doctor.id).join(DoctorUser, models.Doctor.user_id == DoctorUser.id)
        query = query.join(models.Patient, models.Prescription.patient_id == models.Patient.id).join(PatientUser, models.Patient.user_id == PatientUser.id)
        query = query.filter(or_(models.Prescription.prescription_number.ilike(term), models.Prescription.diagnosis.ilike(term), DoctorUser.name.ilike(term), PatientUser.name.ilike(term)))
    query = query.order_by(models.Prescription.prescription_date.desc(), models.Prescription.id.desc())
    prescriptions, pagination = utils.paginate(query, page, limit)
    return responses.success({"prescriptions": [_summary(p) for p in prescriptions], "pagination": pagination})


@router.get("/get")
def get_prescription(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    return responses.success(_detail(_get_scoped(db, id, current_user)))


@router.put("/update")
def update_prescription(changes: schemas.PrescriptionUpdate, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    prescription = _get_scoped(db, id, current_user)
    _check_catalog(db, changes.medicines, changes.tests)
    fields = changes.model_dump(exclude_unset=True, exclude={"medicines", "tests"})
    for field, value in fields.items():
        if field in ("diagnosis", "status") and value is None:
            continue
        setattr(prescription, field, value)
    if changes.medicines is not None:
        prescription.medicines = _lines(changes.medicines, [])[0]
    if changes.tests is not None:
        prescription.tests = _lines([], changes.tests)[1]
    db.flush()
    db.refresh(prescription)
    document = _stage_document(prescription)
    record_audit(db, current_user.id, "update", "prescriptions", prescription.id, None, changes.model_dump(mode="json", exclude_unset=True))
    _commit_with_document(db, document)
    logger.info("Prescription updated id=%s by user_id=%s", prescription.id, current_user.id)
    return responses.success(None, "Prescription updated successfully")


@router.delete("/delete")
def delete_prescription(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor", "admin"))):
    prescription = _get_scoped(db, id, current_user)
    path = prescription.pdf_path
    number = prescription.prescription_number
    db.delete(prescription)
    record_audit(db, current_user.id, "delete", "prescriptions", id, {"prescription_number": number}, None)
    db.commit()
    storage.delete_file(path)
    logger.info("Prescription deleted id=%s by user_id=%s", id, current_user.id)
    return responses.success(None, "Prescription deleted successfully")


@router.get("/print")
def print_prescription(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    prescription = _get_scoped(db, id, current_user)
    if not prescription.pdf_path or not os.path.isfile(prescription.pdf_path):
        raise HTTPException(status_code=404, detail="Prescription document not found")
    return responses.success({"pdf_path": prescription.pdf_path, "download_url": "/api/download?file=" + quote(prescription.pdf_path, safe="")})


@router.get("/templates")
def list_templates(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    templates = db.query(models.PrescriptionTemplate).filter(models.PrescriptionTemplate.doctor_id == doctor.id).filter(models.PrescriptionTemplate.is_active == True).order_by(models.PrescriptionTemplate.created_at.desc(), models.PrescriptionTemplate.id.desc()).all()
    return responses.success([schemas.TemplateOutput.model_validate(t) for t in templates])


@router.post("/save-template")
def save_template(template: schemas.TemplateInput, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    new = models.PrescriptionTemplate(doctor_id=doctor.id, **template.model_dump(mode="json"))
    db.add(new)
    db.commit()
    db.refresh(new)
    logger.info("Prescription template saved id=%s doctor_id=%s", new.id, doctor.id)
    return responses.success({"template_id": new.id}, "Template saved successfully")


@router.post("/use-template")
def use_template(template_id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    template = db.query(models.PrescriptionTemplate).filter(models.PrescriptionTemplate.id == template_id).filter(models.PrescriptionTemplate.doctor_id == doctor.id).filter(models.PrescriptionTemplate.is_active == True).first()
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return responses.success({
        "diagnosis": template.diagnosis,
        "symptoms": template.symptoms,
        "notes": template.notes,
        "medicines": template.medicines,
        "tests": template.tests,
    })

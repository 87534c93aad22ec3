"""User accounts and their role profiles (doctor, patient, manager)."""
from datetime import date
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
import models, schemas, storage, utils


def get_doctor(db: Session, user: models.User) -> models.Doctor:
    doctor = db.query(models.Doctor).filter(models.Doctor.user_id == user.id).first()
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor profile not found")
    return doctor


def get_patient(db: Session, user: models.User) -> models.Patient:
    patient = db.query(models.Patient).filter(models.Patient.user_id == user.id).first()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient profile not found")
    return patient


def email_taken(db: Session, email: str) -> bool:
    return db.query(models.User.id).filter(models.User.email == email).first() is not None


def create_account(db: Session, payload, status: str = "active", files=None) -> models.User:
    """Insert the user and its role profile in the current transaction.

    ``payload`` is a RegisterInput/UserCreate/ManagerCreate. ``files`` is an
    optional multipart form carrying ``photo``, ``passport`` and
    ``certificates`` uploads.
    """
    if email_taken(db, payload.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    role = getattr(payload, "role", "manager")
    user = models.User(
        name=payload.name.strip(),
        email=payload.email,
        phone=payload.phone,
        password_hash=utils.hash(payload.password),
        role=role,
        status=status,
    )
    db.add(user)
    db.flush()

    if role == "doctor":
        _create_doctor(db, user, payload, files)
    elif role == "patient":
        _create_patient(db, user, payload, files)
    elif role == "manager":
        db.add(models.Manager(
            user_id=user.id,
            department=payload.department,
            position=payload.position,
            employee_id=payload.employee_id,
            hire_date=payload.hire_date or date.today(),
        ))
    db.flush()
    return user


def _upload(files, field, category, allowed):
    if files is None:
        return None
    upload = files.get(field)
    if upload is None or not getattr(upload, "filename", None):
        return None
    try:
        return storage.save_upload(upload, category, allowed)
    except storage.UploadRejected as e:
        raise HTTPException(status_code=400, detail=f"{field}: {e}")


def _create_doctor(db: Session, user: models.User, payload, files):
    if db.query(models.Doctor.id).filter(models.Doctor.license_number == payload.license_number).first():
        raise HTTPException(status_code=400, detail="License number already exists")
    doctor = models.Doctor(
        user_id=user.id,
        specialty=payload.specialty,
        license_number=payload.license_number,
        experience_years=payload.experience_years,
        consultation_fee=payload.consultation_fee,
        bio=payload.bio,
        status="pending",
    )
    photo = _upload(files, "photo", "doctors", storage.IMAGE_TYPES)
    if photo:
        doctor.photo_path = photo["filepath"]
        doctor.photo_filename = photo["filename"]
    db.add(doctor)
    db.flush()

    if files is None:
        return
    uploads = [f for f in files.getlist("certificates") if getattr(f, "filename", None)]
    for i, upload in enumerate(uploads):
        try:
            stored = storage.save_upload(upload, "certificates", ("pdf", "jpg", "jpeg", "png"))
        except storage.UploadRejected as e:
            raise HTTPException(status_code=400, detail=f"certificates: {e}")
        db.add(models.Certificate(
            doctor_id=doctor.id,
            certificate_name=_nth(payload.certificate_names, i) or "Certificate",
            issuing_authority=_nth(payload.certificate_authorities, i) or "Unknown",
            issue_date=_nth(payload.certificate_issue_dates, i) or date.today(),
            expiry_date=_nth(payload.certificate_expiry_dates, i),
            file_path=stored["filepath"],
            file_name=stored["filename"],
            file_size=stored["filesize"],
            file_type=stored["filetype"],
            status="pending",
        ))


def _create_patient(db: Session, user: models.User, payload, files):
    patient = models.Patient(
        user_id=user.id,
        date_of_birth=payload.date_of_birth,
        gender=payload.gender,
        address=payload.address,
        emergency_contact=payload.emergency_contact,
        nationality=payload.nationality,
        passport_number=payload.passport_number,
        passport_expiry=payload.passport_expiry,
    )
    photo = _upload(files, "photo", "patients", storage.IMAGE_TYPES)
    if photo:
        patient.photo_path = photo["filepath"]
        patient.photo_filename = photo["filename"]
    if payload.nationality == "international":
        passport = _upload(files, "passport", "passports", ("pdf", "jpg", "jpeg", "png"))
        if passport:
            patient.passport_path = passport["filepath"]
            patient.passport_filename = passport["filename"]
    db.add(patient)


def _nth(values, index):
    return values[index] if index < len(values) else None


def update_profile(db: Session, user: models.User, payload: schemas.ProfileUpdate, files=None):
    changes = payload.model_dump(exclude_unset=True)
    for field in ("name", "phone"):
        if field in changes and changes[field] is not None:
            setattr(user, field, changes[field])

    if user.role == "doctor":
        doctor = get_doctor(db, user)
        for field in ("specialty", "bio", "consultation_fee"):
            if field in changes and changes[field] is not None:
                setattr(doctor, field, changes[field])
        photo = _upload(files, "photo", "doctors", storage.IMAGE_TYPES)
        if photo:
            doctor.photo_path = photo["filepath"]
            doctor.photo_filename = photo["filename"]
    elif user.role == "patient":
        patient = get_patient(db, user)
        for field in ("address", "emergency_contact", "medical_history"):
            if field in changes:
                setattr(patient, field, changes[field])
        photo = _upload(files, "photo", "patients", storage.IMAGE_TYPES)
        if photo:
            patient.photo_path = photo["filepath"]
            patient.photo_filename = photo["filename"]
    elif user.role == "manager" and user.manager is not None:
        for field in ("department", "position"):
            if field in changes and changes[field] is not None:
                setattr(user.manager, field, changes[field])


def profile(user: models.User) -> dict:
    data = schemas.UserOutput.model_validate(user).model_dump()
    if user.doctor is not None:
        d = user.doctor
        data.update({
            "doctor_id": d.id,
            "specialty": d.specialty,
            "license_number": d.license_number,
            "experience_years": d.experience_years,
            "consultation_fee": d.consultation_fee,
            "bio": d.bio,
            "doctor_status": d.status,
            "photo_path": d.photo_path,
        })
    if user.patient is not None:
        p = user.patient
        data.update({
            "patient_id": p.id,
            "date_of_birth": p.date_of_birth,
            "gender": p.gender,
            "address": p.address,
            "emergency_contact": p.emergency_contact,
            "medical_history": p.medical_history,
            "nationality": p.nationality,
            "passport_number": p.passport_number,
            "passport_expiry": p.passport_expiry,
            "passport_path": p.passport_path,
            "photo_path": p.photo_path,
        })
    if user.manager is not None:
        m = user.manager
        data.update({
            "manager_id": m.id,
            "department": m.department,
            "position": m.position,
            "employee_id": m.employee_id,
            "hire_date": m.hire_date,
        })
    return data

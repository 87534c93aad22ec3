import logging
from fastapi import APIRouter, HTTPException, Depends, Query, Request
from sqlalchemy.orm import Session, aliased
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from database import get_db
import models, schemas, utils, oauth2, accounts, responses, slots
from activity import record_activity, record_audit, record_status_change
from datetime import date
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api/appointments", tags=['Appointments'])

DoctorUser = aliased(models.User)
PatientUser = aliased(models.User)


def _scoped(db: Session, current_user: models.User):
    query = db.query(models.Appointment)
    if current_user.role == "doctor":
        query = query.filter(models.Appointment.doctor_id == accounts.get_doctor(db, current_user).id)
    elif current_user.role == "patient":
        query = query.filter(models.Appointment.patient_id == accounts.get_patient(db, current_user).id)
    return query


def _appointment_row(appt: models.Appointment, detailed: bool = False):
    doctor, patient, payment = appt.doctor, appt.patient, appt.payment
    row = {
        "id": appt.id,
        "doctor_id": appt.doctor_id,
        "patient_id": appt.patient_id,
        "appointment_date": appt.appointment_date,
        "appointment_time": appt.appointment_time.strftime(slots.SLOT_FORMAT),
        "status": appt.status,
        "reason": appt.reason,
        "notes": appt.notes,
        "created_at": appt.created_at,
        "doctor_name": doctor.user.name,
        "doctor_email": doctor.user.email,
        "doctor_specialty": doctor.specialty,
        "consultation_fee": doctor.consultation_fee,
        "patient_name": patient.user.name,
        "patient_email": patient.user.email,
        "payment_amount": payment.amount if payment else None,
        "payment_status": payment.status if payment else None,
    }
    if detailed:
        row.update({
            "updated_at": appt.updated_at,
            "transaction_id": payment.transaction_id if payment else None,
            "payment_method": payment.payment_method if payment else None,
        })
    return row


def _get_owned_by_doctor(db: Session, id: int, current_user: models.User):
    doctor = accounts.get_doctor(db, current_user)
    appointment = db.query(models.Appointment).filter(models.Appointment.id == id).filter(models.Appointment.doctor_id == doctor.id).first()
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


def _slot_taken(db: Session, doctor_id: int, on: date, at) -> bool:
    query = db.query(models.Appointment.id).filter(models.Appointment.doctor_id == doctor_id).filter(models.Appointment.appointment_date == on).filter(models.Appointment.appointment_time == at)
    return query.filter(models.Appointment.status.in_(models.ACTIVE_APPOINTMENT_STATUSES)).first() is not None


def _change_status(db: Session, appointment: models.Appointment, new_status: str, current_user: models.User):
    old_status = appointment.status
    appointment.status = new_status
    record_status_change(db, current_user.id, "appointments", appointment.id, old_status, new_status)
    db.commit()
    logger.info("Appointment %s %s -> %s by user_id=%s", appointment.id, old_status, new_status, current_user.id)


@router.get("/list")
def list_appointments(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), status: Optional[str] = None, date: Optional[date] = None, search: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    query = _scoped(db, current_user)
    if status:
        query = query.filter(models.Appointment.status == status)
    if date:
        query = query.filter(models.Appointment.appointment_date == date)
    if search:
        term = utils.like(search)
        query = query.join(models.Doctor, models.Appointment.doctor_id == models.Doctor.id).join(DoctorUser, models.Doctor.user_id == DoctorUser.id)
        query = query.join(models.Patient, models.Appointment.patient_id == models.Patient.id).join(PatientUser, models.Patient.user_id == PatientUser.id)
        query = query.filter(or_(DoctorUser.name.ilike(term), PatientUser.name.ilike(term), models.Appointment.reason.ilike(term)))
    query = query.order_by(models.Appointment.appointment_date.desc(), models.Appointment.appointment_time.desc())
    appointments, pagination = utils.paginate(query, page, limit)
    return responses.success({"appointments": [_appointment_row(a) for a in appointments], "pagination": pagination})


@router.get("/get")
def get_appointment(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    appointment = _scoped(db, current_user).filter(models.Appointment.id == id).first()
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return responses.success(_appointment_row(appointment, detailed=True))


@router.post("/create")
def create_appointment(booking: schemas.AppointmentInput, request: Request, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("patient", "admin"))):
    if current_user.role == "patient":
        patient = accounts.get_patient(db, current_user)
    else:
        if not booking.patient_id:
            raise HTTPException(status_code=400, detail="Missing required fields: patient_id")
        patient = db.query(models.Patient).filter(models.Patient.id == booking.patient_id).first()
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")

    if booking.appointment_date < date.today():
        raise HTTPException(status_code=400, detail="Appointment date cannot be in the past")

    doctor = db.query(models.Doctor).join(models.User, models.Doctor.user_id == models.User.id).filter(models.Doctor.id == booking.doctor_id).filter(models.Doctor.status == "approved").filter(models.User.status == "active").first()
    if not doctor:
        raise HTTPException(status_code=400, detail="Doctor not found or not available")

    schedule = db.query(models.DoctorSchedule).filter(models.DoctorSchedule.doctor_id == doctor.id).filter(models.DoctorSchedule.day_of_week == slots.weekday_name(booking.appointment_date)).filter(models.DoctorSchedule.is_available == True).first()
    if not schedule or not slots.within_hours(schedule.start_time, schedule.end_time, booking.appointment_time):
        raise HTTPException(status_code=400, detail="Doctor is not available at the requested time")

    if _slot_taken(db, doctor.id, booking.appointment_date, booking.appointment_time):
        raise HTTPException(status_code=400, detail="Time slot is already booked")

    appointment = models.Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        appointment_date=booking.appointment_date,
        appointment_time=booking.appointment_time,
        reason=booking.reason,
        notes=booking.notes,
        status="pending",
    )
    db.add(appointment)
    try:
        db.flush()
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Time slot is already booked")

    payment = models.Payment(appointment_id=appointment.id, patient_id=patient.id, amount=doctor.consultation_fee, payment_method="online", status="pending", transaction_id=utils.reference_number("TXN", 6))
    db.add(payment)
    db.flush()
    record_audit(db, current_user.id, "create", "appointments", appointment.id, None, {"status": "pending"})
    record_activity(db, current_user.id, "appointment_created", {"appointment_id": appointment.id, "doctor_id": doctor.id}, request)
    db.commit()
    logger.info("Appointment created id=%s doctor_id=%s patient_id=%s date=%s time=%s", appointment.id, doctor.id, patient.id, booking.appointment_date, booking.appointment_time)
    return responses.success({"appointment_id": appointment.id, "payment_id": payment.id, "amount": payment.amount, "transaction_id": payment.transaction_id}, "Appointment booked successfully")


@router.put("/update")
def update_appointment(changes: schemas.AppointmentUpdate, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    appointment = _scoped(db, current_user).filter(models.Appointment.id == id).first()
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    if appointment.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending appointments can be updated")
    for field, value in changes.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(appointment, field, value)
    db.commit()
    logger.info("Appointment updated id=%s by user_id=%s", appointment.id, current_user.id)
    return responses.success(None, "Appointment updated successfully")


@router.post("/approve")
def approve_appointment(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    appointment = _get_owned_by_doctor(db, id, current_user)
    if appointment.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending appointments can be approved")
    _change_status(db, appointment, "confirmed", current_user)
    return responses.success(None, "Appointment approved successfully")


@router.post("/reject")
def reject_appointment(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    appointment = _get_owned_by_doctor(db, id, current_user)
    if appointment.status != "pending":
        raise HTTPException(status_code=400, detail="Only pending appointments can be rejected")
    _change_status(db, appointment, "rejected", current_user)
    return responses.success(None, "Appointment rejected successfully")


@router.post("/cancel")
def cancel_appointment(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("patient", "doctor", "admin"))):
    appointment = _scoped(db, current_user).filter(models.Appointment.id == id).first()
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    if appointment.status not in models.ACTIVE_APPOINTMENT_STATUSES:
        raise HTTPException(status_code=400, detail="Only pending or confirmed appointments can be cancelled")
    _change_status(db, appointment, "cancelled", current_user)
    return responses.success(None, "Appointment cancelled successfully")


@router.post("/complete")
def complete_appointment(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    appointment = _get_owned_by_doctor(db, id, current_user)
    if appointment.status != "confirmed":
        raise HTTPException(status_code=400, detail="Only confirmed appointments can be completed")
    _change_status(db, appointment, "completed", current_user)
    return responses.success(None, "Appointment completed successfully")


@router.get("/list-doctors")
def list_doctors(specialty: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    query = db.query(models.Doctor, models.User).join(models.User, models.Doctor.user_id == models.User.id).filter(models.Doctor.status == "approved").filter(models.User.status == "active")
    if specialty:
        query = query.filter(models.Doctor.specialty.ilike(utils.like(specialty)))
    doctors = []
    for doctor, user in query.order_by(models.User.name).all():
        doctors.append({
            "id": doctor.id,
            "user_id": user.id,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "specialty": doctor.specialty,
            "experience_years": doctor.experience_years,
            "consultation_fee": doctor.consultation_fee,
            "bio": doctor.bio,
            "photo_path": doctor.photo_path,
        })
    return responses.success(doctors)


@router.get("/list-patients")
def list_patients(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    booked = db.query(models.Appointment.patient_id).filter(models.Appointment.doctor_id == doctor.id).distinct()
    query = db.query(models.Patient, models.User).join(models.User, models.Patient.user_id == models.User.id).filter(models.Patient.id.in_(booked)).order_by(models.User.name)
    patients = []
    for patient, user in query.all():
        patients.append({
            "id": patient.id,
            "user_id": user.id,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "date_of_birth": patient.date_of_birth,
            "gender": patient.gender,
        })
    return responses.success(patients)

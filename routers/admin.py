import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from fastapi import APIRouter, HTTPException, Form, File, UploadFile, Depends, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
from database import get_db
import models, schemas, utils, oauth2, accounts, responses, storage
from activity import record_activity, record_status_change
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api/admin", tags=['Admin'])

ACTIVITY_WINDOW_DAYS = 7
CERTIFICATE_TYPES = ("pdf", "jpg", "jpeg", "png")


def _get_doctor(db: Session, id: int):
    doctor = db.query(models.Doctor).filter(models.Doctor.id == id).first()
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")
    if doctor.status != "pending":
        raise HTTPException(status_code=400, detail="Doctor already processed")
    return doctor


def _get_certificate(db: Session, id: int):
    certificate = db.query(models.Certificate).filter(models.Certificate.id == id).first()
    if not certificate:
        raise HTTPException(status_code=404, detail="Certificate not found")
    return certificate


@router.get("/pending-doctors")
def pending_doctors(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    certificate_count = func.count(models.Certificate.id)
    rows = db.query(models.Doctor, models.User, certificate_count).join(models.User, models.Doctor.user_id == models.User.id).outerjoin(models.Certificate, models.Certificate.doctor_id == models.Doctor.id).filter(models.Doctor.status == "pending").group_by(models.Doctor.id, models.User.id).order_by(models.Doctor.created_at, models.Doctor.id).all()
    doctors = []
    for doctor, user, count in rows:
        doctors.append({
            "id": doctor.id,
            "user_id": user.id,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "specialty": doctor.specialty,
            "license_number": doctor.license_number,
            "experience_years": doctor.experience_years,
            "consultation_fee": doctor.consultation_fee,
            "bio": doctor.bio,
            "photo_path": doctor.photo_path,
            "status": doctor.status,
            "created_at": doctor.created_at,
            "user_created_at": user.created_at,
            "certificate_count": count,
        })
    return responses.success(doctors)


@router.post("/approve-doctor")
def approve_doctor(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    doctor = _get_doctor(db, id)
    doctor.status = "approved"
    doctor.approved_by = current_user.id
    doctor.approved_at = func.now()
    record_status_change(db, current_user.id, "doctors", doctor.id, "pending", "approved")
    verified = 0
    for certificate in doctor.certificates:
        if certificate.status == "pending":
            certificate.status = "verified"
            certificate.verified_by = current_user.id
            certificate.verified_at = func.now()
            verified += 1
    db.commit()
    logger.info("Doctor approved id=%s by admin user_id=%s certificates_verified=%s", doctor.id, current_user.id, verified)
    return responses.success({"certificates_verified": verified}, "Doctor approved successfully")


@router.post("/reject-doctor")
def reject_doctor(details: Optional[schemas.RejectInput] = None, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    doctor = _get_doctor(db, id)
    reason = (details.reason if details else None) or "Rejected by admin"
    doctor.status = "rejected"
    doctor.rejected_by = current_user.id
    doctor.rejected_at = func.now()
    doctor.rejection_reason = reason
    doctor.user.status = "inactive"
    record_status_change(db, current_user.id, "doctors", doctor.id, "pending", "rejected")
    db.commit()
    logger.info("Doctor rejected id=%s by admin user_id=%s reason=%s", doctor.id, current_user.id, reason)
    return responses.success(None, "Doctor rejected successfully")


@router.get("/certificates")
def list_certificates(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), status: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    query = db.query(models.Certificate)
    if status:
        query = query.filter(models.Certificate.status == status)
    certificates, pagination = utils.paginate(query.order_by(models.Certificate.created_at.desc(), models.Certificate.id.desc()), page, limit)
    rows = []
    for certificate in certificates:
        row = schemas.CertificateOutput.model_validate(certificate).model_dump()
        row.update({
            "doctor_name": certificate.doctor.user.name,
            "doctor_email": certificate.doctor.user.email,
            "specialty": certificate.doctor.specialty,
        })
        rows.append(row)
    return responses.success({"certificates": rows, "pagination": pagination})


@router.post("/verify-certificate")
def verify_certificate(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    certificate = _get_certificate(db, id)
    if certificate.status == "verified":
        return responses.success(None, "Certificate already verified")
    if certificate.status != "pending":
        raise HTTPException(status_code=400, detail="Certificate already processed")
    certificate.status = "verified"
    certificate.verified_by = current_user.id
    certificate.verified_at = func.now()
    record_status_change(db, current_user.id, "certificates", certificate.id, "pending", "verified")
    db.commit()
    logger.info("Certificate verified id=%s by admin user_id=%s", certificate.id, current_user.id)
    return responses.success(None, "Certificate verified successfully")


@router.post("/reject-certificate")
def reject_certificate(details: Optional[schemas.RejectInput] = None, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    certificate = _get_certificate(db, id)
    if certificate.status != "pending":
        raise HTTPException(status_code=400, detail="Certificate already processed")
    certificate.status = "rejected"
    certificate.rejected_by = current_user.id
    certificate.rejected_at = func.now()
    certificate.rejection_reason = details.reason if details else None
    record_status_change(db, current_user.id, "certificates", certificate.id, "pending", "rejected")
    db.commit()
    logger.info("Certificate rejected id=%s by admin user_id=%s", certificate.id, current_user.id)
    return responses.success(None, "Certificate rejected successfully")


@router.post("/upload-certificate")
def upload_certificate(request: Request, certificate_name: str = Form(...), issuing_authority: str = Form(...), issue_date: date = Form(...), expiry_date: Optional[date] = Form(None), certificate: UploadFile = File(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    try:
        stored = storage.save_upload(certificate, "certificates", CERTIFICATE_TYPES)
    except storage.UploadRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    new = models.Certificate(
        doctor_id=doctor.id,
        certificate_name=certificate_name,
        issuing_authority=issuing_authority,
        issue_date=issue_date,
        expiry_date=expiry_date,
        file_path=stored["filepath"],
        file_name=stored["filename"],
        file_size=stored["filesize"],
        file_type=stored["filetype"],
        status="pending",
    )
    db.add(new)
    db.flush()
    record_activity(db, current_user.id, "certificate_uploaded", {"certificate_id": new.id}, request)
    db.commit()
    logger.info("Certificate uploaded id=%s doctor_id=%s file=%s", new.id, doctor.id, stored["filename"])
    return responses.success({"certificate_id": new.id, "file_path": new.file_path}, "Certificate uploaded successfully")


@router.get("/dashboard-stats")
def dashboard_stats(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    users_by_role = db.query(models.User.role, func.count(models.User.id)).filter(models.User.status == "active").group_by(models.User.role).all()

    since = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=ACTIVITY_WINDOW_DAYS)
    recent = db.query(models.ActivityLog.activity, models.ActivityLog.created_at).filter(models.ActivityLog.created_at >= since).all()
    per_activity = Counter(activity for activity, _ in recent)
    per_day = Counter(created.date() for _, created in recent if created is not None)
    today = datetime.now(timezone.utc).date()
    days = [today - timedelta(days=offset) for offset in range(ACTIVITY_WINDOW_DAYS - 1, -1, -1)]

    return responses.success({
        "users_by_role": [{"role": role, "count": count} for role, count in users_by_role],
        "pending_doctors": db.query(models.Doctor).filter(models.Doctor.status == "pending").count(),
        "pending_certificates": db.query(models.Certificate).filter(models.Certificate.status == "pending").count(),
        "today_appointments": db.query(models.Appointment).filter(models.Appointment.appointment_date == today).count(),
        "pending_payments": db.query(models.Payment).filter(models.Payment.status == "pending").count(),
        "recent_activity": [{"activity": activity, "count": count} for activity, count in per_activity.most_common(10)],
        "activity_by_day": [{"date": day.isoformat(), "count": per_day.get(day, 0)} for day in days],
    })


@router.get("/audit-logs")
def audit_logs(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), log_action: Optional[str] = None, table: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    query = db.query(models.AuditLog, models.User.name).outerjoin(models.User, models.AuditLog.user_id == models.User.id)
    if log_action:
        query = query.filter(models.AuditLog.action == log_action)
    if table:
        query = query.filter(models.AuditLog.table_name == table)
    rows, pagination = utils.paginate(query.order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc()), page, limit)
    logs = [{
        "id": log.id,
        "user_id": log.user_id,
        "user_name": user_name,
        "action": log.action,
        "table_name": log.table_name,
        "record_id": log.record_id,
        "old_values": log.old_values,
        "new_values": log.new_values,
        "created_at": log.created_at,
    } for log, user_name in rows]
    return responses.success({"logs": logs, "pagination": pagination})


@router.get("/activity-logs")
def activity_logs(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), activity: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    query = db.query(models.ActivityLog, models.User.name).outerjoin(models.User, models.ActivityLog.user_id == models.User.id)
    if activity:
        query = query.filter(models.ActivityLog.activity.ilike(utils.like(activity)))
    rows, pagination = utils.paginate(query.order_by(models.ActivityLog.created_at.desc(), models.ActivityLog.id.desc()), page, limit)
    logs = [{
        "id": log.id,
        "user_id": log.user_id,
        "user_name": user_name,
        "activity": log.activity,
        "details": log.details,
        "ip_address": log.ip_address,
        "created_at": log.created_at,
    } for log, user_name in rows]
    return responses.success({"logs": logs, "pagination": pagination})

import logging
from fastapi import APIRouter, HTTPException, Depends, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
from database import get_db
import models, schemas, utils, oauth2, accounts, responses, slots
from activity import record_activity, record_status_change
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api/appointments", tags=['Payments'])


def _payment_row(payment: models.Payment):
    appointment = payment.appointment
    row = schemas.PaymentOutput.model_validate(payment).model_dump()
    row.update({
        "patient_name": appointment.patient.user.name,
        "patient_email": appointment.patient.user.email,
        "appointment_date": appointment.appointment_date,
        "appointment_time": appointment.appointment_time.strftime(slots.SLOT_FORMAT),
        "doctor_name": appointment.doctor.user.name,
        "doctor_specialty": appointment.doctor.specialty,
    })
    return row


def _pending_payment(db: Session, id: int):
    payment = db.query(models.Payment).filter(models.Payment.id == id).first()
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    if payment.status != "pending":
        raise HTTPException(status_code=400, detail="Payment already processed")
    return payment


@router.get("/payments")
def list_payments(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), status: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("patient", "manager", "admin"))):
    query = db.query(models.Payment)
    if current_user.role == "patient":
        query = query.filter(models.Payment.patient_id == accounts.get_patient(db, current_user).id)
    if status:
        query = query.filter(models.Payment.status == status)
    payments, pagination = utils.paginate(query.order_by(models.Payment.payment_date.desc(), models.Payment.id.desc()), page, limit)
    return responses.success({"payments": [_payment_row(p) for p in payments], "pagination": pagination})


@router.post("/create-payment")
def create_payment(details: schemas.PaymentInput, request: Request, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("patient"))):
    patient = accounts.get_patient(db, current_user)
    appointment = db.query(models.Appointment).filter(models.Appointment.id == details.appointment_id).filter(models.Appointment.patient_id == patient.id).first()
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    if appointment.payment is not None:
        raise HTTPException(status_code=400, detail="Payment already exists for this appointment")
    payment = models.Payment(
        appointment_id=appointment.id,
        patient_id=patient.id,
        amount=appointment.doctor.consultation_fee,
        payment_method=details.payment_method,
        status="pending",
        transaction_id=utils.reference_number("TXN", 6),
    )
    db.add(payment)
    db.flush()
    record_activity(db, current_user.id, "payment_created", {"payment_id": payment.id, "appointment_id": appointment.id}, request)
    db.commit()
    logger.info("Payment created id=%s appointment_id=%s amount=%s", payment.id, appointment.id, payment.amount)
    return responses.success({"payment_id": payment.id, "transaction_id": payment.transaction_id, "amount": payment.amount}, "Payment created successfully")


@router.post("/verify-payment")
def verify_payment(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("manager"))):
    payment = _pending_payment(db, id)
    payment.status = "completed"
    payment.verified_by = current_user.id
    payment.verified_at = func.now()
    record_status_change(db, current_user.id, "payments", payment.id, "pending", "completed")
    db.commit()
    logger.info("Payment verified id=%s by manager user_id=%s", payment.id, current_user.id)
    return responses.success(None, "Payment verified successfully")


@router.post("/reject-payment")
def reject_payment(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("manager"))):
    payment = _pending_payment(db, id)
    payment.status = "failed"
    payment.verified_by = current_user.id
    payment.verified_at = func.now()
    record_status_change(db, current_user.id, "payments", payment.id, "pending", "failed")
    db.commit()
    logger.info("Payment rejected id=%s by manager user_id=%s", payment.id, current_user.id)
    return responses.success(None, "Payment rejected successfully")

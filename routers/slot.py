import logging
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy import case
from sqlalchemy.orm import Session
from database import get_db
import models, schemas, oauth2, accounts, responses, slots
from activity import record_activity
from datetime import date

logger = logging.getLogger(__name__)

router = APIRouter(prefix= '/api/appointments', tags=['Schedules'])

_weekday_order = case({day: i for i, day in enumerate(models.WEEKDAYS)}, value=models.DoctorSchedule.day_of_week)


def _schedule_rows(query):
    return [schemas.ScheduleOutput.model_validate(s) for s in query.order_by(_weekday_order, models.DoctorSchedule.start_time).all()]


@router.get("/available-slots")
def get_available_slots(doctor_id: int = Query(...), date: date = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    schedule = db.query(models.DoctorSchedule).filter(models.DoctorSchedule.doctor_id == doctor_id).filter(models.DoctorSchedule.day_of_week == slots.weekday_name(date)).filter(models.DoctorSchedule.is_available == True).first()
    if not schedule:
        return responses.success([])
    booked = [t for (t,) in db.query(models.Appointment.appointment_time).filter(models.Appointment.doctor_id == doctor_id).filter(models.Appointment.appointment_date == date).filter(models.Appointment.status.in_(models.ACTIVE_APPOINTMENT_STATUSES)).all()]
    return responses.success(slots.generate_slots(schedule.start_time, schedule.end_time, schedule.slot_duration, schedule.break_time, booked))


@router.get("/schedule")
def get_available_schedule(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    query = db.query(models.DoctorSchedule).filter(models.DoctorSchedule.doctor_id == doctor.id).filter(models.DoctorSchedule.is_available == True)
    return responses.success(_schedule_rows(query))


@router.post("/schedule")
def replace_schedule(week: schemas.WeeklySchedule, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    days = [entry.day_of_week for entry in week.schedule]
    if len(days) != len(set(days)):
        raise HTTPException(status_code=400, detail="Each day may appear only once in a schedule")
    db.query(models.DoctorSchedule).filter(models.DoctorSchedule.doctor_id == doctor.id).delete(synchronize_session=False)
    for entry in week.schedule:
        db.add(models.DoctorSchedule(doctor_id=doctor.id, **entry.model_dump()))
    record_activity(db, current_user.id, "schedule_update", {"days": days})
    db.commit()
    logger.info("Doctor schedule replaced doctor_id=%s days=%s", doctor.id, len(days))
    return responses.success(None, "Schedule updated successfully")


@router.get("/get-schedule")
def get_schedule(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    query = db.query(models.DoctorSchedule).filter(models.DoctorSchedule.doctor_id == doctor.id)
    return responses.success(_schedule_rows(query))


@router.post("/update-schedule")
def update_schedule(day: schemas.ScheduleDay, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    existing = db.query(models.DoctorSchedule).filter(models.DoctorSchedule.doctor_id == doctor.id).filter(models.DoctorSchedule.day_of_week == day.day_of_week).first()
    if existing:
        for field, value in day.model_dump().items():
            setattr(existing, field, value)
        entry = existing
    else:
        entry = models.DoctorSchedule(doctor_id=doctor.id, **day.model_dump())
        db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Doctor schedule day saved doctor_id=%s day=%s", doctor.id, day.day_of_week)
    return responses.success(schemas.ScheduleOutput.model_validate(entry), "Schedule updated successfully")


@router.delete("/delete-schedule")
def delete_schedule(day: schemas.Weekday = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("doctor"))):
    doctor = accounts.get_doctor(db, current_user)
    deleted = db.query(models.DoctorSchedule).filter(models.DoctorSchedule.doctor_id == doctor.id).filter(models.DoctorSchedule.day_of_week == day).delete(synchronize_session=False)
    if not deleted:
        raise HTTPException(status_code=404, detail="Schedule not found")
    db.commit()
    return responses.success(None, "Schedule deleted successfully")

import logging
from fastapi import APIRouter, HTTPException, Depends, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy import or_
from database import get_db
import models, schemas, utils, oauth2, accounts, responses, storage
from activity import record_activity, record_audit, record_status_change
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix= '/api/admin', tags=['Users'])


def _get_user(db: Session, id: int):
    user = db.query(models.User).filter(models.User.id == id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _user_row(user: models.User):
    row = schemas.UserOutput.model_validate(user).model_dump()
    row["updated_at"] = user.updated_at
    doctor, patient, manager = user.doctor, user.patient, user.manager
    row.update({
        "specialty": doctor.specialty if doctor else None,
        "license_number": doctor.license_number if doctor else None,
        "doctor_status": doctor.status if doctor else None,
        "date_of_birth": patient.date_of_birth if patient else None,
        "gender": patient.gender if patient else None,
        "nationality": patient.nationality if patient else None,
        "department": manager.department if manager else None,
        "position": manager.position if manager else None,
        "employee_id": manager.employee_id if manager else None,
    })
    return row


@router.get("/users")
def list_users(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), role: Optional[str] = None, status: Optional[str] = None, search: Optional[str] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role)
    if status:
        query = query.filter(models.User.status == status)
    if search:
        term = utils.like(search)
        query = query.filter(or_(models.User.name.ilike(term), models.User.email.ilike(term), models.User.phone.ilike(term)))
    users, pagination = utils.paginate(query.order_by(models.User.created_at.desc(), models.User.id.desc()), page, limit)
    return responses.success({"users": [_user_row(u) for u in users], "pagination": pagination})


@router.post("/create-user")
def create_user(user: schemas.UserCreate, request: Request, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    new = accounts.create_account(db, user, status=user.status)
    record_activity(db, current_user.id, "create_user", {"user_id": new.id, "role": new.role}, request)
    db.commit()
    logger.info("User created id=%s role=%s by admin user_id=%s", new.id, new.role, current_user.id)
    return responses.success({"user_id": new.id}, "User created successfully")


@router.put("/update-user")
def update_user(changes: schemas.UserUpdate, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    user = _get_user(db, id)
    fields = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}
    if "email" in fields and fields["email"] != user.email and accounts.email_taken(db, fields["email"]):
        raise HTTPException(status_code=400, detail="Email already registered")
    old = {field: getattr(user, field) for field in fields}
    for field, value in fields.items():
        setattr(user, field, value)
    record_audit(db, current_user.id, "update", "users", user.id, old, fields)
    db.commit()
    logger.info("User updated id=%s by admin user_id=%s", user.id, current_user.id)
    return responses.success(None, "User updated successfully")


@router.put("/update-user-status")
def update_user_status(change: schemas.UserStatusUpdate, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    user = _get_user(db, id)
    old_status = user.status
    user.status = change.status
    record_status_change(db, current_user.id, "users", user.id, old_status, change.status)
    db.commit()
    logger.info("User status updated id=%s %s -> %s by admin user_id=%s", user.id, old_status, change.status, current_user.id)
    return responses.success(None, "User status updated successfully")


@router.delete("/delete-user")
def delete_user(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    if id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    user = _get_user(db, id)
    snapshot = {"email": user.email, "role": user.role}
    documents = []
    if user.doctor or user.patient:
        owner = models.Prescription.doctor_id == user.doctor.id if user.doctor else models.Prescription.patient_id == user.patient.id
        documents = [path for path, in db.query(models.Prescription.pdf_path).filter(owner).all() if path]
    db.delete(user)
    record_audit(db, current_user.id, "delete", "users", id, snapshot, None)
    db.commit()
    for path in documents:
        storage.delete_file(path)
    logger.info("User deleted id=%s by admin user_id=%s", id, current_user.id)
    return responses.success(None, "User deleted successfully")


@router.post("/create-manager")
def create_manager(manager: schemas.ManagerCreate, request: Request, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    new = accounts.create_account(db, manager)
    record_activity(db, current_user.id, "create_manager", {"user_id": new.id}, request)
    db.commit()
    logger.info("Manager created user_id=%s by admin user_id=%s email=%s", new.id, current_user.id, new.email)
    return responses.success({"manager_id": new.id}, "Manager profile created successfully")


@router.put("/update-manager")
def update_manager(changes: schemas.ManagerUpdate, user_id: Optional[int] = None, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin", "manager"))):
    target_id = user_id or current_user.id
    if current_user.role != "admin" and target_id != current_user.id:
        raise HTTPException(status_code=403, detail="You can only update your own profile")
    user = _get_user(db, target_id)
    if user.manager is None:
        raise HTTPException(status_code=404, detail="Manager profile not found")
    fields = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}
    for field in ("name", "phone"):
        if field in fields:
            setattr(user, field, fields[field])
    for field in ("department", "position", "employee_id"):
        if field in fields:
            setattr(user.manager, field, fields[field])
    db.commit()
    logger.info("Manager profile updated user_id=%s by user_id=%s", user.id, current_user.id)
    return responses.success(None, "Manager profile updated successfully")

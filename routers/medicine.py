import logging
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import or_, case
from database import get_db
import models, schemas, utils, oauth2, responses
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api/medicines", tags=['Medicines'])


def _get_medicine(db: Session, id: int):
    medicine = db.query(models.Medicine).filter(models.Medicine.id == id).first()
    if not medicine:
        raise HTTPException(status_code=404, detail="Medicine not found")
    return medicine


def _duplicate(db: Session, details: schemas.MedicineInput, exclude_id: int = None):
    query = db.query(models.Medicine.id).filter(models.Medicine.name == details.name).filter(models.Medicine.manufacturer == details.manufacturer).filter(models.Medicine.strength == details.strength)
    if exclude_id is not None:
        query = query.filter(models.Medicine.id != exclude_id)
    return query.first() is not None


@router.get("/list")
def list_medicines(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), category: Optional[str] = None, search: Optional[str] = None, active_only: bool = True, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    query = db.query(models.Medicine)
    if active_only:
        query = query.filter(models.Medicine.is_active == True)
    if category:
        query = query.filter(models.Medicine.category == category)
    if search:
        term = utils.like(search)
        query = query.filter(or_(models.Medicine.name.ilike(term), models.Medicine.generic_name.ilike(term), models.Medicine.manufacturer.ilike(term), models.Medicine.description.ilike(term)))
    medicines, pagination = utils.paginate(query.order_by(models.Medicine.name), page, limit)
    return responses.success({"medicines": [schemas.MedicineOutput.model_validate(m) for m in medicines], "pagination": pagination})


@router.get("/get")
def get_medicine(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    return responses.success(schemas.MedicineOutput.model_validate(_get_medicine(db, id)))


@router.post("/create")
def create_medicine(details: schemas.MedicineInput, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin", "manager"))):
    if _duplicate(db, details):
        raise HTTPException(status_code=400, detail="Medicine with same name, manufacturer, and strength already exists")
    medicine = models.Medicine(**details.model_dump())
    db.add(medicine)
    db.commit()
    db.refresh(medicine)
    logger.info("Medicine created id=%s name=%s by user_id=%s", medicine.id, medicine.name, current_user.id)
    return responses.success({"medicine_id": medicine.id}, "Medicine created successfully")


@router.put("/update")
def update_medicine(details: schemas.MedicineUpdate, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin", "manager"))):
    medicine = _get_medicine(db, id)
    if _duplicate(db, details, exclude_id=medicine.id):
        raise HTTPException(status_code=400, detail="Medicine with same name, manufacturer, and strength already exists")
    for field, value in details.model_dump().items():
        setattr(medicine, field, value)
    db.commit()
    logger.info("Medicine updated id=%s by user_id=%s", medicine.id, current_user.id)
    return responses.success(None, "Medicine updated successfully")


@router.delete("/delete")
def delete_medicine(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    medicine = _get_medicine(db, id)
    in_use = db.query(models.PrescriptionMedicine.id).filter(models.PrescriptionMedicine.medicine_id == medicine.id).first()
    if in_use:
        raise HTTPException(status_code=400, detail="Cannot delete medicine that is used in prescriptions. Consider deactivating instead.")
    db.delete(medicine)
    db.commit()
    logger.info("Medicine deleted id=%s by user_id=%s", id, current_user.id)
    return responses.success(None, "Medicine deleted successfully")


@router.get("/categories")
def medicine_categories(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    rows = db.query(models.Medicine.category).filter(models.Medicine.is_active == True).filter(models.Medicine.category != "").distinct().order_by(models.Medicine.category).all()
    return responses.success([category for (category,) in rows])


@router.get("/stock-low")
def low_stock_medicines(threshold: int = Query(50, ge=0), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin", "manager", "doctor"))):
    medicines = db.query(models.Medicine).filter(models.Medicine.stock_quantity <= threshold).filter(models.Medicine.is_active == True).order_by(models.Medicine.stock_quantity, models.Medicine.name).all()
    return responses.success([{
        "id": m.id,
        "name": m.name,
        "generic_name": m.generic_name,
        "category": m.category,
        "stock_quantity": m.stock_quantity,
        "price": m.price,
    } for m in medicines])


@router.get("/search")
def search_medicines(q: str = "", limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    q = q.strip()
    if len(q) < 2:
        raise HTTPException(status_code=400, detail="Search query must be at least 2 characters")
    term, prefix = utils.like(q), q + "%"
    rank = case((models.Medicine.name.ilike(prefix), 1), (models.Medicine.generic_name.ilike(prefix), 2), else_=3)
    medicines = db.query(models.Medicine).filter(models.Medicine.is_active == True).filter(or_(models.Medicine.name.ilike(term), models.Medicine.generic_name.ilike(term), models.Medicine.manufacturer.ilike(term))).order_by(rank, models.Medicine.name).limit(limit).all()
    return responses.success([{
        "id": m.id,
        "name": m.name,
        "generic_name": m.generic_name,
        "manufacturer": m.manufacturer,
        "dosage_form": m.dosage_form,
        "strength": m.strength,
        "category": m.category,
        "price": m.price,
        "stock_quantity": m.stock_quantity,
    } for m in medicines])

import logging
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import or_, case
from database import get_db
import models, schemas, utils, oauth2, responses
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api/tests", tags=['Pathology Tests'])


def _get_test(db: Session, id: int):
    test = db.query(models.PathologyTest).filter(models.PathologyTest.id == id).first()
    if not test:
        raise HTTPException(status_code=404, detail="Test not found")
    return test


def _code_taken(db: Session, code: str, exclude_id: int = None):
    query = db.query(models.PathologyTest.id).filter(models.PathologyTest.test_code == code)
    if exclude_id is not None:
        query = query.filter(models.PathologyTest.id != exclude_id)
    return query.first() is not None


@router.get("/list")
def list_tests(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), category: Optional[str] = None, search: Optional[str] = None, active_only: bool = True, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    query = db.query(models.PathologyTest)
    if active_only:
        query = query.filter(models.PathologyTest.is_active == True)
    if category:
        query = query.filter(models.PathologyTest.category == category)
    if search:
        term = utils.like(search)
        query = query.filter(or_(models.PathologyTest.test_name.ilike(term), models.PathologyTest.test_code.ilike(term), models.PathologyTest.description.ilike(term)))
    tests, pagination = utils.paginate(query.order_by(models.PathologyTest.test_name), page, limit)
    return responses.success({"tests": [schemas.PathologyTestOutput.model_validate(t) for t in tests], "pagination": pagination})


@router.get("/get")
def get_test(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    return responses.success(schemas.PathologyTestOutput.model_validate(_get_test(db, id)))


@router.post("/create")
def create_test(details: schemas.PathologyTestInput, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin", "manager"))):
    if _code_taken(db, details.test_code):
        raise HTTPException(status_code=400, detail="Test code already exists")
    test = models.PathologyTest(**details.model_dump())
    db.add(test)
    db.commit()
    db.refresh(test)
    logger.info("Pathology test created id=%s code=%s by user_id=%s", test.id, test.test_code, current_user.id)
    return responses.success({"test_id": test.id}, "Test created successfully")


@router.put("/update")
def update_test(details: schemas.PathologyTestUpdate, id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin", "manager"))):
    test = _get_test(db, id)
    if _code_taken(db, details.test_code, exclude_id=test.id):
        raise HTTPException(status_code=400, detail="Test code already exists")
    for field, value in details.model_dump().items():
        setattr(test, field, value)
    db.commit()
    logger.info("Pathology test updated id=%s by user_id=%s", test.id, current_user.id)
    return responses.success(None, "Test updated successfully")


@router.delete("/delete")
def delete_test(id: int = Query(...), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.require_roles("admin"))):
    test = _get_test(db, id)
    if db.query(models.PrescriptionTest.id).filter(models.PrescriptionTest.test_id == test.id).first():
        raise HTTPException(status_code=400, detail="Cannot delete test that is used in prescriptions. Consider deactivating instead.")
    db.delete(test)
    db.commit()
    logger.info("Pathology test deleted id=%s by user_id=%s", id, current_user.id)
    return responses.success(None, "Test deleted successfully")


@router.get("/categories")
def test_categories(db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    rows = db.query(models.PathologyTest.category).filter(models.PathologyTest.is_active == True).filter(models.PathologyTest.category != "").distinct().order_by(models.PathologyTest.category).all()
    return responses.success([category for (category,) in rows])


@router.get("/search")
def search_tests(q: str = "", limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    q = q.strip()
    if len(q) < 2:
        raise HTTPException(status_code=400, detail="Search query must be at least 2 characters")
    term, prefix = utils.like(q), q + "%"
    rank = case((models.PathologyTest.test_name.ilike(prefix), 1), (models.PathologyTest.test_code.ilike(prefix), 2), else_=3)
    tests = db.query(models.PathologyTest).filter(models.PathologyTest.is_active == True).filter(or_(models.PathologyTest.test_name.ilike(term), models.PathologyTest.test_code.ilike(term), models.PathologyTest.category.ilike(term))).order_by(rank, models.PathologyTest.test_name).limit(limit).all()
    return responses.success([{
        "id": t.id,
        "test_name": t.test_name,
        "test_code": t.test_code,
        "category": t.category,
        "price": t.price,
        "duration_hours": t.duration_hours,
        "preparation_instructions": t.preparation_instructions,
    } for t in tests])

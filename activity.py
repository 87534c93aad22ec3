from typing import Optional
from sqlalchemy.orm import Session
from fastapi import Request
import models


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None or request.client is None:
        return None
    return request.client.host


def record_activity(db: Session, user_id: Optional[int], activity: str, details: dict = None, request: Request = None):
    entry = models.ActivityLog(user_id=user_id, activity=activity, details=details, ip_address=client_ip(request))
    db.add(entry)
    return entry


def record_audit(db: Session, user_id: Optional[int], action: str, table_name: str, record_id: int, old_values: dict = None, new_values: dict = None):
    entry = models.AuditLog(user_id=user_id, action=action, table_name=table_name, record_id=record_id, old_values=old_values, new_values=new_values)
    db.add(entry)
    return entry


def record_status_change(db: Session, user_id: int, table_name: str, record_id: int, old_status: str, new_status: str):
    return record_audit(db, user_id, "status_change", table_name, record_id, {"status": old_status}, {"status": new_status})

"""Create the tables and a default admin account.

Usage: ``python init_db.py``
"""
import logging
from database import engine, SessionLocal
from config import settings
from logging_config import setup_logging
import models, utils

logger = logging.getLogger(__name__)


def init_db(db):
    models.Base.metadata.create_all(bind=engine)
    admin = db.query(models.User).filter(models.User.role == "admin").first()
    if admin:
        logger.info("Admin already exists: %s", admin.email)
        return admin
    admin = models.User(
        name="System Administrator",
        email=settings.default_admin_email,
        phone="+10000000000",
        password_hash=utils.hash(settings.default_admin_password),
        role="admin",
        status="active",
    )
    db.add(admin)
    db.commit()
    logger.info("Default admin created: %s", admin.email)
    return admin


if __name__ == "__main__":
    setup_logging()
    with SessionLocal() as db:
        init_db(db)

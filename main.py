import logging
from urllib.parse import parse_qsl, urlencode
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session
from database import engine, get_db
from routers import auth, appointment, slot, payment, prescription, medicine, pathology, admin, user, files
from logging_config import setup_logging
import models, responses

setup_logging()
logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)


class ActionQueryMiddleware:
    """Route ``/api/<resource>?action=<name>`` to ``/api/<resource>/<name>``."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            scope = self.rewrite(scope)
        await self.app(scope, receive, send)

    @staticmethod
    def rewrite(scope):
        parts = scope["path"].strip("/").split("/")
        if len(parts) != 2 or parts[0] != "api":
            return scope
        query = parse_qsl(scope.get("query_string", b"").decode("latin-1"), keep_blank_values=True)
        action = next((value for key, value in query if key == "action"), None)
        if not action:
            return scope
        path = f"/api/{parts[1]}/{action}"
        remaining = urlencode([(key, value) for key, value in query if key != "action"])
        return {**scope, "path": path, "raw_path": path.encode("latin-1"), "query_string": remaining.encode("latin-1")}


app = FastAPI(title="Hospital Appointment Management API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ActionQueryMiddleware)

responses.register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(appointment.router)
app.include_router(slot.router)
app.include_router(payment.router)
app.include_router(prescription.router)
app.include_router(medicine.router)
app.include_router(pathology.router)
app.include_router(admin.router)
app.include_router(user.router)
app.include_router(files.router)


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return responses.success({"status": "ok", "database": "connected"})

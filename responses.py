import logging
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def success(data=None, message: str = "Success"):
    return {
        "success": True,
        "message": message,
        "data": data,
        "timestamp": datetime.now().strftime(TIMESTAMP_FORMAT),
    }


def error(message: str, status_code: int = 400, data=None, headers=None):
    content = {
        "success": False,
        "message": message,
        "data": data,
        "timestamp": datetime.now().strftime(TIMESTAMP_FORMAT),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content), headers=headers)


def validation_message(errors) -> str:
    missing = [str(e["loc"][-1]) for e in errors if e.get("type") == "missing" and e.get("loc")]
    if missing:
        return "Missing required fields: " + ", ".join(missing)
    first = errors[0] if errors else {}
    msg = first.get("msg", "Invalid request")
    if msg.startswith("Value error, "):
        return msg[len("Value error, "):]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query")]
    if loc:
        return f"Invalid {'.'.join(loc)}: {msg}"
    return msg


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error(message, exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error(validation_message(exc.errors()), 400)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error("Internal server error", 500)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

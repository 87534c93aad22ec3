import json
import math
import random
from datetime import datetime
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from passlib.context import CryptContext
from pydantic import ValidationError

pwd_context = CryptContext(schemes=["argon2"], deprecated = "auto")

def hash(password):
    return pwd_context.hash(password)

def verify(user_password, hashed_password):
    return pwd_context.verify(user_password, hashed_password)


def paginate(query, page: int, limit: int):
    """Apply LIMIT/OFFSET to ``query`` and return ``(rows, pagination)``."""
    total = query.order_by(None).count()
    rows = query.limit(limit).offset((page - 1) * limit).all()
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
    return rows, pagination


def like(term: str) -> str:
    return f"%{term}%"


async def read_payload(request: Request, schema):
    """Validate a JSON body, or the JSON ``data`` field of a multipart form.

    Returns ``(payload, form)``; ``form`` is ``None`` for JSON requests and
    holds the uploaded files otherwise.
    """
    form = None
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("multipart/form-data"):
            form = await request.form()
            raw = json.loads(form.get("data") or "{}")
        else:
            body = await request.body()
            raw = json.loads(body or b"{}")
    except json.JSONDecodeError:
        raise RequestValidationError([{"type": "json_invalid", "loc": ("body",), "msg": "Invalid JSON body", "input": None}])
    try:
        return schema.model_validate(raw), form
    except ValidationError as e:
        raise RequestValidationError(e.errors())


def reference_number(prefix: str, digits: int) -> str:
    """``<prefix><YYYYMMDD><random digits>``, e.g. ``TXN20250101042137``."""
    return f"{prefix}{datetime.now():%Y%m%d}{random.randint(0, 10 ** digits - 1):0{digits}d}"

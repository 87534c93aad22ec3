import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from fastapi import UploadFile
from config import settings

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("jpg", "jpeg", "png", "gif")
DOCUMENT_TYPES = ("pdf", "doc", "docx", "jpg", "jpeg", "png")

UPLOAD_TYPE_EXTENSIONS = {
    "photo": IMAGE_TYPES,
    "document": DOCUMENT_TYPES,
    "certificate": DOCUMENT_TYPES,
    "passport": DOCUMENT_TYPES,
    "prescription": ("pdf", "html"),
}


class UploadRejected(ValueError):
    pass


def allowed_extensions(upload_type: str):
    return UPLOAD_TYPE_EXTENSIONS.get(upload_type, tuple(dict.fromkeys(IMAGE_TYPES + DOCUMENT_TYPES)))


def upload_root() -> Path:
    return Path(settings.upload_dir)


def prescription_root() -> Path:
    path = Path(settings.prescription_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_upload(upload: UploadFile, category: str = "general", allowed=None) -> dict:
    """Store ``upload`` under ``<upload_dir>/<category>/`` with a unique name."""
    if upload is None or not upload.filename:
        raise UploadRejected("No file uploaded")
    extension = Path(upload.filename).suffix.lower().lstrip(".")
    allowed = allowed or allowed_extensions(category)
    if extension not in allowed:
        raise UploadRejected("File type not allowed")

    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    if size > settings.max_upload_size:
        raise UploadRejected("File size too large")

    directory = upload_root() / category
    directory.mkdir(parents=True, exist_ok=True)
    filename = f"{uuid.uuid4().hex}_{int(time.time())}.{extension}"
    filepath = directory / filename
    with open(filepath, "wb") as out:
        shutil.copyfileobj(upload.file, out)

    return {
        "filename": filename,
        "filepath": filepath.as_posix(),
        "filesize": size,
        "filetype": upload.content_type,
        "original_name": upload.filename,
    }


def delete_file(path) -> bool:
    if path and os.path.isfile(path):
        os.remove(path)
        return True
    return False


def resolve_download(path: str):
    """Resolve ``path`` if it lies inside an upload or prescription directory, else ``None``."""
    candidate = Path(path).resolve()
    for root in (upload_root(), Path(settings.prescription_dir)):
        if candidate.is_relative_to(root.resolve()):
            return candidate
    return None

import logging
from fastapi import APIRouter, HTTPException, File, UploadFile, Depends, Query
from fastapi.responses import FileResponse
from typing import Literal
import models, oauth2, responses, storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api", tags=['Files'])

UploadType = Literal["photo", "document", "certificate", "passport", "prescription", "general"]


@router.post("/upload")
def upload_file(type: UploadType = Query("general"), file: UploadFile = File(...), current_user: models.User = Depends(oauth2.get_current_user)):
    try:
        stored = storage.save_upload(file, type, storage.allowed_extensions(type))
    except storage.UploadRejected as e:
        raise HTTPException(status_code=400, detail=f"File upload failed: {e}")
    logger.info("File uploaded user_id=%s type=%s filename=%s size=%s", current_user.id, type, stored["filename"], stored["filesize"])
    return responses.success(stored, "File uploaded successfully")


@router.get("/download")
def download_file(file: str = Query(..., min_length=1), current_user: models.User = Depends(oauth2.get_current_user)):
    path = storage.resolve_download(file)
    if path is None:
        raise HTTPException(status_code=403, detail="Access denied")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    logger.info("File downloaded user_id=%s path=%s size=%s", current_user.id, path, path.stat().st_size)
    return FileResponse(path, filename=path.name, headers={"Cache-Control": "no-cache, must-revalidate"})

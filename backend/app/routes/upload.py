import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool

from app import models, schemas
from app.auth import get_current_user, require_approved
from app.config import settings
from app.services.media_storage import MediaStorage, get_media_storage

logger = logging.getLogger("uploads")

router = APIRouter()


@router.post("", response_model=schemas.UploadResult)
async def upload_file(
    file: UploadFile = File(...),
    _: models.User = Depends(require_approved),
    storage: MediaStorage = Depends(get_media_storage),
):
    if not storage.is_configured():
        raise HTTPException(status_code=503, detail="Media storage is not configured")

    contents = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if not contents:
        raise HTTPException(status_code=400, detail="No file provided")
    if len(contents) > settings.MAX_UPLOAD_BYTES:
        limit_mb = settings.MAX_UPLOAD_BYTES / (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"File size exceeds {limit_mb:.0f}MB limit")

    try:
        result = await run_in_threadpool(storage.upload, contents, file.filename, file.content_type)
    except Exception:
        logger.exception("[Upload] Failed to store %s", file.filename)
        raise HTTPException(status_code=500, detail="Failed to upload file")
    return result


@router.get("/status")
def upload_status(
    _: models.User = Depends(get_current_user),
    storage: MediaStorage = Depends(get_media_storage),
):
    return {"configured": storage.is_configured()}

# routers/uploads.py

import secrets
import time

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from core.config import settings
from core.errors import supabase_error
from core.logging_config import logger
from core.supabase_client import get_supabase_client
from dependencies.auth import get_current_user, CurrentUser


router = APIRouter(
    prefix="/api",
    tags=["Uploads"],
)

# -----------------------------------------------------
# Constants
# -----------------------------------------------------
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
}
CAR_IMAGE_FOLDER = "car-images"


def car_image_path(content_type: str) -> str:
    """`car-images/<epoch ms>_<random>.<ext>`"""
    ext = ALLOWED_IMAGE_TYPES[content_type]
    stamp = int(time.time() * 1000)
    return f"{CAR_IMAGE_FOLDER}/{stamp}_{secrets.token_hex(4)}.{ext}"


# -----------------------------------------------------
# POST /api/upload-car-image
# -----------------------------------------------------
@router.post("/upload-car-image", summary="Upload a vehicle photo to storage")
async def upload_car_image(
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
):
    content_type = (file.content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(400, "Invalid file type. Only JPEG and PNG images are allowed.")

    # Reads at most one byte past the limit
    data = await file.read(settings.UPLOAD_MAX_BYTES + 1)
    if not data:
        raise HTTPException(400, "No file provided")
    if len(data) > settings.UPLOAD_MAX_BYTES:
        limit_mb = settings.UPLOAD_MAX_BYTES // (1024 * 1024)
        raise HTTPException(400, f"File too large. Maximum size is {limit_mb}MB.")

    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    path = car_image_path(content_type)
    bucket = client.storage.from_(settings.STORAGE_BUCKET)

    try:
        bucket.upload(path, data, {"content-type": content_type})
        url = bucket.get_public_url(path)
    except Exception as e:
        supabase_error(e, "Failed to upload image")

    logger.info(f"Car image uploaded by {current_user.id}: {path} ({len(data)} bytes)")

    return {
        "success": True,
        "url": url,
        "fileName": path,
        "size": len(data),
        "type": content_type,
    }

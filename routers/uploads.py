# routers/uploads.py

from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from botocore.exceptions import ClientError
from pydantic import BaseModel

from core.errors import PermissionDenied, StoreUnavailable, ValidationFailed
from core.logging_config import logger
from core.s3_client import BlobStaging
from dependencies.auth import CurrentUser, get_current_user
from dependencies.services import get_blob_staging
from models.document import StagedFile

router = APIRouter(
    prefix="/uploads",
    tags=["Uploads"],
)

# -----------------------------------------------------
# Constants
# -----------------------------------------------------
MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50 MB


class TempFileDelete(BaseModel):
    file_path: str


def require_staging(blobs: Optional[BlobStaging]) -> BlobStaging:
    if blobs is None:
        raise StoreUnavailable("Attachment storage is not configured")
    return blobs


# -----------------------------------------------------
# POST /uploads/temp
# -----------------------------------------------------
@router.post("/temp", response_model=StagedFile, summary="Stage an attachment before submitting a document")
def upload_temp_file(
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    blobs: Optional[BlobStaging] = Depends(get_blob_staging),
):
    """
    Stores the file under temp/{user_id}/. Pass the returned object in the
    `files` list of an RFA / work request / revision to attach it.
    """
    blobs = require_staging(blobs)

    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)

    if size > MAX_UPLOAD_BYTES:
        raise ValidationFailed(f"File is larger than {MAX_UPLOAD_BYTES // (1024 * 1024)} MB")

    try:
        staged = blobs.put_temp(current_user.id, file.filename or "upload", file.file, file.content_type)
    except ClientError as e:
        logger.error(f"S3 upload failed for {current_user.id}: {e}")
        raise StoreUnavailable("Failed to store the file")

    return StagedFile(size=size, **staged)


# -----------------------------------------------------
# DELETE /uploads/temp
# -----------------------------------------------------
@router.delete("/temp", summary="Remove a staged attachment")
def delete_temp_file(
    payload: TempFileDelete,
    current_user: CurrentUser = Depends(get_current_user),
    blobs: Optional[BlobStaging] = Depends(get_blob_staging),
):
    blobs = require_staging(blobs)

    try:
        deleted = blobs.delete_temp(current_user.id, payload.file_path)
    except ClientError as e:
        logger.error(f"S3 delete failed for {payload.file_path}: {e}")
        raise StoreUnavailable("Failed to delete the file")

    if not deleted:
        raise PermissionDenied(
            "Permission denied: only files in your own staging area can be deleted",
            role=current_user.role,
        )
    return {"deleted": payload.file_path}

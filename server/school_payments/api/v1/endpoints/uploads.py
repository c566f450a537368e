"""
school_payments/api/v1/endpoints/uploads.py
Blob storage pass-through: put, list by prefix, delete by pathname
"""
import re
from fastapi import APIRouter, HTTPException, status, Depends, Query, Form, File, UploadFile
from school_payments.models.schemas import FileListResponse, StoredFile, TokenPayload
from school_payments.core.config import settings
from school_payments.core.dependencies import get_storage
from school_payments.core.security import require_staff
from school_payments.services.storage_service import BlobStorage
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def _clean_path(value: str) -> str:
    parts = [re.sub(r"[^A-Za-z0-9._-]", "_", p) for p in value.split("/") if p not in ("", ".", "..")]
    return "/".join(parts)


@router.post("/", response_model=StoredFile, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    folder: str = Form("school-files"),
    current_user: TokenPayload = Depends(require_staff),
    storage: BlobStorage = Depends(get_storage)
):
    """
    Upload a file to blob storage (Accounting/Admin only)
    """
    if file.content_type not in settings.ALLOWED_FILE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type {file.content_type} is not allowed"
        )

    content = await file.read(settings.MAX_FILE_SIZE + 1)
    if len(content) > settings.MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File exceeds {settings.MAX_FILE_SIZE // (1024 * 1024)}MB"
        )

    pathname = f"{_clean_path(folder)}/{_clean_path(file.filename or 'upload')}"
    try:
        stored = storage.put(pathname, content, file.content_type)
        logger.info(f"File uploaded to {pathname} by {current_user.sub}")
        return StoredFile(**stored)
    except Exception as e:
        logger.error(f"Upload error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="File operation failed"
        )


@router.get("/", response_model=FileListResponse)
async def list_files(
    prefix: str = Query("school-files"),
    current_user: TokenPayload = Depends(require_staff),
    storage: BlobStorage = Depends(get_storage)
):
    """
    List files under a folder prefix (Accounting/Admin only)
    """
    try:
        files = storage.list(_clean_path(prefix))
        return FileListResponse(files=[StoredFile(**f) for f in files], total=len(files))
    except Exception as e:
        logger.error(f"List files error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="File operation failed"
        )


@router.delete("/", status_code=status.HTTP_200_OK)
async def delete_file(
    pathname: str = Query(..., min_length=1),
    current_user: TokenPayload = Depends(require_staff),
    storage: BlobStorage = Depends(get_storage)
):
    """
    Delete a file by pathname (Accounting/Admin only)
    """
    try:
        storage.delete(_clean_path(pathname))
        logger.info(f"File deleted: {pathname} by {current_user.sub}")
        return {"message": "File deleted successfully", "pathname": pathname}
    except Exception as e:
        logger.error(f"Delete file error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="File operation failed"
        )

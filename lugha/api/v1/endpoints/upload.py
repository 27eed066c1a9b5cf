"""
File upload endpoints.

Uploads are stored under UPLOAD_DIR as "<uuid>-<original name>" and served
back to authenticated users from {API_PREFIX}/uploads/{name}.
"""

import logging
import re
import uuid
from pathlib import Path as FilePath
from typing import BinaryIO

from fastapi import APIRouter, Depends, File, HTTPException, Path, UploadFile, status
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from lugha.core.config import settings
from lugha.core.security import UserContext, get_current_user
from lugha.schemas.chat import FileUpload

logger = logging.getLogger("lugha.upload")

router = APIRouter()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_CHUNK_SIZE = 64 * 1024


def safe_filename(name: str | None) -> str:
    """Basename with anything outside [A-Za-z0-9._-] replaced by '_'."""
    base = FilePath(name or "").name
    cleaned = _UNSAFE_CHARS.sub("_", base).lstrip(".")
    return cleaned or "upload"


def write_chunk(out: BinaryIO, chunk: bytes) -> None:
    out.write(chunk)


def discard(out: BinaryIO, target: FilePath) -> None:
    """Close and remove a partially written upload."""
    out.close()
    target.unlink(missing_ok=True)


def upload_dir() -> FilePath:
    directory = FilePath(settings.UPLOAD_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


@router.post("/upload", response_model=FileUpload, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    user_ctx: UserContext = Depends(get_current_user),
) -> FileUpload:
    """
    Store an attachment.

    Raises:
        HTTPException: 415 for unsupported content types.
        HTTPException: 413 when the file exceeds UPLOAD_MAX_BYTES.
        HTTPException: 500 when the file cannot be written; nothing is left on disk.
    """
    if file.content_type not in settings.UPLOAD_ALLOWED_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Invalid file type. Only PDF, DOC, DOCX, JPG, PNG, and TXT files are allowed.",
        )

    original = safe_filename(file.filename)
    stored_name = f"{uuid.uuid4()}-{original}"
    target = upload_dir() / stored_name

    size = 0
    out = await run_in_threadpool(target.open, "wb")
    try:
        while chunk := await file.read(_CHUNK_SIZE):
            size += len(chunk)
            if size > settings.UPLOAD_MAX_BYTES:
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File too large. Maximum size is {settings.UPLOAD_MAX_BYTES // (1024 * 1024)}MB.",
                )
            await run_in_threadpool(write_chunk, out, chunk)
    except Exception as e:
        await run_in_threadpool(discard, out, target)
        if isinstance(e, OSError):
            logger.error("Failed to store upload %s: %s", stored_name, e)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store file") from e
        raise
    else:
        await run_in_threadpool(out.close)
    finally:
        await file.close()

    logger.info("User %s uploaded %s (%d bytes)", user_ctx.user_id, stored_name, size)
    return FileUpload(file_url=f"{settings.API_PREFIX}/uploads/{stored_name}", filename=original, size=size)


@router.get("/uploads/{name}")
async def get_upload(
    name: str = Path(..., min_length=1),
    user_ctx: UserContext = Depends(get_current_user),
) -> FileResponse:
    if safe_filename(name) != name:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    path = FilePath(settings.UPLOAD_DIR) / name
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(path)

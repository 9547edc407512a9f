import hashlib
import os
from datetime import datetime
from mimetypes import guess_type
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from slugify import slugify
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import FileObject
from ..schemas.files import UploadResponse
from ..storage.local_provider import LocalStorageProvider
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/files", tags=["files"])
logger = structlog.get_logger(__name__)


def get_storage() -> StorageProvider:
    return LocalStorageProvider()


def canonical_key(checklist_id: Optional[int], item_ref: Optional[str], original_name: str) -> str:
    now = datetime.utcnow()
    safe_name = slugify(os.path.splitext(original_name)[0]) or "photo"
    ext = os.path.splitext(original_name)[1].lower()
    folder = slugify(f"checklist-{checklist_id}") if checklist_id else "misc"
    item_part = slugify(item_ref) if item_ref else "items"
    return f"/checklists/{now:%Y}/{folder}/{item_part}/{now:%Y-%m-%d_%H%M%S%f}_{safe_name}{ext}"


@router.post("/upload", response_model=UploadResponse)
async def upload(
    file: UploadFile = File(...),
    original_name: Optional[str] = Form(None),
    checklist_id: Optional[int] = Form(None),
    item_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    name = original_name or file.filename or "photo"
    content_type = file.content_type or guess_type(name)[0] or "application/octet-stream"
    key = canonical_key(checklist_id, item_id, name)
    try:
        storage.put(key, content, content_type)
    except OSError as e:
        logger.error("file_store_failed", key=key, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to store file: {e}")

    fo = FileObject(
        provider="local",
        container="local",
        key=key,
        size_bytes=len(content),
        checksum_sha256=hashlib.sha256(content).hexdigest(),
        content_type=content_type,
        checklist_id=checklist_id,
        source_ref=item_id,
    )
    db.add(fo)
    db.commit()
    db.refresh(fo)
    return UploadResponse(id=str(fo.id), key=key, url=storage.get_download_url(key) or key)


@router.get("/local/{file_path:path}")
def serve_local_file(file_path: str, storage: StorageProvider = Depends(get_storage)):
    if not isinstance(storage, LocalStorageProvider):
        raise HTTPException(status_code=404, detail="File not found")
    path = storage.get_path(file_path)
    if not storage.contains(path):
        raise HTTPException(status_code=403, detail="Access denied")
    if not path.exists():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        path=str(path),
        media_type=guess_type(str(path))[0] or "application/octet-stream",
        filename=path.name,
    )

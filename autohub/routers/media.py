from __future__ import annotations

import asyncio
import time
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse

from autohub.core.config import get_settings
from autohub.routers.deps import require_admin, state

router = APIRouter(prefix="/api/media", tags=["media"])

MAX_FILES = 20
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
READ_CHUNK_BYTES = 1024 * 1024


async def _read_capped(upload: UploadFile) -> Optional[bytes]:
    """Read the upload, giving up with ``None`` as soon as it passes the size cap."""
    if upload.size is not None and upload.size > MAX_UPLOAD_BYTES:
        return None
    chunks: List[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(READ_CHUNK_BYTES)
        if not chunk:
            return b"".join(chunks)
        total += len(chunk)
        if total > MAX_UPLOAD_BYTES:
            return None
        chunks.append(chunk)


def _stored_name(original: str) -> str:
    ext = Path(original or "").suffix
    return f"{int(time.time() * 1000)}-{uuid.uuid4()}{ext}"


def _write_bytes(path: Path, data: bytes) -> None:
    path.write_bytes(data)


@router.get("")
async def list_media(request: Request):
    return {"items": await state(request, "media_store").list()}


@router.post("", dependencies=[Depends(require_admin)])
async def upload_media(request: Request, files: Optional[List[UploadFile]] = File(None)):
    uploads = [f for f in files or [] if f.filename]
    if not uploads:
        return JSONResponse({"error": "No files uploaded. Use form-data field 'files'."}, status_code=400)
    if len(uploads) > MAX_FILES:
        return JSONResponse({"error": f"At most {MAX_FILES} files can be uploaded at once."}, status_code=400)

    payloads = []
    for upload in uploads:
        data = await _read_capped(upload)
        if data is None:
            return JSONResponse({"error": f"{upload.filename} exceeds the 10 MB upload limit."}, status_code=413)
        payloads.append((upload, data))

    store = state(request, "media_store")
    base_url = get_settings().api_public_base_url
    created = []
    for upload, data in payloads:
        file_name = _stored_name(upload.filename)
        await asyncio.to_thread(_write_bytes, store.uploads_dir / file_name, data)
        item = await store.add(
            name=upload.filename,
            file_name=file_name,
            url=f"{base_url}/uploads/{file_name}",
            mime=upload.content_type or "application/octet-stream",
            size_bytes=len(data),
        )
        created.append(item)
    return JSONResponse({"items": created}, status_code=201)


@router.delete("/{media_id}", dependencies=[Depends(require_admin)])
async def delete_media(request: Request, media_id: str):
    removed = await state(request, "media_store").remove(media_id)
    if not removed:
        return JSONResponse({"error": "Media item not found."}, status_code=404)
    return {"ok": True, "removedId": removed["id"]}

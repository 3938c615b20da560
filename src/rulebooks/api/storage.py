"""Raw upload target and static file serving for stored assets."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse

from rulebooks.api.schemas import StoredUploadResponse
from rulebooks.config import MAX_PDF_BYTES
from rulebooks.dependencies import get_storage
from rulebooks.errors import ValidationError
from rulebooks.storage import LocalAssetStorage

router = APIRouter(prefix="/storage", tags=["storage"])


@router.put("/upload/{token}", response_model=StoredUploadResponse)
async def upload_with_token(
    token: str,
    request: Request,
    storage: LocalAssetStorage = Depends(get_storage),
) -> StoredUploadResponse:
    """Accept the raw bytes for a previously issued upload URL."""

    data = await request.body()
    if not data:
        raise ValidationError("Upload body is empty")
    if len(data) > MAX_PDF_BYTES:
        raise ValidationError("Upload exceeds the 50MB limit")
    path = storage.accept_upload(token, data)
    return StoredUploadResponse(path=path)


@router.get("/files/{path:path}")
def download(path: str, storage: LocalAssetStorage = Depends(get_storage)) -> FileResponse:
    return FileResponse(storage.open_path(path))

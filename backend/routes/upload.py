from __future__ import annotations

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from backend.application import get_document_service
from backend.routes.documents import resolve_actor

router = APIRouter(tags=["upload"])


@router.post("/upload")
async def upload_files(request: Request, files: list[UploadFile] = File(...)) -> JSONResponse:
    """Upload one or more PDFs straight into the inbox."""
    if not files:
        raise HTTPException(status_code=400, detail="At least one file must be provided")

    service = get_document_service()
    actor = resolve_actor(request)
    staged: list[tuple[str | None, str | None, bytes]] = []
    try:
        for upload in files:
            data = await upload.read()
            service.ingest.validate_upload(upload.filename, upload.content_type, data)
            staged.append((upload.filename, upload.content_type, data))
    finally:
        for upload in files:
            await upload.close()

    created: list[str] = []
    for filename, content_type, data in staged:
        record = await service.ingest_upload(filename, data, content_type=content_type, actor=actor)
        created.append(record["docId"])
    return JSONResponse(status_code=201, content={"created": created})

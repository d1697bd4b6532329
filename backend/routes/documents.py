from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import FileResponse, JSONResponse

from backend.application import get_document_service

router = APIRouter(tags=["documents"])


def resolve_actor(request: Request, payload: dict[str, Any] | None = None) -> str | None:
    """``X-User`` header first, then body ``user``; ``None`` means the configured default."""

    header = request.headers.get("x-user")
    if header and header.strip():
        return header.strip()
    if payload and isinstance(payload.get("user"), str) and payload["user"].strip():
        return payload["user"].strip()
    return None


@router.get("/docs")
async def list_documents(state: str = Query(default="inbox")) -> dict:
    service = get_document_service()
    items = [asdict(item) for item in await service.list_documents(state)]
    return {"items": items, "count": len(items)}


@router.get("/docs/{doc_id}")
async def get_document(doc_id: str) -> dict:
    service = get_document_service()
    return await service.get_document(doc_id)


@router.get("/docs/{doc_id}/effective")
async def get_effective_fields(doc_id: str) -> dict:
    service = get_document_service()
    return {"docId": doc_id, "fields": await service.get_effective_fields(doc_id)}


@router.get("/docs/{doc_id}/preview")
async def preview_document(doc_id: str) -> FileResponse:
    service = get_document_service()
    record = await service.get_document(doc_id)
    path = await service.preview_path(doc_id)
    return FileResponse(
        path,
        media_type="application/pdf",
        filename=record.get("originalFilename") or f"{doc_id}.pdf",
        content_disposition_type="inline",
        headers={"Cache-Control": "no-store"},
    )


@router.patch("/docs/{doc_id}/corrections")
async def save_corrections(doc_id: str, request: Request, payload: dict) -> dict:
    service = get_document_service()
    return await service.apply_corrections(doc_id, payload, actor=resolve_actor(request, payload))


@router.post("/docs/{doc_id}/route")
async def route_document(doc_id: str, request: Request, payload: dict) -> dict:
    service = get_document_service()
    return await service.route_document(doc_id, payload.get("to"), actor=resolve_actor(request, payload))


@router.post("/docs/{doc_id}/classify", response_model=None)
async def classify_document(doc_id: str, request: Request) -> dict | JSONResponse:
    service = get_document_service()
    result = await service.classify_document(doc_id, actor=resolve_actor(request))
    if not result.ok:
        return JSONResponse(status_code=502, content={"ok": False, "docId": doc_id, "error": result.error})
    return {"ok": True, "docId": doc_id}


@router.post("/docs/{doc_id}/auto-route")
async def auto_route_document(
    doc_id: str,
    request: Request,
    payload: dict | None = Body(default=None),
) -> dict:
    payload = payload or {}
    service = get_document_service()
    result = await service.auto_route_document(
        doc_id, payload.get("threshold"), actor=resolve_actor(request, payload)
    )
    return {
        "ok": True,
        "docId": result.docId,
        "newState": result.newState,
        "aggregated_confidence": result.aggregated_confidence,
    }


@router.post("/classify")
async def bulk_classify(request: Request, payload: dict | None = Body(default=None)) -> dict:
    payload = payload or {}
    service = get_document_service()
    summary = await service.bulk_classify(bool(payload.get("reclassify")), actor=resolve_actor(request, payload))
    return asdict(summary)


@router.post("/auto-route")
async def bulk_auto_route(request: Request, payload: dict | None = Body(default=None)) -> dict:
    payload = payload or {}
    service = get_document_service()
    summary = await service.bulk_auto_route(payload.get("threshold"), actor=resolve_actor(request, payload))
    return asdict(summary)

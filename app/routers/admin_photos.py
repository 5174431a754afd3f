# app/routers/admin_photos.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import Response

from app.api.deps import get_app_settings, get_current_admin, get_event_reader, get_photos, get_storage
from app.services.app_settings import AppSettingsStore
from app.services.event_log import EventLogReader
from app.services.photos import PhotoReviewService
from app.services.storage import GatewayError, ListingGateway, StorageNotFound
from app.services.tickets import extract_ticket_number

logger = logging.getLogger("kiosk.admin")

router = APIRouter(prefix="/admin", tags=["admin:photos"], dependencies=[Depends(get_current_admin)])


def _require_file_id(payload: Optional[dict]) -> str:
    file_id = (payload or {}).get("fileId")
    if not file_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_fileId")
    return str(file_id)


async def _photo_bytes(storage: ListingGateway, file_id: str, error_code: str) -> Response:
    try:
        content, mime_type = await storage.get(file_id)
    except StorageNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="photo_not_found")
    except GatewayError:
        logger.exception("lettura foto %s fallita", file_id)
        raise HTTPException(status_code=500, detail=error_code)
    return Response(content=content, media_type=mime_type or "image/jpeg")


# ------------------------------------------------------------
# Revisione Pending
# ------------------------------------------------------------
@router.get("/next-photo")
async def next_photo(
    photos: PhotoReviewService = Depends(get_photos),
    store: AppSettingsStore = Depends(get_app_settings),
):
    """La foto in attesa più vecchia + quante ne restano."""
    if not store.enabled:
        return {"empty": True, "reason": "app_offline", "pendingCount": 0}
    try:
        file, pending_count = await asyncio.gather(photos.next_pending(), photos.count_pending())
    except GatewayError:
        logger.exception("lettura prossima foto fallita")
        raise HTTPException(status_code=500, detail="failed_next_photo")

    if file is None:
        return {"empty": True, "pendingCount": pending_count}
    return {
        "empty": False,
        "fileId": file.id,
        "name": file.name,
        "photoNumber": extract_ticket_number(file.name),
        "pendingCount": pending_count,
    }


@router.get("/photo/{file_id}/thumbnail")
async def photo_thumbnail(file_id: str, storage: ListingGateway = Depends(get_storage)):
    # nessuna miniatura nello storage: si serve l'immagine intera
    return await _photo_bytes(storage, file_id, "failed_photo_thumbnail")


@router.get("/photo/{file_id}")
async def photo(file_id: str, storage: ListingGateway = Depends(get_storage)):
    return await _photo_bytes(storage, file_id, "failed_photo_stream")


@router.post("/approve")
async def approve(payload: Optional[dict] = Body(None), photos: PhotoReviewService = Depends(get_photos)):
    file_id = _require_file_id(payload)
    try:
        await photos.approve(file_id)
    except GatewayError:
        logger.exception("approvazione %s fallita", file_id)
        raise HTTPException(status_code=500, detail="failed_approve")
    return {"ok": True}


@router.post("/reject")
async def reject(payload: Optional[dict] = Body(None), photos: PhotoReviewService = Depends(get_photos)):
    file_id = _require_file_id(payload)
    try:
        await photos.reject(file_id)
    except GatewayError:
        logger.exception("rifiuto %s fallito", file_id)
        raise HTTPException(status_code=500, detail="failed_reject")
    return {"ok": True}


# ------------------------------------------------------------
# Approvate
# ------------------------------------------------------------
@router.get("/approved-list")
async def approved_list(
    page: int = Query(default=1),
    pageSize: int = Query(default=24),
    photos: PhotoReviewService = Depends(get_photos),
):
    try:
        result = await photos.approved_page(page, pageSize)
    except GatewayError:
        logger.exception("lista approvate fallita")
        raise HTTPException(status_code=500, detail="list_approved_failed")
    return {
        "ok": True,
        "files": [f.to_public() for f in result.files],
        "total": result.total,
        "page": result.page,
        "pageSize": result.page_size,
        "totalPages": result.total_pages,
    }


@router.post("/delete-approved")
async def delete_approved(payload: Optional[dict] = Body(None), photos: PhotoReviewService = Depends(get_photos)):
    file_id = _require_file_id(payload)
    try:
        await photos.delete_approved(file_id)
    except GatewayError:
        logger.exception("eliminazione approvata %s fallita", file_id)
        raise HTTPException(status_code=500, detail="delete_approved_failed")
    return {"ok": True}


@router.post("/clear-drive")
async def clear_drive(photos: PhotoReviewService = Depends(get_photos)):
    """⚠️ Cestina TUTTE le foto (pending + approvate). Da usare a fine evento."""
    result = await photos.clear_folders()
    return {"ok": True, "trashedCount": result.trashed_count, "errors": result.errors}


# ------------------------------------------------------------
# Info foto (match upload -> form della stessa sessione)
# ------------------------------------------------------------
@router.get("/photo-info/{ticket_label}")
async def photo_info(ticket_label: str, reader: EventLogReader = Depends(get_event_reader)):
    try:
        match = await reader.find_photo_info(ticket_label)
    except GatewayError:
        logger.exception("ricerca info foto %s fallita", ticket_label)
        raise HTTPException(status_code=500, detail="server_error")
    if match is None:
        return {"ok": False, "error": "no_match_found"}
    return {"ok": True, "match": match.model_dump()}

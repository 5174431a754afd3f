# app/routers/gallery.py
# Galleria pubblica (schermo in piazza): solo foto approvate, senza token.
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from app.api.deps import get_app_settings, get_photos, get_storage
from app.services.app_settings import AppSettingsStore
from app.services.photos import PhotoReviewService
from app.services.storage import GatewayError, ListingGateway

logger = logging.getLogger("kiosk.gallery")

router = APIRouter(prefix="/gallery", tags=["gallery"])


@router.get("/approved")
async def gallery_approved(
    store: AppSettingsStore = Depends(get_app_settings),
    photos: PhotoReviewService = Depends(get_photos),
):
    try:
        files = await photos.gallery(store.settings.galleryDisplayLimit)
    except GatewayError:
        logger.exception("lista galleria fallita")
        raise HTTPException(status_code=500, detail="list_approved_failed")
    return {"ok": True, "files": [f.to_public() for f in files]}


@router.get("/photo/{file_id}")
async def gallery_photo(file_id: str, storage: ListingGateway = Depends(get_storage)):
    try:
        content, mime_type = await storage.get(file_id)
    except GatewayError:
        raise HTTPException(status_code=404, detail="photo_not_found")
    return Response(content=content, media_type=mime_type or "image/jpeg")

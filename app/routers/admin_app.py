# app/routers/admin_app.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.api.deps import (
    get_app_settings,
    get_config,
    get_current_admin,
    get_event_reader,
    get_photos,
    get_reports,
)
from app.core.config import Settings
from app.services.app_settings import AppSettingsStore
from app.services.event_log import EventLogReader
from app.services.photos import PhotoReviewService
from app.services.session_report import SessionReportService
from app.services.storage import GatewayError

logger = logging.getLogger("kiosk.admin")

router = APIRouter(prefix="/admin", tags=["admin:app"], dependencies=[Depends(get_current_admin)])


def _check_access_code(config: Settings, access_code) -> None:
    """Spegnere l'app richiede di reinserire il codice admin (o la chiave master)."""
    if not access_code or not isinstance(access_code, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_access_code")
    if not config.ADMIN_ACCESS_CODE and not config.ADMIN_UNLOCK_KEY:
        raise HTTPException(status_code=500, detail="admin_code_not_configured")
    if access_code not in (config.ADMIN_ACCESS_CODE, config.ADMIN_UNLOCK_KEY):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_access_code")


# ------------------------------------------------------------
# Stato app (toggle on/off)
# ------------------------------------------------------------
@router.get("/app-status")
async def get_app_status(store: AppSettingsStore = Depends(get_app_settings)):
    return {"ok": True, "enabled": store.enabled}


@router.post("/app-status")
async def set_app_status(
    payload: Optional[dict] = Body(None),
    store: AppSettingsStore = Depends(get_app_settings),
    config: Settings = Depends(get_config),
):
    payload = payload or {}
    enabled = payload.get("enabled")
    if not isinstance(enabled, bool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_enabled_flag")
    if not enabled:
        _check_access_code(config, payload.get("accessCode"))

    persisted = await store.set_enabled(enabled)
    if not persisted:
        logger.warning("stato app non persistito sul foglio impostazioni")
        return {"ok": True, "enabled": store.enabled, "warning": "settings_persist_failed"}
    return {"ok": True, "enabled": store.enabled}


# ------------------------------------------------------------
# Impostazioni app
# ------------------------------------------------------------
@router.get("/settings")
async def get_settings_admin(store: AppSettingsStore = Depends(get_app_settings)):
    return {"ok": True, "settings": store.settings.model_dump()}


@router.post("/settings")
async def update_settings_admin(
    payload: Optional[dict] = Body(None),
    store: AppSettingsStore = Depends(get_app_settings),
):
    persisted = await store.update(payload or {})
    if not persisted:
        raise HTTPException(status_code=500, detail="settings_persist_failed")
    return {"ok": True, "settings": store.settings.model_dump()}


# ------------------------------------------------------------
# Chiusura evento
# ------------------------------------------------------------
@router.post("/shutdown")
async def shutdown(
    payload: Optional[dict] = Body(None),
    store: AppSettingsStore = Depends(get_app_settings),
    config: Settings = Depends(get_config),
    reports: SessionReportService = Depends(get_reports),
    reader: EventLogReader = Depends(get_event_reader),
    photos: PhotoReviewService = Depends(get_photos),
):
    """
    Report del giorno -> app offline -> email di chiusura -> pulizia
    (log + cartelle foto) -> persistenza stato. Ritorna il testo del report.
    """
    _check_access_code(config, (payload or {}).get("accessCode"))

    try:
        report = await reports.build_today()
    except GatewayError:
        logger.exception("report di chiusura fallito")
        raise HTTPException(status_code=500, detail="shutdown_failed")

    store.enabled = False
    await reports.send_shutdown(report)

    cleanup = {"logsCleared": False, "trashedCount": 0, "errors": []}
    try:
        cleanup["logsCleared"] = await reader.reset_logs()
    except GatewayError:
        logger.exception("reset log fallito durante la chiusura")
    if not cleanup["logsCleared"]:
        cleanup["errors"].append("reset_logs_failed")

    cleared = await photos.clear_folders()
    cleanup["trashedCount"] = cleared.trashed_count
    cleanup["errors"].extend(cleared.errors)
    if cleanup["errors"]:
        logger.warning("chiusura con errori di pulizia: %s", cleanup["errors"])

    if not await store.persist():
        logger.warning("chiusura: stato non persistito sul foglio impostazioni")

    return {"ok": True, "enabled": False, "reportText": report.text, "cleanup": cleanup}

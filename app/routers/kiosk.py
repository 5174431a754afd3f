# app/routers/kiosk.py
from __future__ import annotations

import logging
import smtplib
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from app.api.deps import (
    get_app_settings,
    get_config,
    get_event_writer,
    get_mailer,
    get_uploader,
    require_app_enabled,
)
from app.core.clock import to_iso_utc, utcnow
from app.core.config import Settings
from app.core.utils import build_session_identifier, newsletter_flag
from app.schemas.event_log import EventType
from app.services.app_settings import AppSettingsStore
from app.services.event_log import EventLogWriter, log_event_safely
from app.services.notify import VISIT_SUBJECT, Mailer, render_visit_notification
from app.services.storage import GatewayError
from app.services.uploads import UploadOrchestrator

logger = logging.getLogger("kiosk.api")

router = APIRouter(tags=["kiosk"])


# ------------------------------------------------------------
# Impostazioni pubbliche per la web app
# ------------------------------------------------------------
@router.get("/app-settings")
async def public_app_settings(store: AppSettingsStore = Depends(get_app_settings)):
    return store.public_view()


# ------------------------------------------------------------
# Visita (caricamento pagina)
# ------------------------------------------------------------
@router.post("/ping", dependencies=[Depends(require_app_enabled)])
async def ping(
    request: Request,
    background_tasks: BackgroundTasks,
    writer: EventLogWriter = Depends(get_event_writer),
):
    background_tasks.add_task(
        log_event_safely, writer, EventType.visit.value, session_id=build_session_identifier(request)
    )
    return {"ok": True}


# ------------------------------------------------------------
# Upload foto (corpo raw image/*) -> ticket
# ------------------------------------------------------------
@router.post("/upload", dependencies=[Depends(require_app_enabled)])
async def upload(
    request: Request,
    background_tasks: BackgroundTasks,
    uploader: UploadOrchestrator = Depends(get_uploader),
    writer: EventLogWriter = Depends(get_event_writer),
    config: Settings = Depends(get_config),
):
    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no_file_uploaded")

    content = await request.body()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no_file_uploaded")
    if len(content) > config.UPLOAD_MAX_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="file_too_large")

    try:
        result = await uploader.upload(content, content_type)
    except GatewayError as e:
        logger.exception("upload fallito")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "upload_failed", "details": str(e)},
        )

    background_tasks.add_task(
        log_event_safely,
        writer,
        EventType.upload.value,
        session_id=build_session_identifier(request),
        ticket=result.ticket_label,
    )
    return result.to_response()


# ------------------------------------------------------------
# Form famiglia (log "form" + email di notifica)
# ------------------------------------------------------------
@router.post("/visit", dependencies=[Depends(require_app_enabled)])
async def visit(
    request: Request,
    payload: Optional[dict] = Body(None),
    writer: EventLogWriter = Depends(get_event_writer),
    mailer: Mailer = Depends(get_mailer),
):
    payload = payload or {}
    country = payload.get("country")
    last_name = payload.get("lastName")
    email = payload.get("email")
    newsletter = payload.get("newsletter")
    timestamp = payload.get("timestamp") or to_iso_utc(utcnow())

    # riga "form" scritta prima dell'invio, qualunque esito abbia la mail
    await log_event_safely(
        writer,
        EventType.form.value,
        email=email or "",
        session_id=build_session_identifier(request),
        country=country,
        last_name=last_name or "",
        newsletter=newsletter,
        timestamp_utc=str(timestamp),
    )

    if not mailer.can_send:
        logger.info("mail non configurata, notifica visita saltata")
        return {"ok": True, "mail": "disabled"}

    text = render_visit_notification(
        country, last_name, email, newsletter_flag(newsletter) == "Y", str(timestamp)
    )
    try:
        await run_in_threadpool(mailer.send, VISIT_SUBJECT, text)
    except (smtplib.SMTPException, OSError):
        logger.exception("invio email visita fallito")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="email_failed")

    return {"ok": True}

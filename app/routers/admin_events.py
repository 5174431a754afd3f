# app/routers/admin_events.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_current_admin, get_event_reader
from app.core.clock import local_now
from app.services.event_log import EventLogReader
from app.services.storage import GatewayError

logger = logging.getLogger("kiosk.admin")

router = APIRouter(prefix="/admin", tags=["admin:events"], dependencies=[Depends(get_current_admin)])


@router.get("/event-logs")
async def event_logs(
    limit: int = Query(default=12),
    reader: EventLogReader = Depends(get_event_reader),
):
    """
    Feed attività per la dashboard: ultimi eventi dal più recente,
    ognuno come {time: "HH:MM", text}. Massimo 50.
    """
    limit = min(limit if limit > 0 else 12, 50)
    try:
        items = await reader.recent_events(limit)
    except GatewayError:
        logger.exception("lettura log eventi fallita")
        raise HTTPException(status_code=500, detail="event_log_fetch_failed")
    return {"ok": True, "events": [i.model_dump() for i in items]}


@router.get("/activity-stats")
async def activity_stats(reader: EventLogReader = Depends(get_event_reader)):
    """24 conteggi per ora locale di oggi + ora locale corrente."""
    try:
        counts = await reader.activity_counts()
    except GatewayError:
        logger.exception("statistiche attività fallite")
        raise HTTPException(status_code=500, detail="activity_stats_failed")
    return {"ok": True, "counts": counts, "currentHour": local_now().hour}


@router.post("/reset-logs")
async def reset_logs(reader: EventLogReader = Depends(get_event_reader)):
    """Azzera il log eventi mantenendo la riga di intestazione."""
    try:
        done = await reader.reset_logs()
    except GatewayError:
        logger.exception("reset log fallito")
        done = False
    if not done:
        raise HTTPException(status_code=500, detail="reset_logs_failed")
    return {"ok": True, "message": "reset_logs_completed"}

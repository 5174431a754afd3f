# app/core/scheduler.py
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import FastAPI

from app.core.clock import local_now

# Usiamo il logger di uvicorn così i messaggi compaiono in console
logger = logging.getLogger("uvicorn.error")


# ---------------------------------------------------------------------
# REPORT GIORNALIERO
# ---------------------------------------------------------------------
def report_due(local: datetime, report_hour: int, last_sent: Optional[date]) -> bool:
    """Un solo invio per data locale, a partire dall'ora configurata."""
    return local.hour >= report_hour and last_sent != local.date()


async def run_daily_report_tick(app: FastAPI, now: Optional[datetime] = None) -> Optional[str]:
    """
    Un giro del loop: invia il report se dovuto e segna la data locale.
    Ritorna l'esito dell'invio, None se non era dovuto.
    """
    config = app.state.config
    local = local_now(now)
    if not report_due(local, config.REPORT_HOUR_LOCAL, getattr(app.state, "last_report_date", None)):
        return None

    outcome = await app.state.reports.send_daily(now)
    app.state.last_report_date = local.date()
    msg = f"[report] daily report {outcome} for {local.date().isoformat()}"
    print(msg)
    logger.info(msg)
    return outcome


async def _daily_report_loop(app: FastAPI) -> None:
    """
    Loop periodico:
    - ogni REPORT_CHECK_INTERVAL_SECONDS controlla se il report di oggi è dovuto.
    - non lancia eccezioni verso l'alto (il loop non deve morire).
    """
    interval = max(5, int(app.state.config.REPORT_CHECK_INTERVAL_SECONDS))

    while True:
        try:
            await run_daily_report_tick(app)
        except Exception as e:
            msg = f"[report] error in daily report loop: {e!r}"
            print(msg)
            logger.exception(msg)

        await asyncio.sleep(interval)


# ---------------------------------------------------------------------
# AVVIO / ARRESTO SCHEDULER
# ---------------------------------------------------------------------
def start_scheduler(app: FastAPI) -> None:
    """Avvia il task del report giornaliero solo se abilitato via settings."""
    if not app.state.config.REPORT_SCHEDULER_ENABLED:
        print("[scheduler] disabled by settings")
        app.state.report_task = None
        return

    # Evita doppi avvii in reload
    if getattr(app.state, "report_task", None) is None:
        app.state.report_task = asyncio.get_running_loop().create_task(_daily_report_loop(app))
        print("[scheduler] started (daily report loop)")
        logger.info("[scheduler] started (daily report loop)")


async def stop_scheduler(app: FastAPI) -> None:
    """Arresta il task in modo pulito su shutdown."""
    task: Optional[asyncio.Task] = getattr(app.state, "report_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        app.state.report_task = None
        print("[scheduler] stopped (daily report loop)")
        logger.info("[scheduler] stopped (daily report loop)")

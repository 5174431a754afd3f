# app/routers/reports.py
from __future__ import annotations

import logging
import smtplib
from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.api.deps import get_current_admin, get_reports
from app.services.session_report import SessionReportService
from app.services.storage import GatewayError

logger = logging.getLogger("kiosk.reports")

router = APIRouter(tags=["reports"])


async def _send_daily(reports: SessionReportService) -> dict:
    try:
        outcome = await reports.send_daily()
    except (GatewayError, smtplib.SMTPException, OSError):
        logger.exception("invio report giornaliero fallito")
        raise HTTPException(status_code=500, detail="report_failed")
    return {"ok": True, "result": outcome}


@router.get("/session-report-daily")
async def session_report_daily(reports: SessionReportService = Depends(get_reports)):
    """Trigger del cron giornaliero."""
    logger.info("cron report giornaliero")
    return await _send_daily(reports)


@router.post("/session-report-now")
async def session_report_now(reports: SessionReportService = Depends(get_reports)):
    """Trigger manuale (debug)."""
    return await _send_daily(reports)


@router.get("/session-report-preview", dependencies=[Depends(get_current_admin)])
async def session_report_preview(reports: SessionReportService = Depends(get_reports)):
    """Anteprima del report di oggi, senza email."""
    try:
        report = await reports.build_today()
    except GatewayError:
        logger.exception("anteprima report fallita")
        raise HTTPException(status_code=500, detail="report_preview_failed")
    return {"ok": True, "reportText": report.text}


@router.post("/session-report-date")
async def session_report_date(
    payload: Optional[dict] = Body(None),
    reports: SessionReportService = Depends(get_reports),
):
    """Report compatto per una data locale (YYYY-MM-DD), inviato via email se configurata."""
    raw = (payload or {}).get("date")
    if not raw:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_date")
    try:
        day = date.fromisoformat(str(raw))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_date")

    try:
        text = await reports.build_for_date(day)
        emailed = await reports.send_date_report(day, text)
    except (GatewayError, smtplib.SMTPException, OSError):
        logger.exception("report per data %s fallito", day)
        raise HTTPException(status_code=500, detail="report_failed")
    return {"ok": True, "reportText": text, "emailed": emailed}

# app/services/session_report.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from starlette.concurrency import run_in_threadpool

from app.core.clock import format_long_spanish_date, local_now
from app.schemas.event_log import DailyStats, PrimeHour
from app.services.event_log import EventLogReader
from app.services.notify import Mailer, TextAttachment
from app.services.report import (
    DAILY_REPORT_SUBJECT,
    REPORT_ATTACHMENT_NAME,
    SHUTDOWN_REPORT_SUBJECT,
    render_date_report,
    render_stats_report,
)
from app.services.session_stats import compute_prime_hour

logger = logging.getLogger("kiosk.reports")


@dataclass
class SessionReport:
    stats: DailyStats
    prime: Optional[PrimeHour]
    text: str


class SessionReportService:
    """
    Report di sessione: statistiche del giorno locale -> testo -> email.
    Le letture dal log propagano gli errori del gateway.
    """

    def __init__(self, reader: EventLogReader, mailer: Mailer):
        self.reader = reader
        self.mailer = mailer

    async def build_today(self, now: Optional[datetime] = None) -> SessionReport:
        local = local_now(now)
        stats = await self.reader.stats_for_local_day(local)
        prime = compute_prime_hour(stats.events)
        text = render_stats_report(format_long_spanish_date(local), stats, prime)
        return SessionReport(stats=stats, prime=prime, text=text)

    async def send_daily(self, now: Optional[datetime] = None) -> str:
        """
        Invio del report giornaliero.
        Ritorna "sent", "skipped_mail_disabled" o "skipped_no_events".
        """
        if not self.mailer.can_send:
            logger.info("mail non configurata, report giornaliero saltato")
            return "skipped_mail_disabled"

        report = await self.build_today(now)
        if report.stats.total_events == 0:
            logger.info("nessuna attività oggi, report giornaliero saltato")
            return "skipped_no_events"

        await run_in_threadpool(
            self.mailer.send,
            DAILY_REPORT_SUBJECT,
            report.text,
            [TextAttachment(REPORT_ATTACHMENT_NAME, report.text)],
        )
        logger.info("report giornaliero inviato (%d eventi)", report.stats.total_events)
        return "sent"

    async def send_shutdown(self, report: SessionReport) -> bool:
        """Report di chiusura: un errore SMTP viene loggato, non blocca lo spegnimento."""
        if not self.mailer.can_send:
            logger.info("mail non configurata, report di chiusura saltato")
            return False
        try:
            return await run_in_threadpool(
                self.mailer.send,
                SHUTDOWN_REPORT_SUBJECT,
                report.text,
                [TextAttachment(REPORT_ATTACHMENT_NAME, report.text)],
            )
        except Exception:
            logger.exception("invio report di chiusura fallito")
            return False

    async def build_for_date(self, day: date) -> str:
        """Report compatto per una data locale (anche a zero eventi)."""
        stats = await self.reader.stats_for_date(day)
        return render_date_report(day, stats)

    async def send_date_report(self, day: date, text: str) -> bool:
        if not self.mailer.can_send:
            return False
        return await run_in_threadpool(
            self.mailer.send,
            f"Selfie App Report – {day.isoformat()}",
            text,
            [TextAttachment(f"report_{day.isoformat()}.txt", text)],
        )

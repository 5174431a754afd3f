# app/services/event_log.py
from __future__ import annotations

import logging
import re
from datetime import date, datetime, time
from typing import List, Optional

from app.core.clock import (
    LOCAL_TZ,
    day_window_utc,
    format_short,
    local_now,
    parse_utc_timestamp,
    to_iso_utc,
    to_local,
    utcnow,
)
from app.core.utils import newsletter_flag, split_location
from app.schemas.event_log import (
    LOG_HEADERS_V2,
    ActivityFeedItem,
    DailyStats,
    EventLogRow,
    EventType,
    PhotoInfoMatch,
)
from app.services.session_stats import compute_daily_stats, hourly_counts, parse_log_rows
from app.services.sheets import SheetsGateway

logger = logging.getLogger("kiosk.event_log")

LOG_RANGE = "A:J"
LOG_HEADER_RANGE = "A1:J1"
LOG_DATA_RANGE = "A2:J"

# "IP 172.225.248.16 San Juan, Puerto Rico" -> "San Juan, Puerto Rico"
_SESSION_LOCATION_RE = re.compile(r"^IP\s+[\d.]+\s+(.+)$")


# -------------------------------------------------------------
#  Scrittura (append-only, best-effort)
# -------------------------------------------------------------
class EventLogWriter:
    def __init__(self, sheets: SheetsGateway, sheet_id: Optional[str]):
        self.sheets = sheets
        self.sheet_id = sheet_id

    def build_row(
        self,
        event_type: str,
        *,
        email: str = "",
        session_id: str = "",
        country: Optional[str] = None,
        region: Optional[str] = None,
        last_name: str = "",
        newsletter=None,
        ticket: str = "",
        timestamp_utc: Optional[str] = None,
    ) -> Optional[EventLogRow]:
        """Riga pronta per l'append; None se il timestamp non è interpretabile."""
        if timestamp_utc:
            instant = parse_utc_timestamp(timestamp_utc)
            if instant is None:
                return None
            ts_utc = str(timestamp_utc)
        else:
            instant = utcnow()
            ts_utc = to_iso_utc(instant)

        country_value, region_value = split_location(country, region)
        return EventLogRow(
            timestamp_utc=ts_utc,
            timestamp_pr=format_short(to_local(instant)),
            event_type=event_type,
            email=email or "",
            session_id=session_id or "",
            country=country_value,
            region=region_value,
            last_name=last_name or "",
            newsletter=newsletter_flag(newsletter),
            ticket=ticket or "",
        )

    async def log_event(self, event_type: str, **fields) -> bool:
        """
        Aggiunge una riga al log. Ritorna False (no-op con warning) se il log
        non è configurato o il timestamp è invalido; gli errori del gateway
        propagano al chiamante.
        """
        if not self.sheet_id:
            logger.warning("SESSION_SHEET_ID mancante: evento '%s' non registrato", event_type)
            return False

        row = self.build_row(event_type, **fields)
        if row is None:
            logger.warning("timestamp non valido per evento '%s': %r", event_type, fields.get("timestamp_utc"))
            return False

        await self.sheets.append_row(self.sheet_id, LOG_RANGE, row.to_cells())
        return True


async def log_event_safely(writer: EventLogWriter, event_type: str, **fields) -> None:
    """Wrapper per BackgroundTasks: la telemetria non deve mai rompere la richiesta."""
    try:
        await writer.log_event(event_type, **fields)
    except Exception:
        logger.exception("scrittura log evento '%s' fallita", event_type)


# -------------------------------------------------------------
#  Lettura / aggregazioni
# -------------------------------------------------------------
def _feed_time(row: EventLogRow) -> str:
    if row.timestamp_pr:
        parts = row.timestamp_pr.split(" ")
        if len(parts) >= 2:
            return parts[1][:5]
        return row.timestamp_pr
    if row.timestamp_utc:
        instant = parse_utc_timestamp(row.timestamp_utc)
        if instant is None:
            return row.timestamp_utc
        return to_local(instant).strftime("%H:%M")
    return "--:--"


def _feed_text(row: EventLogRow) -> str:
    if row.event_type == EventType.visit.value:
        location = row.country
        if not location and row.session_id:
            m = _SESSION_LOCATION_RE.match(row.session_id)
            if m:
                location = m.group(1).strip()
        return f"New visit from {location.upper()}" if location else "New visit"
    if row.event_type == EventType.form.value:
        if row.newsletter == "Y":
            return "User submitted a form & subscribed to newsletter"
        return "User submitted a form"
    if row.event_type == EventType.upload.value:
        return "User uploaded a photo"
    return row.event_type or "Activity"


def to_feed_item(row: EventLogRow) -> ActivityFeedItem:
    return ActivityFeedItem(time=_feed_time(row), text=_feed_text(row))


class EventLogReader:
    def __init__(self, sheets: SheetsGateway, sheet_id: Optional[str]):
        self.sheets = sheets
        self.sheet_id = sheet_id

    @property
    def configured(self) -> bool:
        return bool(self.sheet_id)

    async def read_rows(self) -> List[EventLogRow]:
        if not self.sheet_id:
            logger.warning("SESSION_SHEET_ID mancante: log eventi non leggibile")
            return []
        raw = await self.sheets.get_all_rows(self.sheet_id, LOG_RANGE)
        return parse_log_rows(raw)

    async def stats_for_local_day(self, local: datetime) -> DailyStats:
        rows = await self.read_rows()
        start_utc, end_utc = day_window_utc(local)
        return compute_daily_stats(rows, start_utc, end_utc)

    async def today_stats(self, now: Optional[datetime] = None) -> DailyStats:
        return await self.stats_for_local_day(local_now(now))

    async def stats_for_date(self, day: date) -> DailyStats:
        return await self.stats_for_local_day(datetime.combine(day, time(12, 0), tzinfo=LOCAL_TZ))

    async def recent_events(self, limit: int = 12) -> List[ActivityFeedItem]:
        """Ultimi `limit` eventi, dal più recente."""
        rows = await self.read_rows()
        if limit <= 0:
            return []
        return [to_feed_item(r) for r in reversed(rows[-limit:])]

    async def activity_counts(self, now: Optional[datetime] = None) -> List[int]:
        stats = await self.today_stats(now)
        return hourly_counts(stats.events)

    async def find_photo_info(self, ticket_label: str) -> Optional[PhotoInfoMatch]:
        """
        Trova l'upload con quel ticket e il form della stessa sessione più
        vicino nel tempo (prima o dopo). Serve un'email sul form.
        """
        rows = await self.read_rows()
        upload = next(
            (r for r in rows if r.event_type == EventType.upload.value and r.ticket == ticket_label),
            None,
        )
        if upload is None or not upload.session_id:
            return None

        upload_time = parse_utc_timestamp(upload.timestamp_utc)
        candidates = [
            r for r in rows
            if r.event_type == EventType.form.value and r.session_id == upload.session_id and r.email
        ]
        if not candidates:
            return None

        def distance(r: EventLogRow) -> float:
            ts = parse_utc_timestamp(r.timestamp_utc)
            if ts is None or upload_time is None:
                return float("inf")
            return abs((ts - upload_time).total_seconds())

        best = min(candidates, key=distance)
        return PhotoInfoMatch(
            email=best.email,
            country=best.country,
            region=best.region,
            last_name=best.last_name,
            newsletter=best.newsletter == "Y",
            session_id=upload.session_id,
            timestamp=best.timestamp_utc,
        )

    async def reset_logs(self) -> bool:
        """Riscrive l'intestazione v2 e svuota i dati. False se non configurato."""
        if not self.sheet_id:
            logger.warning("SESSION_SHEET_ID mancante: reset log non eseguito")
            return False
        await self.sheets.update_range(self.sheet_id, LOG_HEADER_RANGE, [list(LOG_HEADERS_V2)])
        await self.sheets.clear_range(self.sheet_id, LOG_DATA_RANGE)
        logger.info("log eventi azzerato")
        return True

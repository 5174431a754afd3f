# app/services/session_stats.py
"""
Aggregazioni sul log eventi: conteggi del giorno locale, fascia oraria di
punta, opt-in newsletter deduplicati. Funzioni pure sulle righe già lette.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from app.core.clock import parse_utc_timestamp, to_local
from app.schemas.event_log import DailyStats, EventLogRow, EventType, PrimeHour, detect_schema


def parse_log_rows(raw_rows: Sequence[Sequence[object]]) -> List[EventLogRow]:
    """
    Salta l'intestazione (riga 0) e converte le righe per posizione.
    Se l'intestazione identifica uno schema lo applica a tutte le righe,
    altrimenti la versione è decisa riga per riga.
    Un foglio senza intestazione (prima cella = timestamp valido) è letto
    per intero.
    """
    if not raw_rows:
        return []
    first = [str(c) for c in raw_rows[0]]
    schema = detect_schema(first)
    has_header = schema is not None or not (first and parse_utc_timestamp(first[0]))
    rows: List[EventLogRow] = []
    for raw in raw_rows[1:] if has_header else raw_rows:
        if not raw:
            continue
        rows.append(EventLogRow.from_cells(raw, schema=schema))
    return rows


def compute_daily_stats(
    rows: Iterable[EventLogRow],
    start_utc: datetime,
    end_utc: datetime,
) -> DailyStats:
    """
    Conteggi per tipo degli eventi con timestamp_utc in [start_utc, end_utc].
    Le righe con timestamp non interpretabile o fuori finestra sono scartate.
    Le email newsletter sono deduplicate così come scritte (case-sensitive).
    """
    stats = DailyStats()
    seen_emails: Dict[str, None] = {}

    for row in rows:
        if not row.timestamp_utc or not row.event_type:
            continue
        ts = parse_utc_timestamp(row.timestamp_utc)
        if ts is None or ts < start_utc or ts > end_utc:
            continue

        if row.event_type == EventType.visit.value:
            stats.visits += 1
        elif row.event_type == EventType.form.value:
            stats.forms += 1
        elif row.event_type == EventType.upload.value:
            stats.uploads += 1

        stats.events.append(ts)

        email = row.email.strip()
        if row.newsletter == "Y" and email:
            seen_emails.setdefault(email, None)

    stats.newsletter_emails = list(seen_emails)
    return stats


def hourly_counts(events: Iterable[datetime]) -> List[int]:
    """24 bucket per ora locale (0-23)."""
    counts = [0] * 24
    for ts in events:
        counts[to_local(ts).hour] += 1
    return counts


def compute_prime_hour(events: Iterable[datetime]) -> Optional[PrimeHour]:
    """
    Ora locale con più eventi. Vince il conteggio strettamente maggiore;
    a parità resta l'ora vista per prima nell'ordine degli eventi.
    None se non ci sono eventi.
    """
    bucket: Dict[int, int] = {}
    for ts in events:
        hour = to_local(ts).hour
        bucket[hour] = bucket.get(hour, 0) + 1

    best_hour: Optional[int] = None
    best_count = 0
    for hour, count in bucket.items():
        if count > best_count:
            best_hour, best_count = hour, count

    if best_hour is None:
        return None
    return PrimeHour(hour=best_hour, count=best_count)

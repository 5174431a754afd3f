# app/core/clock.py
"""
Orologio locale del chiosco.

Ora civile locale a offset FISSO UTC-4, senza ora legale: è una
semplificazione voluta, non un fuso IANA. Tutte le funzioni sono pure;
l'unico effetto collaterale è la lettura dell'ora di sistema quando
l'istante non viene passato.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

LOCAL_UTC_OFFSET = timedelta(hours=-4)
LOCAL_TZ = timezone(LOCAL_UTC_OFFSET, name="PR")

# Indicizzati dalla domenica (0) al sabato (6)
SPANISH_WEEKDAYS = (
    "Domingo", "Lunes", "Martes", "Miércoles",
    "Jueves", "Viernes", "Sábado",
)
SPANISH_MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


def utcnow() -> datetime:
    """Ora UTC corrente con tzinfo."""
    return datetime.now(timezone.utc)


def to_local(utc_instant: datetime) -> datetime:
    """Converte un istante (naive = UTC) nell'ora locale a offset fisso."""
    if utc_instant.tzinfo is None:
        utc_instant = utc_instant.replace(tzinfo=timezone.utc)
    return utc_instant.astimezone(LOCAL_TZ)


def local_now(now: Optional[datetime] = None) -> datetime:
    return to_local(now or utcnow())


def format_short(local: datetime) -> str:
    """Formato della colonna timestamp_pr: "DD/MM/YYYY HH:MM:SS"."""
    return local.strftime("%d/%m/%Y %H:%M:%S")


def format_long_spanish_date(local: datetime) -> str:
    """Es. "Miércoles 3 de diciembre de 2025"."""
    weekday = SPANISH_WEEKDAYS[local.isoweekday() % 7]
    month = SPANISH_MONTHS[local.month - 1]
    return f"{weekday} {local.day} de {month} de {local.year}"


def format_hour_range(hour: int) -> str:
    """Fascia oraria per i report: "HH:00–HH:59"."""
    return f"{hour:02d}:00–{hour:02d}:59"


def day_window_utc(local: datetime) -> Tuple[datetime, datetime]:
    """
    Finestra [00:00:00.000, 23:59:59.999] del giorno locale di `local`,
    espressa in UTC (cioè spostata di +4h).
    """
    if local.tzinfo is None:
        local = local.replace(tzinfo=LOCAL_TZ)
    else:
        local = local.astimezone(LOCAL_TZ)
    start_local = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end_local = local.replace(hour=23, minute=59, second=59, microsecond=999000)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def parse_utc_timestamp(value: object) -> Optional[datetime]:
    """
    Parsing tollerante di un istante ISO-8601 (es. "2025-12-03T02:05:31.000Z").
    Ritorna None se il valore non è interpretabile; i valori senza offset
    sono considerati UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso_utc(instant: datetime) -> str:
    """Serializza come "YYYY-MM-DDTHH:MM:SS.mmmZ" (millisecondi, suffisso Z)."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    instant = instant.astimezone(timezone.utc)
    return instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z"

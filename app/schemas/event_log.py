# app/schemas/event_log.py
from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from app.core.utils import newsletter_flag


class EventType(str, Enum):
    visit = "visit"
    form = "form"
    upload = "upload"


# -------------------------------------------------------------
#  Layout colonne del log (schema versionato)
# -------------------------------------------------------------
# v2 (corrente, range A:J)
LOG_HEADERS_V2 = (
    "timestamp_utc",
    "timestamp_pr",
    "event_type",
    "email",
    "session_id",
    "country",
    "region",
    "last_name",
    "newsletter",
    "ticket",
)
# v1 (legacy): i dettagli stanno in un blob JSON nella sesta colonna
LOG_HEADERS_V1 = (
    "timestamp_utc",
    "timestamp_pr",
    "event_type",
    "email",
    "session_id",
    "metadata",
)

LogSchemaVersion = Literal[1, 2]


def detect_schema(header: Sequence[str]) -> Optional[int]:
    """Riconosce la versione dalla riga di intestazione; None se non è un'intestazione nota."""
    cells = tuple(str(c).strip().lower() for c in header)
    if cells[:10] == LOG_HEADERS_V2:
        return 2
    if cells[:6] == LOG_HEADERS_V1:
        return 1
    return None


def _looks_like_metadata(cell: str) -> bool:
    return cell.lstrip().startswith("{")


class EventLogRow(BaseModel):
    """Riga immutabile del log eventi (append-only)."""

    timestamp_utc: str
    timestamp_pr: str = ""
    event_type: str
    email: str = ""
    session_id: str = ""
    country: str = ""
    region: str = ""
    last_name: str = ""
    newsletter: Literal["Y", "N", ""] = ""
    ticket: str = ""
    schema_version: LogSchemaVersion = 2

    model_config = {"frozen": True}

    def to_cells(self) -> List[str]:
        """Serializzazione nel layout corrente a 10 colonne."""
        return [
            self.timestamp_utc,
            self.timestamp_pr,
            self.event_type,
            self.email,
            self.session_id,
            self.country,
            self.region,
            self.last_name,
            self.newsletter,
            self.ticket,
        ]

    @classmethod
    def from_cells(cls, cells: Sequence[object], schema: Optional[int] = None) -> "EventLogRow":
        """
        Mappa una riga del foglio per posizione di colonna.
        La larghezza prevale sulla versione indicata dall'intestazione: oltre
        6 colonne, o con 6 colonne senza blob JSON in coda, la riga è v2.
        Altrimenti vale `schema`, o in sua assenza 6 colonne = v1 (le celle
        finali vuote sono già state rimosse dal foglio).
        """
        values = ["" if c is None else str(c) for c in cells]
        if len(values) > 6 or (len(values) == 6 and not _looks_like_metadata(values[5])):
            schema = 2
        elif schema is None:
            schema = 1 if len(values) == 6 else 2

        def at(i: int) -> str:
            return values[i] if i < len(values) else ""

        if schema == 1:
            meta = {}
            raw = at(5)
            if raw.strip():
                try:
                    parsed = json.loads(raw)
                    if isinstance(parsed, dict):
                        meta = parsed
                except ValueError:
                    meta = {}
            return cls(
                timestamp_utc=at(0),
                timestamp_pr=at(1),
                event_type=at(2),
                email=at(3),
                session_id=at(4),
                country=str(meta.get("country") or ""),
                region=str(meta.get("region") or ""),
                last_name=str(meta.get("lastName") or meta.get("last_name") or ""),
                newsletter=newsletter_flag(meta.get("newsletter")),
                ticket=str(meta.get("ticket") or ""),
                schema_version=1,
            )

        return cls(
            timestamp_utc=at(0),
            timestamp_pr=at(1),
            event_type=at(2),
            email=at(3),
            session_id=at(4),
            country=at(5),
            region=at(6),
            last_name=at(7),
            newsletter=at(8) if at(8) in ("Y", "N") else "",
            ticket=at(9),
            schema_version=2,
        )


# -------------------------------------------------------------
#  Statistiche derivate (mai persistite)
# -------------------------------------------------------------
class PrimeHour(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    count: int


class DailyStats(BaseModel):
    visits: int = 0
    forms: int = 0
    uploads: int = 0
    # timestamp UTC di tutti gli eventi nella finestra (per la fascia di punta)
    events: List[datetime] = Field(default_factory=list)
    newsletter_emails: List[str] = Field(default_factory=list)

    @property
    def total_events(self) -> int:
        return self.visits + self.forms + self.uploads


class ActivityFeedItem(BaseModel):
    time: str
    text: str


class PhotoInfoMatch(BaseModel):
    email: str
    country: str = ""
    region: str = ""
    last_name: str = ""
    newsletter: bool = False
    session_id: str
    timestamp: str
    confidence: str = "high"

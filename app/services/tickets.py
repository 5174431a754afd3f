# app/services/tickets.py
"""
Numerazione ticket delle foto.

Nessun contatore persistito: il prossimo numero è ricostruito a ogni upload
scansionando i nomi dei file nelle cartelle Pending e Approved, sia attivi
sia cestinati. Includere il cestino garantisce che un numero già emesso non
venga mai riassegnato.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from app.core.clock import local_now
from app.services.storage import ListingGateway, DEFAULT_PAGE_SIZE

# Nuovo formato: T001-DD-MM-YY-HH-MM-PR.jpeg
TICKET_NAME_RE = re.compile(r"^T(\d{3,})-")
# Formato legacy: 01_DD_MM_YY-HH_MM_SS.jpeg
LEGACY_NAME_RE = re.compile(r"^(\d{2,})_")


def parse_ticket_index(name: Optional[str]) -> int:
    """Numero ticket contenuto nel nome file, 0 se il nome non corrisponde."""
    if not name:
        return 0
    m = TICKET_NAME_RE.match(name) or LEGACY_NAME_RE.match(name)
    if not m:
        return 0
    try:
        return int(m.group(1))
    except ValueError:
        return 0


def extract_ticket_number(name: Optional[str]) -> Optional[int]:
    """Numero foto per la UI di revisione ("T015-..." -> 15), None se assente."""
    idx = parse_ticket_index(name)
    return idx or None


def max_ticket_index(names: Iterable[Optional[str]]) -> int:
    return max((parse_ticket_index(n) for n in names), default=0)


# ------------------------------------------------------------
# Formatter
# ------------------------------------------------------------
@dataclass(frozen=True)
class TicketName:
    number: int
    filename: str
    label: str
    display: str


def format_ticket_label(number: int) -> str:
    return f"T{number:03d}"


def format_ticket_display(number: int) -> str:
    return f"#{number:03d}"


def build_ticket_name(number: int, local_time: Optional[datetime] = None) -> TicketName:
    """
    (numero, ora locale) -> nome file ed etichette.
    I numeri oltre 999 non vengono troncati (T1000-...).
    """
    if int(number) < 1:
        raise ValueError(f"ticket number must be positive, got {number!r}")
    local_time = local_time or local_now()
    label = format_ticket_label(number)
    stamp = local_time.strftime("%d-%m-%y-%H-%M")
    return TicketName(
        number=number,
        filename=f"{label}-{stamp}-PR.jpeg",
        label=label,
        display=format_ticket_display(number),
    )


# ------------------------------------------------------------
# Allocatore
# ------------------------------------------------------------
class TicketAllocator:
    """
    Calcola il prossimo numero libero su 4 partizioni
    (pending/approved x attivi/cestinati), lette in parallelo.
    Gli errori di listing si propagano: nessun retry a questo livello.
    """

    def __init__(
        self,
        storage: ListingGateway,
        pending_folder_id: str,
        approved_folder_id: str,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.storage = storage
        self.pending_folder_id = pending_folder_id
        self.approved_folder_id = approved_folder_id
        self.page_size = page_size

    async def max_index_in_folder(self, folder_id: str, trashed: bool) -> int:
        max_index = 0
        page_token: Optional[str] = None
        while True:
            page = await self.storage.list_files(
                folder_id,
                trashed=trashed,
                page_token=page_token,
                page_size=self.page_size,
            )
            max_index = max(max_index, max_ticket_index(f.name for f in page.files))
            page_token = page.next_page_token
            if not page_token:
                return max_index

    async def max_index_including_trash(self, folder_id: str) -> int:
        active, trashed = await asyncio.gather(
            self.max_index_in_folder(folder_id, False),
            self.max_index_in_folder(folder_id, True),
        )
        return max(active, trashed)

    async def next_index(self) -> int:
        pending_max, approved_max = await asyncio.gather(
            self.max_index_including_trash(self.pending_folder_id),
            self.max_index_including_trash(self.approved_folder_id),
        )
        return max(pending_max, approved_max) + 1

# app/services/uploads.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.clock import local_now
from app.services.storage import ListingGateway
from app.services.tickets import TicketAllocator, build_ticket_name

logger = logging.getLogger("kiosk.uploads")


@dataclass(frozen=True)
class UploadResult:
    artifact_id: str
    filename: str
    ticket_number: int
    ticket_label: str
    ticket_display: str

    def to_response(self) -> dict:
        return {
            "ok": True,
            "message": "File uploaded successfully",
            "fileId": self.artifact_id,
            "ticketIndex": self.ticket_number,
            "ticketLabel": self.ticket_label,
            "ticketDisplay": self.ticket_display,
        }


class UploadOrchestrator:
    """
    Allocazione ticket -> nome file -> salvataggio in Pending.

    Nessun rollback: se il salvataggio fallisce non esiste alcun file con quel
    numero, quindi il numero torna libero alla prossima allocazione.

    Allocazione e salvataggio sono serializzati da un lock di processo; più
    istanze concorrenti possono ancora emettere lo stesso numero.
    """

    def __init__(self, storage: ListingGateway, allocator: TicketAllocator, pending_folder_id: str):
        self.storage = storage
        self.allocator = allocator
        self.pending_folder_id = pending_folder_id
        self._lock = asyncio.Lock()

    async def upload(self, content: bytes, content_type: Optional[str]) -> UploadResult:
        mime_type = (content_type or "image/jpeg").split(";")[0].strip() or "image/jpeg"
        async with self._lock:
            number = await self.allocator.next_index()
            # ora locale al momento del naming, non dell'allocazione
            name = build_ticket_name(number, local_now())
            stored = await self.storage.create(self.pending_folder_id, name.filename, mime_type, content)

        logger.info("upload stored: %s (%s, %d bytes)", name.filename, stored.id, len(content))
        return UploadResult(
            artifact_id=stored.id,
            filename=name.filename,
            ticket_number=number,
            ticket_label=name.label,
            ticket_display=name.display,
        )

# app/services/photos.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from app.services.storage import GatewayError, ListingGateway, RemoteFile, list_all_files

logger = logging.getLogger("kiosk.photos")

GALLERY_LIMITS = {"last10": 10, "last25": 25}


@dataclass
class ApprovedPage:
    files: List[RemoteFile]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


@dataclass
class ClearResult:
    trashed_count: int = 0
    errors: List[str] = field(default_factory=list)


class PhotoReviewService:
    """Moderazione foto: Pending -> Approved (approva) oppure cestino (rifiuta)."""

    def __init__(self, storage: ListingGateway, pending_folder_id: str, approved_folder_id: str):
        self.storage = storage
        self.pending_folder_id = pending_folder_id
        self.approved_folder_id = approved_folder_id

    async def next_pending(self) -> Optional[RemoteFile]:
        """La foto in attesa più vecchia."""
        page = await self.storage.list_files(self.pending_folder_id, trashed=False, page_size=1)
        return page.files[0] if page.files else None

    async def count_pending(self) -> int:
        files = await list_all_files(self.storage, self.pending_folder_id, trashed=False)
        return len(files)

    async def approve(self, file_id: str) -> None:
        await self.storage.move(file_id, self.pending_folder_id, self.approved_folder_id)
        logger.info("foto approvata: %s", file_id)

    async def reject(self, file_id: str) -> None:
        await self.storage.trash(file_id)
        logger.info("foto rifiutata: %s", file_id)

    async def delete_approved(self, file_id: str) -> None:
        await self.storage.trash(file_id)

    async def approved_page(self, page: int = 1, page_size: int = 24) -> ApprovedPage:
        """Approvate, dalla più recente; pagina >= 1, dimensione 1-100."""
        page = max(1, page)
        page_size = max(1, min(100, page_size))
        files = await list_all_files(self.storage, self.approved_folder_id, trashed=False, newest_first=True)
        start = (page - 1) * page_size
        return ApprovedPage(files=files[start:start + page_size], total=len(files), page=page, page_size=page_size)

    async def gallery(self, display_limit: str = "all") -> List[RemoteFile]:
        """Approvate in ordine di creazione; "last10"/"last25" tengono le più recenti."""
        files = await list_all_files(self.storage, self.approved_folder_id, trashed=False)
        keep = GALLERY_LIMITS.get(display_limit)
        return files[-keep:] if keep else files

    async def clear_folders(self) -> ClearResult:
        """
        Cestina tutto ciò che è attivo in Pending e Approved.
        Gli errori per cartella o per file sono raccolti, non propagati.
        """
        result = ClearResult()
        files: List[RemoteFile] = []
        for label, folder_id in (("pending", self.pending_folder_id), ("approved", self.approved_folder_id)):
            try:
                files.extend(await list_all_files(self.storage, folder_id, trashed=False))
            except GatewayError:
                logger.exception("listing %s fallito durante la pulizia", label)
                result.errors.append(f"{label}_list_failed")

        for f in files:
            try:
                await self.storage.trash(f.id)
                result.trashed_count += 1
            except GatewayError:
                logger.exception("cestino fallito per %s", f.id)
                result.errors.append(f"trash_failed:{f.id}")
        return result

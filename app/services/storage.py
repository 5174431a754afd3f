# app/services/storage.py
"""
Remote Listing Gateway: cartelle logiche di blob con stato "cestinato".

Il core dipende solo dal protocollo `ListingGateway`; l'implementazione
concreta `SqlStorageGateway` persiste i file via SQLAlchemy.
"""
from __future__ import annotations

import threading
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Tuple, TypeVar

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from app.models.stored_file import StoredFile

DEFAULT_PAGE_SIZE = 100

T = TypeVar("T")


# ------------------------------------------------------------
# Errori gateway (fatali per l'operazione chiamante)
# ------------------------------------------------------------
class GatewayError(Exception):
    """Errore di un servizio esterno (storage o fogli)."""


class StorageNotFound(GatewayError):
    pass


# ------------------------------------------------------------
# Tipi
# ------------------------------------------------------------
@dataclass
class RemoteFile:
    id: str
    name: str
    parent_id: str
    mime_type: str
    created_time: datetime
    trashed: bool = False

    def to_public(self) -> dict:
        created = self.created_time
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return {"id": self.id, "name": self.name, "createdTime": created.isoformat()}


@dataclass
class FilePage:
    files: List[RemoteFile]
    next_page_token: Optional[str] = None


class ListingGateway(Protocol):
    async def list_files(
        self,
        parent_id: str,
        *,
        trashed: bool = False,
        page_token: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        newest_first: bool = False,
    ) -> FilePage: ...

    async def create(self, parent_id: str, name: str, mime_type: str, content: bytes) -> RemoteFile: ...

    async def move(self, file_id: str, from_parent: str, to_parent: str) -> None: ...

    async def trash(self, file_id: str) -> None: ...

    async def get(self, file_id: str) -> Tuple[bytes, str]: ...

    async def ping(self) -> None: ...


async def list_all_files(
    gateway: ListingGateway,
    parent_id: str,
    *,
    trashed: bool = False,
    newest_first: bool = False,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> List[RemoteFile]:
    """Segue il continuation token fino a esaurimento."""
    results: List[RemoteFile] = []
    page_token: Optional[str] = None
    while True:
        page = await gateway.list_files(
            parent_id,
            trashed=trashed,
            page_token=page_token,
            page_size=page_size,
            newest_first=newest_first,
        )
        results.extend(page.files)
        page_token = page.next_page_token
        if not page_token:
            return results


# ------------------------------------------------------------
# Implementazione SQLAlchemy
# ------------------------------------------------------------
_SQLITE_LOCKS: Dict[int, threading.Lock] = {}


def sqlite_guard(session_factory: sessionmaker) -> Optional[threading.Lock]:
    """SQLite condivide la connessione tra i thread: un lock per engine."""
    bind = session_factory.kw.get("bind")
    if bind is not None and bind.dialect.name == "sqlite":
        return _SQLITE_LOCKS.setdefault(id(bind), threading.Lock())
    return None


async def run_db(guard: Optional[threading.Lock], fn: Callable[..., T], *args, **kwargs) -> T:
    """Esegue l'accesso sincrono al DB nel threadpool, fuori dall'event loop."""
    def call() -> T:
        with guard or nullcontext():
            return fn(*args, **kwargs)

    return await run_in_threadpool(call)


def _to_remote(row: StoredFile) -> RemoteFile:
    return RemoteFile(
        id=row.id,
        name=row.name,
        parent_id=row.parent_id,
        mime_type=row.mime_type,
        created_time=row.created_at,
        trashed=bool(row.trashed),
    )


class SqlStorageGateway:
    """
    Gateway di storage su tabella `stored_files`.
    Il page token è l'offset (opaco per i chiamanti).
    Le sessioni SQLAlchemy sono sincrone e girano nel threadpool.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._guard = sqlite_guard(session_factory)

    async def list_files(
        self,
        parent_id: str,
        *,
        trashed: bool = False,
        page_token: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        newest_first: bool = False,
    ) -> FilePage:
        try:
            offset = int(page_token) if page_token else 0
        except ValueError:
            raise GatewayError(f"invalid page token: {page_token!r}")
        page_size = max(1, int(page_size))

        order = (
            (StoredFile.created_at.desc(), StoredFile.id.desc())
            if newest_first
            else (StoredFile.created_at.asc(), StoredFile.id.asc())
        )
        stmt = (
            select(StoredFile)
            .where(StoredFile.parent_id == parent_id)
            .where(StoredFile.trashed == bool(trashed))
            .order_by(*order)
            .offset(offset)
            # una riga in più per sapere se esiste la pagina successiva
            .limit(page_size + 1)
        )

        def fetch() -> List[RemoteFile]:
            try:
                with self._session_factory() as db:
                    return [_to_remote(r) for r in db.execute(stmt).scalars().all()]
            except SQLAlchemyError as e:
                raise GatewayError(f"list failed for {parent_id}: {e}") from e

        rows = await run_db(self._guard, fetch)
        next_token = str(offset + page_size) if len(rows) > page_size else None
        return FilePage(files=rows[:page_size], next_page_token=next_token)

    def _create(self, parent_id: str, name: str, mime_type: str, content: bytes) -> RemoteFile:
        try:
            with self._session_factory() as db:
                row = StoredFile(
                    name=name,
                    parent_id=parent_id,
                    mime_type=mime_type or "application/octet-stream",
                    content=bytes(content),
                    trashed=False,
                    created_at=datetime.now(timezone.utc),
                )
                db.add(row)
                db.commit()
                db.refresh(row)
                return _to_remote(row)
        except SQLAlchemyError as e:
            raise GatewayError(f"create failed for {name}: {e}") from e

    async def create(self, parent_id: str, name: str, mime_type: str, content: bytes) -> RemoteFile:
        return await run_db(self._guard, self._create, parent_id, name, mime_type, content)

    def _move(self, file_id: str, from_parent: str, to_parent: str) -> None:
        try:
            with self._session_factory() as db:
                row = db.get(StoredFile, file_id)
                if row is None or row.parent_id != from_parent:
                    raise StorageNotFound(f"file {file_id} not found in {from_parent}")
                row.parent_id = to_parent
                db.commit()
        except SQLAlchemyError as e:
            raise GatewayError(f"move failed for {file_id}: {e}") from e

    async def move(self, file_id: str, from_parent: str, to_parent: str) -> None:
        await run_db(self._guard, self._move, file_id, from_parent, to_parent)

    def _trash(self, file_id: str) -> None:
        try:
            with self._session_factory() as db:
                row = db.get(StoredFile, file_id)
                if row is None:
                    raise StorageNotFound(f"file {file_id} not found")
                row.trashed = True
                db.commit()
        except SQLAlchemyError as e:
            raise GatewayError(f"trash failed for {file_id}: {e}") from e

    async def trash(self, file_id: str) -> None:
        await run_db(self._guard, self._trash, file_id)

    def _get(self, file_id: str) -> Tuple[bytes, str]:
        try:
            with self._session_factory() as db:
                row = db.get(StoredFile, file_id)
                if row is None:
                    raise StorageNotFound(f"file {file_id} not found")
                return bytes(row.content), row.mime_type
        except SQLAlchemyError as e:
            raise GatewayError(f"get failed for {file_id}: {e}") from e

    async def get(self, file_id: str) -> Tuple[bytes, str]:
        return await run_db(self._guard, self._get, file_id)

    def _ping(self) -> None:
        try:
            with self._session_factory() as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise GatewayError(f"storage unreachable: {e}") from e

    async def ping(self) -> None:
        await run_db(self._guard, self._ping)

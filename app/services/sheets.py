# app/services/sheets.py
"""
Remote Spreadsheet Gateway: append/lettura/aggiornamento/pulizia di range A1.

Semantica dei valori come nei fogli di calcolo:
- le celle vuote finali di una riga vengono rimosse;
- le righe vuote in mezzo ai dati tornano come lista vuota;
- le righe vuote finali vengono omesse.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.models.sheet_row import SheetRow
from app.services.storage import GatewayError, run_db, sqlite_guard

_RANGE_RE = re.compile(
    r"^(?:(?P<tab>'[^']+'|[^!]+)!)?"
    r"(?P<c1>[A-Za-z]+)(?P<r1>\d+)?"
    r"(?::(?P<c2>[A-Za-z]+)(?P<r2>\d+)?)?$"
)


class SheetsGateway(Protocol):
    async def append_row(self, sheet_id: str, range_: str, row: Sequence[object]) -> None: ...

    async def get_all_rows(self, sheet_id: str, range_: str) -> List[List[str]]: ...

    async def update_range(self, sheet_id: str, range_: str, rows: Sequence[Sequence[object]]) -> None: ...

    async def clear_range(self, sheet_id: str, range_: str) -> None: ...

    async def ping(self) -> None: ...


# ------------------------------------------------------------
# Parsing range A1
# ------------------------------------------------------------
def column_index(letters: str) -> int:
    """"A" -> 0, "J" -> 9, "AA" -> 26."""
    idx = 0
    for ch in letters.upper():
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


@dataclass(frozen=True)
class A1Range:
    tab: str
    col_start: int
    col_end: int
    row_start: int = 1
    row_end: Optional[int] = None

    @property
    def width(self) -> int:
        return self.col_end - self.col_start + 1


def parse_a1_range(range_: str) -> A1Range:
    m = _RANGE_RE.match((range_ or "").strip())
    if not m:
        raise GatewayError(f"invalid range: {range_!r}")
    tab = (m.group("tab") or "").strip().strip("'")
    c1 = column_index(m.group("c1"))
    c2 = column_index(m.group("c2")) if m.group("c2") else c1
    r1 = int(m.group("r1")) if m.group("r1") else 1
    if m.group("c2"):
        r2 = int(m.group("r2")) if m.group("r2") else None
    else:
        r2 = r1 if m.group("r1") else None
    return A1Range(tab=tab, col_start=min(c1, c2), col_end=max(c1, c2), row_start=r1, row_end=r2)


def _cell(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _rstrip_cells(cells: List[str]) -> List[str]:
    out = list(cells)
    while out and out[-1] == "":
        out.pop()
    return out


def _write_cells(existing: Sequence[str], col_start: int, values: Sequence[object]) -> List[str]:
    cells = list(existing or [])
    needed = col_start + len(values)
    if len(cells) < needed:
        cells.extend([""] * (needed - len(cells)))
    for offset, v in enumerate(values):
        cells[col_start + offset] = _cell(v)
    return _rstrip_cells(cells)


# ------------------------------------------------------------
# Implementazione SQLAlchemy
# ------------------------------------------------------------
class SqlSheetsGateway:
    """Fogli su tabella `sheet_rows`; le sessioni girano nel threadpool."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._guard = sqlite_guard(session_factory)

    def _rows(self, db: Session, sheet_id: str, rng: A1Range) -> Dict[int, SheetRow]:
        stmt = (
            select(SheetRow)
            .where(SheetRow.sheet_id == sheet_id)
            .where(SheetRow.tab == rng.tab)
            .where(SheetRow.row_number >= rng.row_start)
        )
        if rng.row_end is not None:
            stmt = stmt.where(SheetRow.row_number <= rng.row_end)
        return {r.row_number: r for r in db.execute(stmt).scalars().all()}

    def _append_row(self, sheet_id: str, range_: str, rng: A1Range, row: Sequence[object]) -> None:
        try:
            with self._session_factory() as db:
                last = db.execute(
                    select(func.max(SheetRow.row_number))
                    .where(SheetRow.sheet_id == sheet_id)
                    .where(SheetRow.tab == rng.tab)
                ).scalar()
                next_row = max(int(last or 0) + 1, rng.row_start)
                db.add(
                    SheetRow(
                        sheet_id=sheet_id,
                        tab=rng.tab,
                        row_number=next_row,
                        values=_write_cells([], rng.col_start, list(row)),
                    )
                )
                db.commit()
        except SQLAlchemyError as e:
            raise GatewayError(f"append failed on {sheet_id}!{range_}: {e}") from e

    async def append_row(self, sheet_id: str, range_: str, row: Sequence[object]) -> None:
        rng = parse_a1_range(range_)
        await run_db(self._guard, self._append_row, sheet_id, range_, rng, row)

    def _read_rows(self, sheet_id: str, range_: str, rng: A1Range) -> Dict[int, List[str]]:
        try:
            with self._session_factory() as db:
                return {n: list(r.values or []) for n, r in self._rows(db, sheet_id, rng).items()}
        except SQLAlchemyError as e:
            raise GatewayError(f"read failed on {sheet_id}!{range_}: {e}") from e

    async def get_all_rows(self, sheet_id: str, range_: str) -> List[List[str]]:
        rng = parse_a1_range(range_)
        by_number = await run_db(self._guard, self._read_rows, sheet_id, range_, rng)

        out: List[List[str]] = []
        last_non_empty = -1
        if by_number:
            for number in range(rng.row_start, max(by_number) + 1):
                cells = by_number.get(number, [])
                sliced = _rstrip_cells(cells[rng.col_start:rng.col_end + 1])
                out.append(sliced)
                if sliced:
                    last_non_empty = len(out) - 1
        return out[:last_non_empty + 1]

    def _update_range(self, sheet_id: str, range_: str, rng: A1Range, rows: Sequence[Sequence[object]]) -> None:
        try:
            with self._session_factory() as db:
                existing = self._rows(db, sheet_id, A1Range(rng.tab, rng.col_start, rng.col_end, rng.row_start, None))
                for offset, values in enumerate(rows):
                    number = rng.row_start + offset
                    values = list(values)[: rng.width]
                    stored = existing.get(number)
                    if stored is None:
                        db.add(
                            SheetRow(
                                sheet_id=sheet_id,
                                tab=rng.tab,
                                row_number=number,
                                values=_write_cells([], rng.col_start, values),
                            )
                        )
                    else:
                        # riassegnazione (non mutazione in place) per il change tracking JSON
                        stored.values = _write_cells(stored.values, rng.col_start, values)
                db.commit()
        except SQLAlchemyError as e:
            raise GatewayError(f"update failed on {sheet_id}!{range_}: {e}") from e

    async def update_range(self, sheet_id: str, range_: str, rows: Sequence[Sequence[object]]) -> None:
        rng = parse_a1_range(range_)
        await run_db(self._guard, self._update_range, sheet_id, range_, rng, rows)

    def _clear_range(self, sheet_id: str, range_: str, rng: A1Range) -> None:
        try:
            with self._session_factory() as db:
                for stored in self._rows(db, sheet_id, rng).values():
                    cleared = _write_cells(stored.values, rng.col_start, [""] * rng.width)
                    if cleared:
                        stored.values = cleared
                    else:
                        db.delete(stored)
                db.commit()
        except SQLAlchemyError as e:
            raise GatewayError(f"clear failed on {sheet_id}!{range_}: {e}") from e

    async def clear_range(self, sheet_id: str, range_: str) -> None:
        rng = parse_a1_range(range_)
        await run_db(self._guard, self._clear_range, sheet_id, range_, rng)

    def _ping(self) -> None:
        try:
            with self._session_factory() as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise GatewayError(f"sheets unreachable: {e}") from e

    async def ping(self) -> None:
        await run_db(self._guard, self._ping)

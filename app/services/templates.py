# app/services/templates.py
from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from pydantic import BaseModel

from app.core.clock import to_iso_utc, utcnow
from app.services.sheets import SheetsGateway

logger = logging.getLogger("kiosk.templates")

TEMPLATE_HEADERS = ["Name", "Template JSON", "Created", "Active"]


class DisplayTemplate(BaseModel):
    id: int  # numero di riga nel foglio (>= 2)
    name: str
    data: Any = None
    createdAt: str = ""
    isActive: bool = True


def _row_id(template_id) -> Optional[int]:
    try:
        row = int(template_id)
    except (TypeError, ValueError):
        return None
    return row if row >= 2 else None


class TemplateStore:
    """Template grafici salvati una riga per template (Name, JSON, Created, Active)."""

    def __init__(self, sheets: SheetsGateway, sheet_id: Optional[str], sheet_name: str = "Templates"):
        self.sheets = sheets
        self.sheet_id = sheet_id
        self.sheet_name = sheet_name

    def _range(self, suffix: str = "A:D") -> str:
        return f"{self.sheet_name}!{suffix}"

    async def ensure_header(self) -> bool:
        if not self.sheet_id:
            return False
        rows = await self.sheets.get_all_rows(self.sheet_id, self._range("A1:D1"))
        if not rows or not rows[0] or rows[0][0] != "Name":
            await self.sheets.update_range(self.sheet_id, self._range("A1:D1"), [TEMPLATE_HEADERS])
        return True

    async def list(self) -> List[DisplayTemplate]:
        if not self.sheet_id:
            logger.warning("TEMPLATES_SHEET_ID mancante: nessun template")
            return []
        rows = await self.sheets.get_all_rows(self.sheet_id, self._range())
        templates: List[DisplayTemplate] = []
        for offset, row in enumerate(rows[1:]):
            row_number = offset + 2
            name = row[0] if row else ""
            if not name:
                continue
            raw = row[1] if len(row) > 1 and row[1] else "{}"
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning("JSON template non valido alla riga %d", row_number)
                continue
            templates.append(
                DisplayTemplate(
                    id=row_number,
                    name=name,
                    data=data,
                    createdAt=row[2] if len(row) > 2 else "",
                    isActive=len(row) > 3 and row[3] == "true",
                )
            )
        return templates

    async def get(self, template_id) -> Optional[DisplayTemplate]:
        row = _row_id(template_id)
        if row is None:
            return None
        return next((t for t in await self.list() if t.id == row), None)

    async def create(self, name: str, data: Any, is_active: bool = True) -> Optional[DisplayTemplate]:
        if not await self.ensure_header():
            return None
        rows = await self.sheets.get_all_rows(self.sheet_id, self._range())
        next_row = len(rows) + 1
        created_at = to_iso_utc(utcnow())
        await self.sheets.update_range(
            self.sheet_id,
            self._range(f"A{next_row}:D{next_row}"),
            [[name, json.dumps(data, ensure_ascii=False), created_at, "true" if is_active else "false"]],
        )
        logger.info("template creato: %s (riga %d)", name, next_row)
        return DisplayTemplate(id=next_row, name=name, data=data, createdAt=created_at, isActive=is_active)

    async def update(self, template_id, name: str, data: Any, is_active: bool = True) -> bool:
        row = _row_id(template_id)
        if row is None or not self.sheet_id:
            return False
        existing = await self.get(row)
        created_at = existing.createdAt if existing else ""
        await self.sheets.update_range(
            self.sheet_id,
            self._range(f"A{row}:D{row}"),
            [[name, json.dumps(data, ensure_ascii=False), created_at, "true" if is_active else "false"]],
        )
        return True

    async def delete(self, template_id) -> bool:
        row = _row_id(template_id)
        if row is None or not self.sheet_id:
            return False
        await self.sheets.clear_range(self.sheet_id, self._range(f"A{row}:D{row}"))
        return True

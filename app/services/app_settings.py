# app/services/app_settings.py
"""
Impostazioni dell'app e stato on/off del chiosco.

Ordine di caricamento:
  1. default in memoria (AppSettings())
  2. overlay dal foglio impostazioni al primo accesso (una sola volta)
  3. scritture admin: merge + persistenza completa sul foglio

Ogni overlay incrementa `version`.
"""
from __future__ import annotations

import asyncio
import json
import logging
from copy import deepcopy
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.core.utils import (
    boolean_label,
    coerce_boolean,
    coerce_string,
    generate_server_session_id,
    parse_boolean_label,
    status_label,
)
from app.schemas.app_settings import AppSettings
from app.services.sheets import SheetsGateway
from app.services.storage import GatewayError

logger = logging.getLogger("kiosk.settings")

SERVER_STATUS_KEY = "Server Status"
SERVER_SESSION_KEY = "Server Session"
LEGACY_SETTINGS_KEY = "appSettings"
GALLERY_LIMITS = ("all", "last10", "last25")

# (chiave nel foglio, tipo, percorso nel dict impostazioni)
SETTINGS_FIELDS: Sequence[Tuple[str, str, Tuple[str, ...]]] = (
    ("Ticket Overlay Enabled", "boolean", ("ticketEnabled",)),
    ("Gallery Display Limit", "string", ("galleryDisplayLimit",)),
    ("Intro Title", "string", ("intro", "title")),
    ("Intro Subtitle", "string", ("intro", "subtitle")),
    ("Location Enabled", "boolean", ("form", "locationEnabled")),
    ("Last Name Enabled", "boolean", ("form", "lastName", "enabled")),
    ("Last Name Label", "string", ("form", "lastName", "label")),
    ("Last Name Placeholder", "string", ("form", "lastName", "placeholder")),
    ("Email Enabled", "boolean", ("form", "email", "enabled")),
    ("Email Label", "string", ("form", "email", "label")),
    ("Email Placeholder", "string", ("form", "email", "placeholder")),
    ("Email Opt-in Enabled", "boolean", ("form", "newsletter", "enabled")),
    ("Email Opt-in Label", "string", ("form", "newsletter", "label")),
    ("Email Opt-in Helper", "string", ("form", "newsletter", "helper")),
)


def _get_path(data: Dict[str, Any], path: Sequence[str]) -> Any:
    cursor: Any = data
    for key in path:
        if not isinstance(cursor, dict) or cursor.get(key) is None:
            return None
        cursor = cursor[key]
    return cursor


def _set_path(data: Dict[str, Any], path: Sequence[str], value: Any) -> None:
    cursor = data
    for key in path[:-1]:
        if not isinstance(cursor.get(key), dict):
            cursor[key] = {}
        cursor = cursor[key]
    cursor[path[-1]] = value


def merge_app_settings(current: AppSettings, patch: Optional[Dict[str, Any]]) -> AppSettings:
    """
    Applica una patch parziale. Booleani coerciti (altrimenti resta il valore
    precedente), stringhe ripulite, limite galleria sconosciuto -> "all".
    """
    nxt = deepcopy(current.model_dump())
    patch = patch or {}

    if "ticketEnabled" in patch:
        nxt["ticketEnabled"] = coerce_boolean(patch["ticketEnabled"], nxt["ticketEnabled"])

    if "galleryDisplayLimit" in patch:
        limit = str(patch["galleryDisplayLimit"] or "all").strip().lower()
        nxt["galleryDisplayLimit"] = limit if limit in GALLERY_LIMITS else "all"

    intro = patch.get("intro")
    if isinstance(intro, dict):
        nxt["intro"]["title"] = coerce_string(intro.get("title"), nxt["intro"]["title"])
        nxt["intro"]["subtitle"] = coerce_string(intro.get("subtitle"), nxt["intro"]["subtitle"])

    form = patch.get("form")
    if isinstance(form, dict):
        if "locationEnabled" in form:
            nxt["form"]["locationEnabled"] = coerce_boolean(
                form["locationEnabled"], nxt["form"]["locationEnabled"]
            )
        for section, text_keys in (
            ("lastName", ("label", "placeholder")),
            ("email", ("label", "placeholder")),
            ("newsletter", ("label", "helper")),
        ):
            sub = form.get(section)
            if not isinstance(sub, dict):
                continue
            target = nxt["form"][section]
            target["enabled"] = coerce_boolean(sub.get("enabled"), target["enabled"])
            for key in text_keys:
                target[key] = coerce_string(sub.get(key), target[key])

    return AppSettings.model_validate(nxt)


def settings_to_rows(settings: AppSettings, enabled: bool, session_id: Optional[str]) -> List[List[str]]:
    """Layout chiave/valore del foglio impostazioni (con intestazione)."""
    data = settings.model_dump()
    rows = [["key", "value"], [SERVER_STATUS_KEY, status_label(enabled)]]
    if session_id:
        rows.append([SERVER_SESSION_KEY, str(session_id)])
    for key, kind, path in SETTINGS_FIELDS:
        raw = _get_path(data, path)
        if kind == "boolean":
            rows.append([key, boolean_label(bool(raw))])
        else:
            rows.append([key, "" if raw is None else str(raw)])
    return rows


def rows_to_patch(
    rows: Sequence[Sequence[str]],
    current: AppSettings,
) -> Tuple[Dict[str, Any], Optional[bool], Optional[str]]:
    """
    Interpreta il foglio: (patch impostazioni, stato server, id sessione).
    Chiavi sconosciute ignorate; la riga legacy "appSettings" (JSON) è letta.
    """
    patch: Dict[str, Any] = {}
    server_status: Optional[bool] = None
    session_id: Optional[str] = None
    current_data = current.model_dump()

    for entry in rows:
        if not entry or not entry[0]:
            continue
        key = str(entry[0]).strip()
        value = entry[1] if len(entry) > 1 else None

        if key == LEGACY_SETTINGS_KEY and value:
            try:
                parsed = json.loads(value)
            except ValueError:
                logger.warning("riga legacy appSettings non interpretabile")
                parsed = None
            if isinstance(parsed, dict):
                patch.update(parsed)
                continue

        if key == SERVER_STATUS_KEY:
            server_status = parse_boolean_label(value, server_status)
            continue
        if key == SERVER_SESSION_KEY:
            if value is not None and str(value).strip():
                session_id = str(value).strip()
            continue

        field = next((f for f in SETTINGS_FIELDS if f[0] == key), None)
        if field is None:
            continue
        _, kind, path = field
        if kind == "boolean":
            fallback = bool(_get_path(current_data, path))
            _set_path(patch, path, parse_boolean_label(value, fallback))
        elif isinstance(value, str):
            _set_path(patch, path, value.strip())

    return patch, server_status, session_id


class AppSettingsStore:
    def __init__(self, sheets: SheetsGateway, sheet_id: Optional[str], sheet_name: str = "Settings"):
        self.sheets = sheets
        self.sheet_id = sheet_id
        self.sheet_name = sheet_name
        self.settings = AppSettings()
        self.enabled = True
        self.session_id: Optional[str] = None
        self.version = 0
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def sheet_range(self) -> str:
        return f"{self.sheet_name}!A:B"

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def hydrate(self) -> None:
        """Overlay dal foglio, una sola volta per processo. Errori di lettura: warning."""
        if self._loaded:
            return
        async with self._lock:
            if self._loaded:
                return
            if self.sheet_id:
                try:
                    rows = await self.sheets.get_all_rows(self.sheet_id, self.sheet_range)
                except GatewayError as e:
                    logger.warning("lettura impostazioni dal foglio fallita: %s", e)
                    rows = []
                if rows:
                    patch, status, session_id = rows_to_patch(rows, self.settings)
                    self.settings = merge_app_settings(self.settings, patch)
                    self.version += 1
                    if status is not None:
                        self.enabled = status
                    if session_id:
                        self.session_id = session_id
            if not self.session_id:
                self.session_id = generate_server_session_id()
            self._loaded = True

    async def persist(self) -> bool:
        """Riscrive l'intero foglio. False (con warning) se non configurato o in errore."""
        if not self.sheet_id:
            return False
        rows = settings_to_rows(self.settings, self.enabled, self.session_id)
        try:
            await self.sheets.update_range(self.sheet_id, f"{self.sheet_name}!A1:B{len(rows)}", rows)
        except GatewayError as e:
            logger.warning("persistenza impostazioni fallita: %s", e)
            return False
        return True

    async def update(self, patch: Optional[Dict[str, Any]]) -> bool:
        """Merge della patch admin + persistenza. Ritorna l'esito della scrittura."""
        await self.hydrate()
        self.settings = merge_app_settings(self.settings, patch)
        self.version += 1
        return await self.persist()

    async def set_enabled(self, enabled: bool) -> bool:
        """Riaccendere un'app spenta genera un nuovo id di sessione server."""
        await self.hydrate()
        if enabled and not self.enabled:
            self.session_id = generate_server_session_id()
        self.enabled = enabled
        return await self.persist()

    def public_view(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "enabled": self.enabled,
            "settings": self.settings.model_dump(),
            "sessionId": self.session_id,
        }

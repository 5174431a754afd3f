import json

import pytest

from app.schemas.app_settings import AppSettings
from app.services.app_settings import (
    AppSettingsStore,
    merge_app_settings,
    rows_to_patch,
    settings_to_rows,
)
from app.services.sheets import SqlSheetsGateway
from app.services.storage import GatewayError

SHEET = "app-settings"


# ---------------- merge ----------------

def test_merge_coerces_and_keeps_previous_on_garbage():
    base = AppSettings()
    merged = merge_app_settings(base, {
        "ticketEnabled": "false",
        "galleryDisplayLimit": "LAST25",
        "intro": {"title": "  Hola  "},
        "form": {
            "locationEnabled": "maybe",
            "email": {"enabled": "0", "label": " Email "},
            "newsletter": "not-a-dict",
        },
    })
    assert merged.ticketEnabled is False
    assert merged.galleryDisplayLimit == "last25"
    assert merged.intro.title == "Hola"
    assert merged.intro.subtitle == base.intro.subtitle
    assert merged.form.locationEnabled is True
    assert merged.form.email.enabled is False
    assert merged.form.email.label == "Email"
    assert merged.form.email.placeholder == base.form.email.placeholder
    assert merged.form.newsletter == base.form.newsletter


def test_merge_unknown_gallery_limit_falls_back_to_all():
    merged = merge_app_settings(AppSettings(galleryDisplayLimit="last10"), {"galleryDisplayLimit": "last99"})
    assert merged.galleryDisplayLimit == "all"


def test_merge_with_empty_patch_is_identity():
    base = AppSettings()
    assert merge_app_settings(base, None) == base
    assert merge_app_settings(base, {}) == base


# ---------------- layout foglio ----------------

def test_settings_rows_layout():
    rows = settings_to_rows(AppSettings(ticketEnabled=False), enabled=True, session_id="abc123")
    assert rows[0] == ["key", "value"]
    assert rows[1] == ["Server Status", "On"]
    assert rows[2] == ["Server Session", "abc123"]
    assert ["Ticket Overlay Enabled", "Disabled"] in rows
    assert ["Gallery Display Limit", "all"] in rows
    assert len(rows) == 3 + 14


def test_rows_to_patch_reads_back_written_rows():
    original = merge_app_settings(AppSettings(), {
        "ticketEnabled": False,
        "galleryDisplayLimit": "last10",
        "form": {"lastName": {"label": "Apellidos"}},
    })
    rows = settings_to_rows(original, enabled=False, session_id="s-1")
    patch, status, session_id = rows_to_patch(rows, AppSettings())

    assert status is False
    assert session_id == "s-1"
    assert merge_app_settings(AppSettings(), patch) == original


def test_rows_to_patch_legacy_json_and_unknown_keys():
    legacy = json.dumps({"ticketEnabled": False, "intro": {"title": "Legacy"}})
    rows = [["key", "value"], ["appSettings", legacy], ["Mystery", "x"], ["Server Status", "sideways"]]
    patch, status, session_id = rows_to_patch(rows, AppSettings())

    merged = merge_app_settings(AppSettings(), patch)
    assert merged.ticketEnabled is False
    assert merged.intro.title == "Legacy"
    assert status is None
    assert session_id is None


# ---------------- store ----------------

@pytest.mark.asyncio
async def test_hydrate_once_and_version_bump(sheets):
    rows = settings_to_rows(AppSettings(galleryDisplayLimit="last25"), enabled=False, session_id="persisted")
    await sheets.update_range(SHEET, f"Settings!A1:B{len(rows)}", rows)

    store = AppSettingsStore(sheets, SHEET)
    await store.hydrate()
    assert store.settings.galleryDisplayLimit == "last25"
    assert store.enabled is False
    assert store.session_id == "persisted"
    assert store.version == 1

    await sheets.update_range(SHEET, "Settings!A2:B2", [["Server Status", "On"]])
    await store.hydrate()
    assert store.enabled is False
    assert store.version == 1


@pytest.mark.asyncio
async def test_hydrate_empty_sheet_generates_session(sheets):
    store = AppSettingsStore(sheets, SHEET)
    await store.hydrate()
    assert store.version == 0
    assert store.enabled is True
    assert len(store.session_id) == 24


class _UnreadableSheets(SqlSheetsGateway):
    async def get_all_rows(self, sheet_id, range_):
        raise GatewayError("sheet down")


@pytest.mark.asyncio
async def test_hydrate_read_error_keeps_defaults(session_factory, caplog):
    store = AppSettingsStore(_UnreadableSheets(session_factory), SHEET)
    await store.hydrate()
    assert store.settings == AppSettings()
    assert store.loaded is True
    assert "lettura impostazioni" in caplog.text


@pytest.mark.asyncio
async def test_update_persists_whole_sheet(sheets):
    store = AppSettingsStore(sheets, SHEET)
    assert await store.update({"ticketEnabled": False}) is True

    fresh = AppSettingsStore(sheets, SHEET)
    await fresh.hydrate()
    assert fresh.settings.ticketEnabled is False
    assert fresh.session_id == store.session_id


@pytest.mark.asyncio
async def test_reenabling_rotates_session_id(sheets):
    store = AppSettingsStore(sheets, SHEET)
    await store.hydrate()
    first = store.session_id

    await store.set_enabled(True)
    assert store.session_id == first

    await store.set_enabled(False)
    assert store.session_id == first
    await store.set_enabled(True)
    assert store.session_id != first
    assert store.public_view()["enabled"] is True


@pytest.mark.asyncio
async def test_persist_without_sheet_is_false(sheets):
    store = AppSettingsStore(sheets, None)
    assert await store.update({"ticketEnabled": False}) is False
    assert store.settings.ticketEnabled is False

import json
import logging
from datetime import date

import pytest

from app.schemas.event_log import LOG_HEADERS_V1, LOG_HEADERS_V2, EventLogRow
from app.services.event_log import EventLogReader, EventLogWriter, log_event_safely
from app.services.sheets import SqlSheetsGateway
from app.services.storage import GatewayError

pytestmark = pytest.mark.asyncio

SHEET = "session-log"


async def _with_header(sheets, header=LOG_HEADERS_V2):
    await sheets.append_row(SHEET, "A:J", list(header))


# ---------------- writer ----------------

async def test_writes_one_ten_column_row(sheets):
    writer = EventLogWriter(sheets, SHEET)
    ok = await writer.log_event(
        "form",
        email="familia@example.com",
        session_id="IP 10.0.0.1",
        country="Mayagüez, Puerto Rico",
        last_name="Pérez",
        newsletter="sí",
        timestamp_utc="2025-12-03T02:05:31.000Z",
    )
    assert ok is True

    rows = await sheets.get_all_rows(SHEET, "A:J")
    assert rows == [[
        "2025-12-03T02:05:31.000Z",
        "02/12/2025 22:05:31",
        "form",
        "familia@example.com",
        "IP 10.0.0.1",
        "Puerto Rico",
        "Mayagüez",
        "Pérez",
        "Y",
    ]]


async def test_default_timestamp_is_now(sheets):
    writer = EventLogWriter(sheets, SHEET)
    await writer.log_event("visit", session_id="IP 1.2.3.4")
    row = EventLogRow.from_cells((await sheets.get_all_rows(SHEET, "A:J"))[0])
    assert row.timestamp_utc.endswith("Z")
    assert row.event_type == "visit"
    assert row.newsletter == ""


@pytest.mark.parametrize(
    "value,flag",
    [("true", "Y"), ("1", "Y"), ("Sí", "Y"), ("y", "Y"), ("no", "N"), ("0", "N"), ("maybe", ""), (" no ", ""), (None, "")],
)
async def test_newsletter_normalisation(sheets, value, flag):
    writer = EventLogWriter(sheets, SHEET)
    row = writer.build_row("form", newsletter=value, timestamp_utc="2025-12-03T12:00:00.000Z")
    assert row.newsletter == flag


async def test_invalid_timestamp_writes_nothing(sheets, caplog):
    writer = EventLogWriter(sheets, SHEET)
    with caplog.at_level(logging.WARNING, logger="kiosk.event_log"):
        ok = await writer.log_event("visit", timestamp_utc="not-a-date")
    assert ok is False
    assert await sheets.get_all_rows(SHEET, "A:J") == []
    assert "timestamp non valido" in caplog.text


async def test_missing_sheet_id_is_a_noop(sheets, caplog):
    writer = EventLogWriter(sheets, None)
    with caplog.at_level(logging.WARNING, logger="kiosk.event_log"):
        ok = await writer.log_event("visit")
    assert ok is False
    assert "SESSION_SHEET_ID" in caplog.text


class _BrokenSheets(SqlSheetsGateway):
    async def append_row(self, sheet_id, range_, row):
        raise GatewayError("sheet down")


async def test_gateway_error_propagates_but_safe_wrapper_swallows(session_factory):
    writer = EventLogWriter(_BrokenSheets(session_factory), SHEET)
    with pytest.raises(GatewayError):
        await writer.log_event("visit")
    await log_event_safely(writer, "visit")


# ---------------- reader ----------------

async def test_recent_events_feed_labels(sheets):
    await _with_header(sheets)
    writer = EventLogWriter(sheets, SHEET)
    await writer.log_event("visit", session_id="IP 172.225.248.16 San Juan, Puerto Rico",
                           timestamp_utc="2025-12-03T13:00:00.000Z")
    await writer.log_event("visit", country="Spain", timestamp_utc="2025-12-03T13:01:00.000Z")
    await writer.log_event("form", newsletter="y", email="a@b.c", timestamp_utc="2025-12-03T13:02:00.000Z")
    await writer.log_event("form", timestamp_utc="2025-12-03T13:03:00.000Z")
    await writer.log_event("upload", ticket="T001", timestamp_utc="2025-12-03T13:04:00.000Z")

    reader = EventLogReader(sheets, SHEET)
    feed = await reader.recent_events(limit=4)

    assert [(i.time, i.text) for i in feed] == [
        ("09:04", "User uploaded a photo"),
        ("09:03", "User submitted a form"),
        ("09:02", "User submitted a form & subscribed to newsletter"),
        ("09:01", "New visit from SPAIN"),
    ]
    everything = await reader.recent_events(limit=50)
    assert everything[-1].text == "New visit from SAN JUAN, PUERTO RICO"


async def test_v1_rows_are_understood(sheets):
    await _with_header(sheets, LOG_HEADERS_V1)
    meta = {"country": "Puerto Rico", "lastName": "Rivera", "newsletter": "true", "ticket": "T004"}
    await sheets.append_row(SHEET, "A:J", [
        "2025-12-03T13:00:00.000Z", "03/12/2025 09:00:00", "form", "r@example.com", "IP 1.1.1.1", json.dumps(meta),
    ])

    rows = await EventLogReader(sheets, SHEET).read_rows()
    assert len(rows) == 1
    row = rows[0]
    assert row.schema_version == 1
    assert (row.country, row.last_name, row.newsletter, row.ticket) == ("Puerto Rico", "Rivera", "Y", "T004")


async def test_ten_column_rows_under_a_v1_header(sheets):
    await _with_header(sheets, LOG_HEADERS_V1)
    writer = EventLogWriter(sheets, SHEET)
    await writer.log_event("form", email="fam@example.com", session_id="IP 2.2.2.2", country="Puerto Rico",
                           newsletter="si", timestamp_utc="2025-12-03T15:00:00.000Z")

    reader = EventLogReader(sheets, SHEET)
    [row] = await reader.read_rows()
    assert row.schema_version == 2
    assert (row.country, row.newsletter) == ("Puerto Rico", "Y")

    stats = await reader.stats_for_date(date(2025, 12, 3))
    assert stats.forms == 1
    assert stats.newsletter_emails == ["fam@example.com"]


async def test_find_photo_info_picks_closest_form_of_same_session(sheets):
    await _with_header(sheets)
    writer = EventLogWriter(sheets, SHEET)
    session = "IP 10.1.1.1 Mayagüez"
    await writer.log_event("form", email="early@example.com", session_id=session,
                           timestamp_utc="2025-12-03T12:00:00.000Z")
    await writer.log_event("form", email="other@example.com", session_id="IP 9.9.9.9",
                           timestamp_utc="2025-12-03T12:09:00.000Z")
    await writer.log_event("form", email="close@example.com", session_id=session, country="Puerto Rico",
                           last_name="Soto", newsletter="si", timestamp_utc="2025-12-03T12:08:00.000Z")
    await writer.log_event("upload", session_id=session, ticket="T007",
                           timestamp_utc="2025-12-03T12:10:00.000Z")

    reader = EventLogReader(sheets, SHEET)
    match = await reader.find_photo_info("T007")
    assert match is not None
    assert match.email == "close@example.com"
    assert match.country == "Puerto Rico"
    assert match.last_name == "Soto"
    assert match.newsletter is True
    assert match.session_id == session
    assert match.timestamp == "2025-12-03T12:08:00.000Z"

    assert await reader.find_photo_info("T999") is None


async def test_reset_logs_keeps_header(sheets):
    await _with_header(sheets)
    writer = EventLogWriter(sheets, SHEET)
    await writer.log_event("visit")
    await writer.log_event("upload", ticket="T001")

    reader = EventLogReader(sheets, SHEET)
    assert await reader.reset_logs() is True
    assert await sheets.get_all_rows(SHEET, "A:J") == [list(LOG_HEADERS_V2)]


async def test_reader_without_sheet_returns_empty(sheets):
    reader = EventLogReader(sheets, None)
    stats = await reader.today_stats()
    assert stats.total_events == 0
    assert await reader.recent_events() == []
    assert await reader.reset_logs() is False

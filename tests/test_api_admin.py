import pytest

from app.core.security import create_admin_token
from app.services.event_log import EventLogWriter
from app.services.report import DAILY_REPORT_SUBJECT, SHUTDOWN_REPORT_SUBJECT
from conftest import ADMIN_CODE, UNLOCK_KEY

pytestmark = pytest.mark.asyncio

JPEG = {"Content-Type": "image/jpeg"}


async def _login(c):
    r = await c.post("/admin/auth", json={"code": ADMIN_CODE})
    assert r.status_code == 200, r.text
    return {"X-Admin-Token": r.json()["token"]}


# ---------------- autenticazione ----------------

async def test_admin_routes_require_token(client):
    r = await client.get("/admin/next-photo")
    assert r.status_code == 401
    assert r.json()["detail"] == "unauthorized"


async def test_token_in_query_string(client):
    token = (await _login(client))["X-Admin-Token"]
    r = await client.get("/admin/app-status", params={"token": token})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "enabled": True}


async def test_token_bound_to_ip(client):
    token = create_admin_token("test-secret", "9.9.9.9")
    r = await client.get("/admin/app-status", headers={"X-Admin-Token": token})
    assert r.status_code == 401


async def test_missing_code(client):
    r = await client.post("/admin/auth", json={})
    assert r.status_code == 400
    assert r.json()["detail"] == "missing_code"


async def test_three_wrong_codes_block_the_ip(client):
    r = await client.post("/admin/auth", json={"code": "nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == {"error": "invalid_code", "remainingAttempts": 2}

    await client.post("/admin/auth", json={"code": "nope"})
    r = await client.post("/admin/auth", json={"code": "nope"})
    assert r.status_code == 403
    assert r.json()["detail"]["error"] == "blocked"
    assert r.json()["detail"]["blockedMinutes"] == 30

    # anche il codice giusto è rifiutato finché dura il blocco
    r = await client.post("/admin/auth", json={"code": ADMIN_CODE})
    assert r.status_code == 403

    r = await client.post("/admin/unblock", json={"ip": "127.0.0.1"}, headers={"X-Admin-Unlock-Key": "wrong"})
    assert r.status_code == 403
    r = await client.post("/admin/unblock", json={"ip": "127.0.0.1"}, headers={"X-Admin-Unlock-Key": UNLOCK_KEY})
    assert r.json()["ok"] is True

    r = await client.post("/admin/auth", json={"code": ADMIN_CODE})
    assert r.status_code == 200


# ---------------- moderazione foto ----------------

async def test_review_flow(client, admin_headers):
    first = (await client.post("/upload", content=b"one", headers=JPEG)).json()
    second = (await client.post("/upload", content=b"two", headers=JPEG)).json()

    r = await client.get("/admin/next-photo", headers=admin_headers)
    body = r.json()
    assert body["empty"] is False
    assert body["fileId"] == first["fileId"]
    assert body["photoNumber"] == 1
    assert body["pendingCount"] == 2

    r = await client.get(f"/admin/photo/{first['fileId']}", headers=admin_headers)
    assert r.content == b"one"
    r = await client.get(f"/admin/photo/{first['fileId']}/thumbnail", headers=admin_headers)
    assert r.status_code == 200

    assert (await client.post("/admin/approve", json={"fileId": first["fileId"]}, headers=admin_headers)).json() == {"ok": True}
    assert (await client.post("/admin/reject", json={"fileId": second["fileId"]}, headers=admin_headers)).json() == {"ok": True}

    r = await client.get("/admin/next-photo", headers=admin_headers)
    assert r.json() == {"empty": True, "pendingCount": 0}

    r = await client.get("/admin/approved-list", headers=admin_headers)
    listing = r.json()
    assert listing["total"] == 1
    assert listing["files"][0]["id"] == first["fileId"]

    r = await client.get("/gallery/approved")
    assert [f["id"] for f in r.json()["files"]] == [first["fileId"]]

    r = await client.post("/admin/delete-approved", json={"fileId": first["fileId"]}, headers=admin_headers)
    assert r.json() == {"ok": True}
    r = await client.get("/admin/approved-list", headers=admin_headers)
    assert r.json()["total"] == 0

    # il numero dei file cestinati non viene riusato
    third = (await client.post("/upload", content=b"three", headers=JPEG)).json()
    assert third["ticketLabel"] == "T003"


async def test_review_errors(client, admin_headers):
    r = await client.post("/admin/approve", json={}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "missing_fileId"

    r = await client.get("/admin/photo/unknown", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["detail"] == "photo_not_found"


async def test_approved_list_pagination(client, storage, admin_headers):
    for n in range(5):
        await storage.create("approved", f"T{n + 1:03d}-01-12-25-10-00-PR.jpeg", "image/jpeg", b"x")

    r = await client.get("/admin/approved-list", params={"page": 2, "pageSize": 2}, headers=admin_headers)
    body = r.json()
    assert (body["total"], body["page"], body["pageSize"], body["totalPages"]) == (5, 2, 2, 3)
    assert len(body["files"]) == 2

    r = await client.get("/admin/approved-list", params={"pageSize": 500}, headers=admin_headers)
    assert r.json()["pageSize"] == 100


async def test_clear_drive(client, storage, admin_headers):
    await storage.create("pending", "T001-01-12-25-10-00-PR.jpeg", "image/jpeg", b"x")
    await storage.create("approved", "T002-01-12-25-10-00-PR.jpeg", "image/jpeg", b"x")

    r = await client.post("/admin/clear-drive", headers=admin_headers)
    assert r.json() == {"ok": True, "trashedCount": 2, "errors": []}


async def test_photo_info(client, app, admin_headers):
    writer: EventLogWriter = app.state.event_writer
    await writer.log_event("form", email="f@example.com", session_id="IP 127.0.0.1",
                           timestamp_utc="2025-12-03T14:00:00.000Z")
    await writer.log_event("upload", session_id="IP 127.0.0.1", ticket="T001",
                           timestamp_utc="2025-12-03T14:01:00.000Z")

    r = await client.get("/admin/photo-info/T001", headers=admin_headers)
    assert r.json()["ok"] is True
    assert r.json()["match"]["email"] == "f@example.com"

    r = await client.get("/admin/photo-info/T404", headers=admin_headers)
    assert r.json() == {"ok": False, "error": "no_match_found"}


async def test_next_photo_while_offline(client, admin_headers):
    await client.post("/admin/app-status", json={"enabled": False, "accessCode": ADMIN_CODE}, headers=admin_headers)
    r = await client.get("/admin/next-photo", headers=admin_headers)
    assert r.json()["reason"] == "app_offline"


# ---------------- log eventi ----------------

async def test_event_feed_and_stats(client, admin_headers):
    for _ in range(3):
        await client.post("/ping")
    await client.post("/upload", content=b"x", headers=JPEG)

    r = await client.get("/admin/event-logs", params={"limit": 2}, headers=admin_headers)
    events = r.json()["events"]
    assert len(events) == 2
    assert events[0]["text"] == "User uploaded a photo"

    r = await client.get("/admin/activity-stats", headers=admin_headers)
    body = r.json()
    assert len(body["counts"]) == 24
    assert sum(body["counts"]) == 4
    assert 0 <= body["currentHour"] <= 23


async def test_reset_logs(client, sheets, admin_headers):
    await client.post("/ping")
    r = await client.post("/admin/reset-logs", headers=admin_headers)
    assert r.json() == {"ok": True, "message": "reset_logs_completed"}

    rows = await sheets.get_all_rows("session-log", "A:J")
    assert len(rows) == 1
    assert rows[0][0] == "timestamp_utc"


# ---------------- stato app + impostazioni ----------------

async def test_app_status_toggle(client, admin_headers):
    r = await client.post("/admin/app-status", json={}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "missing_enabled_flag"

    r = await client.post("/admin/app-status", json={"enabled": False}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "missing_access_code"

    r = await client.post("/admin/app-status", json={"enabled": False, "accessCode": "bad"}, headers=admin_headers)
    assert r.status_code == 401
    assert r.json()["detail"] == "invalid_access_code"

    session_before = (await client.get("/app-settings")).json()["sessionId"]
    r = await client.post("/admin/app-status", json={"enabled": False, "accessCode": UNLOCK_KEY}, headers=admin_headers)
    assert r.json() == {"ok": True, "enabled": False}

    r = await client.post("/admin/app-status", json={"enabled": True}, headers=admin_headers)
    assert r.json() == {"ok": True, "enabled": True}
    assert (await client.get("/app-settings")).json()["sessionId"] != session_before


async def test_settings_roundtrip(client, admin_headers):
    r = await client.post("/admin/settings", json={
        "ticketEnabled": False,
        "form": {"email": {"label": "E-mail"}},
    }, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["settings"]["ticketEnabled"] is False

    r = await client.get("/admin/settings", headers=admin_headers)
    assert r.json()["settings"]["form"]["email"]["label"] == "E-mail"

    public = (await client.get("/app-settings")).json()
    assert public["settings"]["ticketEnabled"] is False


# ---------------- template ----------------

async def test_template_crud(client, admin_headers):
    r = await client.post("/admin/templates", json={"name": "Navidad"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "missing_name_or_data"

    r = await client.post("/admin/templates", json={"name": "Navidad", "data": {"bg": "red"}}, headers=admin_headers)
    created = r.json()["template"]
    assert created["id"] == 2
    assert created["isActive"] is True
    assert "data" not in created

    r = await client.get("/admin/templates/2", headers=admin_headers)
    assert r.json()["template"]["data"] == {"bg": "red"}

    r = await client.put("/admin/templates/2", json={"name": "Reyes", "data": {"bg": "gold"}, "isActive": False},
                         headers=admin_headers)
    assert r.json() == {"ok": True}

    r = await client.get("/admin/templates", headers=admin_headers)
    [tpl] = r.json()["templates"]
    assert (tpl["name"], tpl["isActive"], tpl["createdAt"]) == ("Reyes", False, created["createdAt"])

    r = await client.delete("/admin/templates/2", headers=admin_headers)
    assert r.json() == {"ok": True}
    r = await client.get("/admin/templates/2", headers=admin_headers)
    assert r.status_code == 404

    r = await client.get("/admin/templates/header", headers=admin_headers)
    assert r.status_code == 404


# ---------------- report ----------------

async def test_daily_report_skipped_without_mail(client):
    r = await client.get("/session-report-daily")
    assert r.json() == {"ok": True, "result": "skipped_mail_disabled"}


async def test_daily_report_skipped_without_events(mail_client, mailer):
    r = await mail_client.post("/session-report-now")
    assert r.json() == {"ok": True, "result": "skipped_no_events"}
    assert mailer.sent == []


async def test_daily_report_sent(mail_client, mailer):
    await mail_client.post("/ping")
    await mail_client.post("/upload", content=b"x", headers=JPEG)

    r = await mail_client.get("/session-report-daily")
    assert r.json() == {"ok": True, "result": "sent"}
    [sent] = mailer.sent
    assert sent["subject"] == DAILY_REPORT_SUBJECT
    assert "Visitas a la app: 1\n" in sent["body"]
    assert "Fotos capturadas/subidas: 1\n" in sent["body"]
    assert sent["attachments"][0].content == sent["body"]


async def test_report_preview(client, admin_headers):
    await client.post("/ping")
    r = await client.get("/session-report-preview", headers=admin_headers)
    assert "Total de eventos registrados: 1" in r.json()["reportText"]

    r = await client.get("/session-report-preview")
    assert r.status_code == 401


async def test_report_for_date(client, app):
    writer: EventLogWriter = app.state.event_writer
    await writer.log_event("visit", timestamp_utc="2025-12-03T14:00:00.000Z")
    await writer.log_event("form", email="n@example.com", newsletter="y", timestamp_utc="2025-12-04T03:30:00.000Z")
    await writer.log_event("visit", timestamp_utc="2025-12-04T04:30:00.000Z")

    r = await client.post("/session-report-date", json={"date": "2025-12-03"})
    body = r.json()
    assert body["emailed"] is False
    text = body["reportText"]
    assert text.startswith("SELFIE APP REPORT – 2025-12-03\n")
    assert "Visits: 1\n" in text
    assert "Forms: 1\n" in text
    assert "- n@example.com\n" in text

    r = await client.post("/session-report-date", json={})
    assert r.json()["detail"] == "missing_date"
    r = await client.post("/session-report-date", json={"date": "03/12/2025"})
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_date"


async def test_report_for_date_is_mailed(mail_client, mailer):
    r = await mail_client.post("/session-report-date", json={"date": "2025-12-03"})
    assert r.json()["emailed"] is True
    assert mailer.sent[0]["subject"] == "Selfie App Report – 2025-12-03"
    [attachment] = mailer.sent[0]["attachments"]
    assert attachment.filename == "report_2025-12-03.txt"
    assert attachment.content == mailer.sent[0]["body"]


# ---------------- chiusura evento ----------------

async def test_shutdown_reports_and_cleans_up(mail_client, mailer, sheets):
    headers = await _login(mail_client)
    await mail_client.post("/ping")
    await mail_client.post("/upload", content=b"x", headers=JPEG)

    r = await mail_client.post("/admin/shutdown", json={}, headers=headers)
    assert r.status_code == 400

    r = await mail_client.post("/admin/shutdown", json={"accessCode": ADMIN_CODE}, headers=headers)
    body = r.json()
    assert body["ok"] is True
    assert body["enabled"] is False
    assert "Visitas a la app: 1\n" in body["reportText"]
    assert body["cleanup"] == {"logsCleared": True, "trashedCount": 1, "errors": []}

    assert [m["subject"] for m in mailer.sent] == [SHUTDOWN_REPORT_SUBJECT]
    assert len(await sheets.get_all_rows("session-log", "A:J")) == 1

    r = await mail_client.post("/upload", content=b"x", headers=JPEG)
    assert r.status_code == 503

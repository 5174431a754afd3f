import os

# DB in memoria prima di qualsiasi import di app/main
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("REPORT_SCHEDULER_ENABLED", "false")

import httpx
import pytest
import pytest_asyncio

from app.core.config import Settings
from app.db.session import init_db, make_engine, make_session_factory
from app.services.notify import Mailer
from app.services.sheets import SqlSheetsGateway
from app.services.storage import SqlStorageGateway, sqlite_guard

ADMIN_CODE = "MAYAGUEZ2025!"
UNLOCK_KEY = "master-unlock"


class RecordingMailer(Mailer):
    """Mailer configurato che registra i messaggi invece di parlare SMTP."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.sent = []

    def send(self, subject, body, attachments=(), to=None):
        self.sent.append({"subject": subject, "body": body, "attachments": list(attachments)})
        return True


def make_settings(**overrides) -> Settings:
    values = dict(
        DATABASE_URL="sqlite://",
        PENDING_FOLDER_ID="pending",
        APPROVED_FOLDER_ID="approved",
        SESSION_SHEET_ID="session-log",
        SETTINGS_SHEET_ID="app-settings",
        SETTINGS_SHEET_NAME="Settings",
        TEMPLATES_SHEET_ID="templates",
        TEMPLATES_SHEET_NAME="Templates",
        ADMIN_ACCESS_CODE=ADMIN_CODE,
        ADMIN_UNLOCK_KEY=UNLOCK_KEY,
        ADMIN_SESSION_SECRET="test-secret",
        MAIL_USER=None,
        MAIL_PASS=None,
        MAIL_TO=None,
        UPLOAD_MAX_BYTES=1024,
        REPORT_SCHEDULER_ENABLED=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    factory = make_session_factory(engine)
    yield factory
    # wait for DB work still running in the threadpool before closing the connection
    with sqlite_guard(factory):
        engine.dispose()


@pytest.fixture
def storage(session_factory):
    return SqlStorageGateway(session_factory)


@pytest.fixture
def sheets(session_factory):
    return SqlSheetsGateway(session_factory)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def mail_settings():
    return make_settings(MAIL_USER="kiosk@example.com", MAIL_PASS="app-password", MAIL_TO="ops@example.com")


@pytest.fixture
def mailer(mail_settings):
    return RecordingMailer(mail_settings)


@pytest.fixture
def app(settings, storage, sheets):
    from main import create_app

    return create_app(settings=settings, storage=storage, sheets=sheets)


@pytest.fixture
def mail_app(mail_settings, storage, sheets, mailer):
    from main import create_app

    return create_app(settings=mail_settings, storage=storage, sheets=sheets, mailer=mailer)


@pytest_asyncio.fixture(scope="function")
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://kiosk.test", timeout=10.0) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def mail_client(mail_app):
    transport = httpx.ASGITransport(app=mail_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://kiosk.test", timeout=10.0) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def admin_headers(client):
    r = await client.post("/admin/auth", json={"code": ADMIN_CODE})
    assert r.status_code == 200, r.text
    return {"X-Admin-Token": r.json()["token"]}

# main.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

# ------------------------------------------------------------
# IMPORT ROUTER
# ------------------------------------------------------------
# Chiosco pubblico (upload, visite, impostazioni pubbliche)
from app.routers.kiosk import router as kiosk_router
from app.routers.gallery import router as gallery_router
from app.routers.reports import router as reports_router

# Routers amministrativi
from app.routers.admin_auth import router as admin_auth_router
from app.routers.admin_app import router as admin_app_router
from app.routers.admin_photos import router as admin_photos_router
from app.routers.admin_events import router as admin_events_router
from app.routers.admin_templates import router as admin_templates_router

from app.core.config import Settings, get_settings
from app.core.security import LoginAttemptTracker
from app.core.scheduler import start_scheduler, stop_scheduler
from app.db.session import get_engine, init_db, make_session_factory
from app.services.app_settings import AppSettingsStore
from app.services.event_log import EventLogReader, EventLogWriter
from app.services.notify import Mailer
from app.services.photos import PhotoReviewService
from app.services.session_report import SessionReportService
from app.services.sheets import SheetsGateway, SqlSheetsGateway
from app.services.storage import GatewayError, ListingGateway, SqlStorageGateway
from app.services.templates import TemplateStore
from app.services.tickets import TicketAllocator
from app.services.uploads import UploadOrchestrator


# ------------------------------------------------------------
# CREAZIONE DELL'APPLICAZIONE FASTAPI
# ------------------------------------------------------------
def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[ListingGateway] = None,
    sheets: Optional[SheetsGateway] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    """
    Crea e configura l'applicazione del chiosco selfie.
    Gateway storage/fogli di default su SQLAlchemy (DATABASE_URL);
    i test possono passarne di propri.
    """
    config = settings or get_settings()
    app_version = config.APP_VERSION

    logging.getLogger("kiosk").setLevel(config.LOG_LEVEL.upper())

    app = FastAPI(
        title=config.APP_NAME,
        version=app_version,
        description=(
            "Backend del chiosco selfie: upload foto con numerazione ticket, "
            "log eventi su foglio, moderazione admin, galleria pubblica "
            "e report di sessione giornalieri."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # --------------------------------------------------------
    # CORS
    # --------------------------------------------------------
    ALLOWED_ORIGINS = [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1",
    ]

    extra = config.KIOSK_CORS_EXTRA
    if extra:
        for item in [x.strip() for x in extra.split(",") if x.strip()]:
            if item not in ALLOWED_ORIGINS:
                ALLOWED_ORIGINS.append(item)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --------------------------------------------------------
    # SERVIZI (su app.state, letti dalle dipendenze in app/api/deps.py)
    # --------------------------------------------------------
    if storage is None or sheets is None:
        engine = get_engine(config.DATABASE_URL)
        init_db(engine)
        session_factory = make_session_factory(engine)
        storage = storage or SqlStorageGateway(session_factory)
        sheets = sheets or SqlSheetsGateway(session_factory)

    mailer = mailer or Mailer(config)
    allocator = TicketAllocator(storage, config.PENDING_FOLDER_ID, config.APPROVED_FOLDER_ID)
    reader = EventLogReader(sheets, config.SESSION_SHEET_ID)

    app.state.config = config
    app.state.storage = storage
    app.state.sheets = sheets
    app.state.mailer = mailer
    app.state.uploader = UploadOrchestrator(storage, allocator, config.PENDING_FOLDER_ID)
    app.state.event_writer = EventLogWriter(sheets, config.SESSION_SHEET_ID)
    app.state.event_reader = reader
    app.state.reports = SessionReportService(reader, mailer)
    app.state.photos = PhotoReviewService(storage, config.PENDING_FOLDER_ID, config.APPROVED_FOLDER_ID)
    app.state.app_settings = AppSettingsStore(sheets, config.SETTINGS_SHEET_ID, config.SETTINGS_SHEET_NAME)
    app.state.templates = TemplateStore(sheets, config.TEMPLATES_SHEET_ID, config.TEMPLATES_SHEET_NAME)
    app.state.login_tracker = LoginAttemptTracker(config.ADMIN_MAX_ATTEMPTS, config.ADMIN_BLOCK_MINUTES)
    app.state.last_report_date = None

    # --------------------------------------------------------
    # ROUTES
    # --------------------------------------------------------
    app.include_router(kiosk_router)
    app.include_router(gallery_router)
    app.include_router(reports_router)

    app.include_router(admin_auth_router)
    app.include_router(admin_app_router)
    app.include_router(admin_photos_router)
    app.include_router(admin_events_router)
    app.include_router(admin_templates_router)

    # --------------------------------------------------------
    # ROOT DI SERVIZIO
    # --------------------------------------------------------
    @app.get("/", tags=["root"])
    def root():
        return {
            "status": "online",
            "service": config.APP_NAME,
            "version": app_version,
            "message": "📸 Selfie kiosk backend attivo.",
        }

    @app.get("/api/version", tags=["system"])
    def version():
        """Versione dell'applicazione (gestita via env APP_VERSION)."""
        return {"version": app_version}

    # --------------------------------------------------------
    # 🩺 HEALTHZ ENDPOINT (API + gateway)
    # --------------------------------------------------------
    @app.get("/api/healthz", tags=["system"])
    async def healthz(request: Request):
        """Verifica la raggiungibilità di storage foto e fogli."""
        try:
            await request.app.state.storage.ping()
            await request.app.state.sheets.ping()
            return {
                "status": "ok",
                "service": "selfie-kiosk-backend",
                "gateways": "ok",
                "version": app_version,
            }
        except GatewayError as e:
            # 503 = Service Unavailable
            raise HTTPException(
                status_code=503,
                detail={
                    "status": "degraded",
                    "gateways": "error",
                    "error": str(e),
                    "version": app_version,
                },
            )

    # --------------------------------------------------------
    # EVENTI DI AVVIO / ARRESTO
    # --------------------------------------------------------
    @app.on_event("startup")
    async def _on_startup():
        start_scheduler(app)

    @app.on_event("shutdown")
    async def _on_shutdown():
        await stop_scheduler(app)

    return app


# ------------------------------------------------------------
# ISTANZA APPLICAZIONE
# ------------------------------------------------------------
app = create_app()

# ------------------------------------------------------------
# AVVIO LOCALE
# ------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

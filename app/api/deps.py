# app/api/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, Request, status

from app.core.config import Settings
from app.core.security import LoginAttemptTracker, verify_admin_token
from app.core.utils import get_client_ip
from app.services.app_settings import AppSettingsStore
from app.services.event_log import EventLogReader, EventLogWriter
from app.services.notify import Mailer
from app.services.photos import PhotoReviewService
from app.services.session_report import SessionReportService
from app.services.storage import ListingGateway
from app.services.templates import TemplateStore
from app.services.uploads import UploadOrchestrator


# ==========================================================
#  SERVIZI (istanze create da create_app su app.state)
# ==========================================================
def get_config(request: Request) -> Settings:
    return request.app.state.config


def get_storage(request: Request) -> ListingGateway:
    return request.app.state.storage


def get_uploader(request: Request) -> UploadOrchestrator:
    return request.app.state.uploader


def get_event_writer(request: Request) -> EventLogWriter:
    return request.app.state.event_writer


def get_event_reader(request: Request) -> EventLogReader:
    return request.app.state.event_reader


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_reports(request: Request) -> SessionReportService:
    return request.app.state.reports


def get_photos(request: Request) -> PhotoReviewService:
    return request.app.state.photos


def get_templates(request: Request) -> TemplateStore:
    return request.app.state.templates


def get_login_tracker(request: Request) -> LoginAttemptTracker:
    return request.app.state.login_tracker


async def get_app_settings(request: Request) -> AppSettingsStore:
    """Store impostazioni già idratato dal foglio (lazy, una volta)."""
    store: AppSettingsStore = request.app.state.app_settings
    await store.hydrate()
    return store


# ==========================================================
#  APP ON/OFF
# ==========================================================
async def require_app_enabled(store: AppSettingsStore = Depends(get_app_settings)) -> AppSettingsStore:
    if not store.enabled:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="app_offline")
    return store


# ==========================================================
#  CONTROLLO ADMIN (token firmato, legato all'IP)
# ==========================================================
# Il token arriva da POST /admin/auth e va rimandato in:
#   X-Admin-Token: <token>      oppure     ?token=<token>
# Un IP bloccato riceve 403 anche con token valido.
# ==========================================================
def ensure_not_blocked(
    request: Request,
    tracker: LoginAttemptTracker = Depends(get_login_tracker),
) -> str:
    ip = get_client_ip(request)
    if tracker.is_blocked(ip):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "blocked",
                "message": "IP temporarily blocked",
                "blockedMinutes": tracker.remaining_block_minutes(ip),
            },
        )
    return ip


def get_current_admin(
    ip: str = Depends(ensure_not_blocked),
    config: Settings = Depends(get_config),
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    token: Optional[str] = Query(None),
) -> dict:
    session = verify_admin_token(
        config.admin_session_secret,
        x_admin_token or token,
        max_age_hours=config.ADMIN_SESSION_MAX_AGE_HOURS,
    )
    if not session:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
    if session.get("ip") and session["ip"] != ip:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
    return session

# app/routers/admin_auth.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status

from app.api.deps import ensure_not_blocked, get_config, get_login_tracker
from app.core.config import Settings
from app.core.security import LoginAttemptTracker, create_admin_token

logger = logging.getLogger("kiosk.admin")

router = APIRouter(prefix="/admin", tags=["admin:auth"])


@router.post("/auth")
def admin_login(
    payload: Optional[dict] = Body(None),
    ip: str = Depends(ensure_not_blocked),
    config: Settings = Depends(get_config),
    tracker: LoginAttemptTracker = Depends(get_login_tracker),
):
    """
    Login admin con codice d'accesso.
    3 codici errati dallo stesso IP -> blocco di ADMIN_BLOCK_MINUTES.
    """
    if not config.ADMIN_ACCESS_CODE:
        logger.error("ADMIN_ACCESS_CODE non configurato")
        raise HTTPException(status_code=500, detail="admin_code_not_configured")

    code = (payload or {}).get("code")
    if not code or not isinstance(code, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_code")

    if code == config.ADMIN_ACCESS_CODE:
        tracker.register_success(ip)
        return {"ok": True, "token": create_admin_token(config.admin_session_secret, ip)}

    remaining = tracker.register_failure(ip)
    if remaining == 0:
        logger.warning("IP %s bloccato dopo troppi tentativi admin", ip)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "blocked", "blockedMinutes": tracker.block_minutes},
        )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "invalid_code", "remainingAttempts": remaining},
    )


@router.post("/unblock")
def admin_unblock(
    payload: Optional[dict] = Body(None),
    x_admin_unlock_key: Optional[str] = Header(None, alias="X-Admin-Unlock-Key"),
    config: Settings = Depends(get_config),
    tracker: LoginAttemptTracker = Depends(get_login_tracker),
):
    """Sblocco manuale di un IP con la chiave master."""
    if not config.ADMIN_UNLOCK_KEY:
        raise HTTPException(status_code=500, detail="unlock_key_not_configured")
    if x_admin_unlock_key != config.ADMIN_UNLOCK_KEY:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")

    ip = (payload or {}).get("ip")
    if not ip:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_ip")

    tracker.unblock(ip)
    return {"ok": True, "message": f"IP {ip} unblocked"}

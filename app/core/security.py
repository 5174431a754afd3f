# app/core/security.py
# Token admin stateless firmati HMAC-SHA256 + blocco IP dopo tentativi falliti.
#   token = base64url(json{ip, iat}) + "." + hex(hmac_sha256(secret, payload_b64))

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _sign(secret: str, payload_b64: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload_b64.encode("utf-8"), hashlib.sha256).hexdigest()


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_admin_token(secret: str, ip: str, issued_at_ms: Optional[int] = None) -> str:
    payload = {"ip": ip, "iat": issued_at_ms if issued_at_ms is not None else _now_ms()}
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{payload_b64}.{_sign(secret, payload_b64)}"


def verify_admin_token(
    secret: str,
    token: Optional[str],
    max_age_hours: int = 8,
    now_ms: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """
    Ritorna il payload {ip, iat} se firma e scadenza sono valide, altrimenti None.
    """
    if not token or not isinstance(token, str):
        return None
    parts = token.split(".")
    if len(parts) != 2:
        return None
    payload_b64, sig = parts

    if not hmac.compare_digest(sig, _sign(secret, payload_b64)):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except ValueError:
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("iat"), (int, float)):
        return None

    now = now_ms if now_ms is not None else _now_ms()
    if now - payload["iat"] > max_age_hours * 60 * 60 * 1000:
        return None
    return payload


# ----------------------------------------------------------------------
# Tentativi di login per IP (in memoria, per processo)
# ----------------------------------------------------------------------
@dataclass
class _AttemptRecord:
    attempts: int = 0
    blocked_until: float = 0.0


class LoginAttemptTracker:
    def __init__(self, max_attempts: int = 3, block_minutes: int = 30, clock=time.time):
        self.max_attempts = max_attempts
        self.block_minutes = block_minutes
        self._clock = clock
        self._records: Dict[str, _AttemptRecord] = {}
        self._lock = threading.Lock()

    def is_blocked(self, ip: str) -> bool:
        rec = self._records.get(ip)
        return bool(rec and rec.blocked_until > self._clock())

    def remaining_block_minutes(self, ip: str) -> int:
        rec = self._records.get(ip)
        if not rec or not rec.blocked_until:
            return 0
        return max(0, math.ceil((rec.blocked_until - self._clock()) / 60))

    def register_failure(self, ip: str) -> int:
        """Conta un codice errato. Ritorna i tentativi rimasti (0 = IP bloccato)."""
        with self._lock:
            rec = self._records.setdefault(ip, _AttemptRecord())
            rec.attempts += 1
            if rec.attempts >= self.max_attempts:
                rec.blocked_until = self._clock() + self.block_minutes * 60
                return 0
            return self.max_attempts - rec.attempts

    def register_success(self, ip: str) -> None:
        with self._lock:
            self._records[ip] = _AttemptRecord()

    def unblock(self, ip: str) -> None:
        with self._lock:
            self._records.pop(ip, None)

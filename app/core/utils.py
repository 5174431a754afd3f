# app/core/utils.py
import secrets
from typing import Optional, Tuple
from urllib.parse import unquote

from fastapi import Request

# ------------------------------------------------------------
# Coercizioni valori (form / fogli)
# ------------------------------------------------------------

NEWSLETTER_YES = ("true", "1", "sí", "si", "y")
NEWSLETTER_NO = ("false", "0", "no", "n")


def newsletter_flag(value) -> str:
    """Normalizza l'opt-in newsletter in "Y" / "N" / "" (sconosciuto)."""
    if value is None:
        return ""
    val = str(value).lower()
    if val in NEWSLETTER_YES:
        return "Y"
    if val in NEWSLETTER_NO:
        return "N"
    return ""


def coerce_boolean(value, fallback: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in ("true", "1", "yes", "y"):
            return True
        if lower in ("false", "0", "no", "n"):
            return False
    return fallback


def coerce_string(value, fallback: str) -> str:
    if isinstance(value, str):
        return value.strip()
    return fallback


def parse_boolean_label(value, fallback: Optional[bool]) -> Optional[bool]:
    """Legge "Enabled"/"Disabled", "On"/"Off" e simili dal foglio impostazioni."""
    if isinstance(value, bool):
        return value
    if value is None:
        return fallback
    lower = str(value).strip().lower()
    if lower in ("enabled", "on", "true", "1", "yes", "y"):
        return True
    if lower in ("disabled", "off", "false", "0", "no", "n"):
        return False
    return fallback


def boolean_label(value: bool) -> str:
    return "Enabled" if value else "Disabled"


def status_label(enabled: bool) -> str:
    return "On" if enabled else "Off"


def generate_server_session_id() -> str:
    """Id casuale (24 hex) della sessione server, rigenerato a ogni riaccensione."""
    return secrets.token_hex(12)


def split_location(country: Optional[str], region: Optional[str] = None) -> Tuple[str, str]:
    """
    Normalizza la località in (country, region).
    Il form può inviare "Mayagüez, Puerto Rico" in un solo campo:
    la prima parte è la regione/municipio, la seconda il paese.
    """
    region = (region or "").strip()
    if not country:
        return "", region
    parts = [p.strip() for p in str(country).split(",") if p.strip()]
    if len(parts) >= 2:
        return parts[1], region or parts[0]
    if len(parts) == 1:
        return parts[0], region
    return "", region


# ------------------------------------------------------------
# Identificazione client (best-effort)
# ------------------------------------------------------------

COUNTRY_LABELS = {
    "PR": "Puerto Rico",
    "US": "United States",
}


def get_client_ip(request: Request) -> str:
    xfwd = request.headers.get("x-forwarded-for")
    if xfwd:
        return xfwd.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def normalize_ip(ip: Optional[str]) -> str:
    if not ip:
        return "unknown"
    if ip.startswith("::ffff:"):
        return ip[7:]
    return ip


def _safe_decode_header(value: Optional[str]) -> str:
    if not value:
        return ""
    return unquote(str(value).strip())


def get_client_location(request: Request) -> Tuple[str, str, str]:
    city = _safe_decode_header(request.headers.get("x-vercel-ip-city"))
    region = _safe_decode_header(request.headers.get("x-vercel-ip-country-region"))
    country = _safe_decode_header(request.headers.get("x-vercel-ip-country"))
    country = COUNTRY_LABELS.get(country.upper(), country)
    return city, region, country


def build_session_identifier(request: Request) -> str:
    """Es. "IP 172.225.248.16 San Juan, PR, Puerto Rico"."""
    ip = normalize_ip(get_client_ip(request))
    location = ", ".join(p for p in get_client_location(request) if p)

    if location and ip != "unknown":
        return f"IP {ip} {location}"
    if ip != "unknown":
        return f"IP {ip}"
    return request.headers.get("x-session-id", "")

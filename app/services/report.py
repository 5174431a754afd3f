# app/services/report.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from app.core.clock import format_hour_range, to_iso_utc, utcnow
from app.schemas.event_log import DailyStats, PrimeHour

REPORT_TITLE = "REPORTE DE SESION - SELFIE APP - MUNICIPIO DE MAYAGÜEZ"
DAILY_REPORT_SUBJECT = "Reporte de sesión diaria – Selfie App · Municipio de Mayagüez"
SHUTDOWN_REPORT_SUBJECT = "Reporte de cierre – Selfie App · Municipio de Mayagüez"
REPORT_ATTACHMENT_NAME = "reporte_sesion.txt"


def render_session_report(
    long_date: str,
    visits: int,
    forms: int,
    uploads: int,
    prime: Optional[PrimeHour],
    newsletter_emails: Optional[Sequence[str]] = None,
) -> str:
    """
    Report testuale di sessione (chiusura e invio giornaliero).
    Ordine fisso: intestazione, contatori, fascia di punta, opt-in, totale.
    """
    total_events = visits + forms + uploads

    report = (
        f"{REPORT_TITLE}\n"
        f"{long_date}\n\n"
        f"Visitas a la app: {visits}\n"
        f"Formularios completados: {forms}\n"
        f"Fotos capturadas/subidas: {uploads}\n\n"
    )

    if prime:
        report += (
            f"Horario de mayor actividad: {format_hour_range(prime.hour)} "
            f"({prime.count} interacciones)\n\n"
        )
    else:
        report += "No se pudo determinar un horario de mayor actividad.\n\n"

    if newsletter_emails:
        report += "Familias que aceptaron recibir noticias y ofertas:\n"
        for email in newsletter_emails:
            report += f"- {email}\n"
        report += "\n"
    else:
        report += "Ninguna familia aceptó recibir noticias y ofertas en esta sesión.\n\n"

    report += f"Total de eventos registrados: {total_events}\n"
    return report


def render_stats_report(long_date: str, stats: DailyStats, prime: Optional[PrimeHour]) -> str:
    return render_session_report(
        long_date,
        stats.visits,
        stats.forms,
        stats.uploads,
        prime,
        stats.newsletter_emails,
    )


def render_date_report(day: date, stats: DailyStats, generated_at: Optional[datetime] = None) -> str:
    """Report compatto per una data arbitraria (YYYY-MM-DD)."""
    iso_day = day.isoformat()
    separator = "-" * 38
    lines = [
        f"SELFIE APP REPORT – {iso_day}",
        separator,
        f"Visits: {stats.visits}",
        f"Forms: {stats.forms}",
        f"Uploads: {stats.uploads}",
        f"Newsletter Opt-ins: {len(stats.newsletter_emails)}",
        "",
    ]
    if stats.newsletter_emails:
        lines.append("Emails:")
        lines.extend(f"- {email}" for email in stats.newsletter_emails)
    lines.append(separator)
    lines.append(f"Generated at: {to_iso_utc(generated_at or utcnow())}")
    return "\n".join(lines)

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional, Sequence

from app.core.config import Settings

logger = logging.getLogger("kiosk.mail")

VISIT_SUBJECT = "Nueva familia registrada (Selfie App)"


@dataclass(frozen=True)
class TextAttachment:
    filename: str
    content: str


class Mailer:
    """
    Invio email via SMTP (solo testo, allegati .txt opzionali).
    Variabili d'ambiente:
      MAIL_USER, MAIL_PASS, MAIL_FROM, MAIL_TO, SMTP_HOST, SMTP_PORT, SMTP_TLS
    Senza MAIL_USER/MAIL_PASS il mailer è "non configurato" e i chiamanti
    saltano l'invio.
    """

    def __init__(self, settings: Settings):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.MAIL_USER
        self.smtp_pass = settings.MAIL_PASS
        self.smtp_from = settings.MAIL_FROM or settings.MAIL_USER
        self.smtp_to = settings.MAIL_TO
        self.smtp_tls = settings.SMTP_TLS

    @property
    def configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass and self.smtp_host)

    @property
    def can_send(self) -> bool:
        return self.configured and bool(self.smtp_to)

    # ---------------------- transport ----------------------

    def build_message(
        self,
        subject: str,
        body: str,
        attachments: Sequence[TextAttachment] = (),
        to: Optional[str] = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f'"Luminar Apps" <{self.smtp_from}>'
        msg["To"] = to or self.smtp_to or ""
        msg.set_content(body)
        for att in attachments:
            msg.add_attachment(
                att.content.encode("utf-8"),
                maintype="text",
                subtype="plain",
                filename=att.filename,
            )
        return msg

    def send(
        self,
        subject: str,
        body: str,
        attachments: Sequence[TextAttachment] = (),
        to: Optional[str] = None,
    ) -> bool:
        """
        Invio bloccante (da eseguire in threadpool dalle route async).
        False se non configurato; gli errori SMTP propagano.
        """
        if not self.configured or not (to or self.smtp_to):
            logger.warning("mail non configurata, invio '%s' saltato", subject)
            return False

        msg = self.build_message(subject, body, attachments, to)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as s:
            if self.smtp_tls:
                s.starttls()
            s.login(self.smtp_user, self.smtp_pass)
            s.send_message(msg)
        logger.info("mail inviata: %s -> %s", subject, msg["To"])
        return True


# ---------------------- contenuti ----------------------

def render_visit_notification(
    country: Optional[str],
    last_name: Optional[str],
    email: Optional[str],
    newsletter_yes: bool,
    timestamp_utc: str,
) -> str:
    return (
        "Una nueva familia ha sido registrada en el sistema.\n\n"
        f"La familia nos visita desde: {country or 'No provisto'}\n"
        f"Apellidos de la familia: {last_name or 'No provisto'}\n"
        f"Correo electrónico de la familia: {email or 'No provisto'}\n"
        f"Acepta recibir noticias y ofertas de MUNICIPIO DE MAYAGÜEZ.: {'Sí' if newsletter_yes else 'No'}\n\n"
        f"Fecha y hora (UTC): {timestamp_utc}"
    )

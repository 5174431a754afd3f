# app/schemas/app_settings.py
from typing import Literal

from pydantic import BaseModel, Field

GalleryDisplayLimit = Literal["all", "last10", "last25"]


# ===== IMPOSTAZIONI APP (configurabili da admin) =====
class IntroSettings(BaseModel):
    title: str = "¿Desde dónde nos visitas? 😊"
    subtitle: str = (
        "Selecciona tu país y municipio/estado, escribe tus apellidos y continúa a tu selfie."
    )


class LastNameField(BaseModel):
    enabled: bool = True
    label: str = "Apellidos de la familia"
    placeholder: str = "Apellidos de la familia (Ej. Pérez González)"


class EmailField(BaseModel):
    enabled: bool = True
    label: str = "Correo electrónico"
    placeholder: str = "Correo electrónico"


class NewsletterField(BaseModel):
    enabled: bool = True
    label: str = "Deseo recibir noticias y ofertas de Municipio de Mayagüez."
    helper: str = "Tu email será utilizado únicamente si autorizas recibir nuestro boletín."


class FormSettings(BaseModel):
    locationEnabled: bool = True
    lastName: LastNameField = Field(default_factory=LastNameField)
    email: EmailField = Field(default_factory=EmailField)
    newsletter: NewsletterField = Field(default_factory=NewsletterField)


class AppSettings(BaseModel):
    ticketEnabled: bool = True
    galleryDisplayLimit: GalleryDisplayLimit = "all"
    intro: IntroSettings = Field(default_factory=IntroSettings)
    form: FormSettings = Field(default_factory=FormSettings)


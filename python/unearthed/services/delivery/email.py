"""Daily reflection email: HTML rendering and the Resend client.

The markup is built with lxml's element builder so every user-supplied
string (title, quote, note) is escaped by the serializer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx
from lxml.html import builder as E
from lxml.html import tostring

from unearthed.config import get_settings
from unearthed.errors import ConfigurationError, UpstreamError
from unearthed.logging import get_logger
from unearthed.services.reflection import DailyReflection

logger = get_logger(__name__)

EMAIL_SUBJECT = "Daily Reflection"
PREVIEW_TEXT = "Unearthed Daily Reflection"


@dataclass(frozen=True)
class ColorScheme:
    background: str
    border: str
    text: str


COLOR_SCHEMES: dict[str, ColorScheme] = {
    "grey": ColorScheme(background="#f5f5f5", border="#000000", text="#404040"),
    "yellow": ColorScheme(background="#fef9c3", border="#eab308", text="#713f12"),
    "blue": ColorScheme(background="#dbeafe", border="#3b82f6", text="#1e3a8a"),
    "pink": ColorScheme(background="#fce7f3", border="#ec4899", text="#831843"),
    "orange": ColorScheme(background="#ffedd5", border="#f97316", text="#7c2d12"),
}


def color_scheme_for(color: str | None) -> ColorScheme:
    """Pick the scheme whose name occurs in the highlight color ("Yellow highlight")."""
    lowered = (color or "").lower()
    for name, scheme in COLOR_SCHEMES.items():
        if name in lowered:
            return scheme
    return COLOR_SCHEMES["grey"]


def render_daily_email(reflection: DailyReflection) -> str:
    """Render the reflection as a standalone HTML document."""
    source, quote = reflection.source, reflection.quote
    scheme = color_scheme_for(quote.color)

    card = [
        E.H1(
            source.title,
            style="color:#000000;font-size:30px;font-weight:bold;text-align:center;"
            "margin:8px 0 16px 0",
        )
    ]
    if source.subtitle:
        card.append(E.P(source.subtitle, style="font-size:16px;font-weight:bold;text-align:center"))
    if source.author:
        card.append(E.P(f"by {source.author}", style="font-size:14px;text-align:center"))
    if source.media is not None and source.media.url:
        card.append(
            E.IMG(
                src=source.media.url,
                alt=source.title,
                style="display:block;margin:0 auto;max-height:200px",
            )
        )
    card.append(
        E.DIV(
            E.DIV(
                E.P(quote.content, style=f"font-size:16px;color:{scheme.text};line-height:1.5"),
                style=f"border-left:4px solid {scheme.border};padding-left:16px",
            ),
            style=f"background-color:{scheme.background};border:2px solid {scheme.border};"
            "border-radius:8px;padding:32px 16px;margin-top:16px",
        )
    )
    if quote.location:
        card.append(
            E.P(
                quote.location,
                style="font-size:12px;color:#ffffff;background-color:#000000;"
                "border-radius:8px;padding:0 8px;text-align:center;font-weight:bold",
            )
        )
    if reflection.note:
        card.append(E.HR(style="border:1px solid #eaeaea;margin:26px 0"))
        card.append(E.P(reflection.note, style="color:#666666;font-size:12px;line-height:24px"))

    document = E.HTML(
        E.HEAD(E.META(charset="utf-8"), E.TITLE(PREVIEW_TEXT)),
        E.BODY(
            E.DIV(
                *card,
                style="background-color:hsl(337,68%,97%);border:2px solid #000000;"
                "border-radius:8px;margin:16px auto;padding:16px;max-width:465px",
            ),
            style="background-color:hsl(10,100%,93%);margin:auto;"
            "font-family:system-ui,-apple-system,sans-serif;padding:8px",
        ),
    )
    return tostring(document, doctype="<!DOCTYPE html>", encoding="unicode")


class MailerBase(ABC):
    """Abstract transactional email sender."""

    @abstractmethod
    def send(self, to: str, subject: str, html: str) -> str | None:
        """Send one email. Returns the provider message id when known.

        Raises:
            UpstreamError: The provider rejected the message or was unreachable.
        """
        ...


class ResendMailer(MailerBase):
    """Resend REST API client."""

    def __init__(self, api_url: str, api_key: str, sender: str, timeout: float = 30.0):
        self._url = f"{api_url.rstrip('/')}/emails"
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._sender = sender
        self._timeout = timeout

    def send(self, to: str, subject: str, html: str) -> str | None:
        payload = {"from": self._sender, "to": [to], "subject": subject, "html": html}
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(self._url, headers=self._headers, json=payload)
        except httpx.RequestError as e:
            raise UpstreamError("Email provider unreachable", service="resend") from e

        if response.status_code >= 400:
            raise UpstreamError(
                f"Email provider returned {response.status_code}",
                service="resend",
                status=response.status_code,
            )
        return response.json().get("id")


@dataclass
class FakeMailer(MailerBase):
    """Records outgoing mail instead of sending it (tests and local runs)."""

    sent: list[dict] = field(default_factory=list)

    def send(self, to: str, subject: str, html: str) -> str | None:
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"fake-{len(self.sent)}"


def get_mailer() -> MailerBase:
    """Build the configured mailer.

    Raises:
        ConfigurationError: RESEND_API_KEY is unset outside local and test.
    """
    settings = get_settings()
    if settings.resend_api_key:
        return ResendMailer(
            api_url=settings.resend_api_url,
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            timeout=settings.http_timeout_s,
        )
    if settings.unearthed_env.value in ("staging", "prod"):
        raise ConfigurationError("RESEND_API_KEY is required to send email")
    logger.warning("mailer_fake_in_use")
    return FakeMailer()

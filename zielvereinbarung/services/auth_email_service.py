"""
Auth Email Service

Password reset and email verification mails (German).
Sending failures are logged; callers never fail because of them.
"""
import html
import logging
from typing import Optional

from zielvereinbarung.core.config import settings
from zielvereinbarung.services.email_provider import ResendProvider, get_email_provider

logger = logging.getLogger(__name__)

_LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #005AA9; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
      <h1>{heading}</h1>
    </div>
    <div style="background-color: #f9f9f9; padding: 30px; border-radius: 0 0 8px 8px;">
      {body}
      <p><a href="{url}" style="display: inline-block; background-color: #005AA9; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px;">{button}</a></p>
      <p style="font-size: 12px; color: #666;">{footnote}</p>
      <p style="font-size: 12px; color: #666;">Dies ist eine automatische Nachricht von Zielvereinbarung Digital.</p>
    </div>
  </div>
</body>
</html>
"""


def _greeting(name: Optional[str]) -> str:
    return f"<p>Guten Tag {html.escape(name)},</p>" if name else "<p>Guten Tag,</p>"


def password_reset_email(reset_url: str, name: Optional[str] = None) -> dict:
    minutes = settings.PASSWORD_RESET_TOKEN_MINUTES
    return {
        "subject": "Passwort zurücksetzen - Zielvereinbarung Digital",
        "html": _LAYOUT.format(
            heading="Passwort zurücksetzen",
            body=(
                _greeting(name)
                + "<p>Sie haben angefordert, Ihr Passwort zurückzusetzen. "
                "Klicken Sie auf den folgenden Link, um ein neues Passwort festzulegen.</p>"
            ),
            url=html.escape(reset_url, quote=True),
            button="Neues Passwort festlegen",
            footnote=(
                f"Der Link ist {minutes} Minuten gültig. Falls Sie keine Zurücksetzung "
                "angefordert haben, können Sie diese E-Mail ignorieren."
            ),
        ),
    }


def email_verification_email(
    verification_url: str,
    name: Optional[str] = None,
    schulamt_name: Optional[str] = None,
) -> dict:
    hours = settings.EMAIL_VERIFICATION_TOKEN_HOURS
    schulamt = f" für <strong>{html.escape(schulamt_name)}</strong>" if schulamt_name else ""
    return {
        "subject": "E-Mail-Adresse bestätigen - Zielvereinbarung Digital",
        "html": _LAYOUT.format(
            heading="E-Mail-Adresse bestätigen",
            body=(
                _greeting(name)
                + f"<p>vielen Dank für Ihre Registrierung{schulamt}. "
                "Bitte bestätigen Sie Ihre E-Mail-Adresse, um Ihr Konto zu aktivieren.</p>"
            ),
            url=html.escape(verification_url, quote=True),
            button="E-Mail-Adresse bestätigen",
            footnote=f"Der Link ist {hours} Stunden gültig.",
        ),
    }


class AuthEmailService:
    """Sends authentication-related emails."""

    def __init__(self, provider: Optional[ResendProvider] = None):
        self.provider = provider or get_email_provider()
        self.app_url = settings.APP_URL.rstrip("/")

    async def send_password_reset_email(self, to_email: str, token: str, name: Optional[str] = None) -> bool:
        content = password_reset_email(f"{self.app_url}/reset-password?token={token}", name)
        sent = await self.provider.send(to_email, content["subject"], content["html"])
        if not sent:
            logger.warning(f"Password reset email could not be sent (token {token[:8]}...)")
        return sent

    async def send_verification_email(
        self,
        to_email: str,
        token: str,
        name: Optional[str] = None,
        schulamt_name: Optional[str] = None,
    ) -> bool:
        content = email_verification_email(
            f"{self.app_url}/verify-email?token={token}", name, schulamt_name
        )
        sent = await self.provider.send(to_email, content["subject"], content["html"])
        if not sent:
            logger.warning(f"Verification email could not be sent (token {token[:8]}...)")
        return sent


def get_auth_email_service() -> AuthEmailService:
    """FastAPI dependency."""
    return AuthEmailService()

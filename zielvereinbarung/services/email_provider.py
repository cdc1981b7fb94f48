"""
Email Provider (Resend)

Transactional email over the Resend HTTP API. Without an API key the
message is written to the log instead (development mode).
"""
import logging
from typing import Optional

import httpx

from zielvereinbarung.core.config import settings

logger = logging.getLogger(__name__)


class ResendProvider:
    """Resend email provider. send() reports success as a bool and never raises."""

    BASE_URL = "https://api.resend.com"

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.RESEND_API_KEY if api_key is None else api_key
        self.from_email = from_email or settings.FROM_EMAIL
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=30.0,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._http_client

    async def close(self):
        """Explicit cleanup method."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self.is_configured:
            logger.info(
                "=== EMAIL (Development Mode) ===\n"
                f"To: {to}\nFrom: {self.from_email}\nSubject: {subject}\nBody:\n{html}"
            )
            return True

        http = await self._get_http_client()
        try:
            resp = await http.post(
                "/emails",
                json={"from": self.from_email, "to": to, "subject": subject, "html": html},
            )
        except httpx.HTTPError as e:
            logger.error(f"Resend request failed: {type(e).__name__}: {e}")
            return False

        if resp.is_success:
            return True

        logger.error(f"Resend rejected email: {resp.status_code} - {resp.text[:200]}")
        return False


# Singleton provider instance
_email_provider: Optional[ResendProvider] = None


def get_email_provider() -> ResendProvider:
    """Get or create singleton email provider."""
    global _email_provider
    if _email_provider is None:
        _email_provider = ResendProvider()
    return _email_provider


async def close_email_provider() -> None:
    if _email_provider is not None:
        await _email_provider.close()

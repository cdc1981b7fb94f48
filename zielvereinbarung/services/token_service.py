"""
Token Service

Single-use, expiring secrets mailed to a user: password reset links (1h)
and email verification links (24h). Both stores share one contract.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Type

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.core.config import settings
from zielvereinbarung.core.security import generate_hex_token
from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.models.tokens import EmailVerificationToken, PasswordResetToken

logger = logging.getLogger(__name__)


class TokenStatus(str, enum.Enum):
    VALID = "valid"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    USED = "used"


@dataclass(frozen=True)
class TokenCheck:
    status: TokenStatus
    email: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status is TokenStatus.VALID


class TokenStore:
    """
    Storage-backed single-use token lifecycle.

    Subclasses set the model and the time-to-live.
    """

    model: Type = None
    ttl: timedelta = None

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def create(self, email: str) -> str:
        """
        Issue a new token for an email.

        Any earlier token for the same email stops working.
        """
        await self.db.execute(delete(self.model).where(self.model.email == email))

        now = self.clock()
        token = generate_hex_token()
        self.db.add(self.model(
            token=token,
            email=email,
            created_at=now,
            expires_at=now + self.ttl,
        ))
        await self.db.flush()
        return token

    async def _get(self, token: str):
        if not token:
            return None
        # consume() updates without touching loaded objects; always reload
        result = await self.db.execute(
            select(self.model)
            .where(self.model.token == token)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def check(self, token: str) -> TokenCheck:
        """Classify a token without changing it."""
        row = await self._get(token)
        if row is None:
            return TokenCheck(TokenStatus.NOT_FOUND)
        if row.expires_at <= self.clock():
            return TokenCheck(TokenStatus.EXPIRED, row.email)
        if row.used_at is not None:
            return TokenCheck(TokenStatus.USED, row.email)
        return TokenCheck(TokenStatus.VALID, row.email)

    async def verify(self, token: str) -> Optional[str]:
        """Email for a live (unused, unexpired) token, else None."""
        checked = await self.check(token)
        return checked.email if checked.is_valid else None

    async def consume(self, token: str) -> bool:
        """
        Mark a token used.

        Conditional update, so of two concurrent consumers exactly one wins.
        """
        if not token:
            return False
        result = await self.db.execute(
            update(self.model)
            .where(self.model.token == token, self.model.used_at.is_(None))
            .values(used_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) > 0

    async def delete(self, token: str) -> None:
        await self.db.execute(delete(self.model).where(self.model.token == token))

    async def cleanup_expired(self) -> int:
        """Delete expired and used tokens. Returns number removed."""
        now = self.clock()
        result = await self.db.execute(
            delete(self.model).where(
                or_(self.model.expires_at < now, self.model.used_at.is_not(None))
            )
        )
        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Removed {deleted} stale {self.model.__tablename__} rows")
        return deleted


class PasswordResetTokenStore(TokenStore):
    model = PasswordResetToken
    ttl = timedelta(minutes=settings.PASSWORD_RESET_TOKEN_MINUTES)


class EmailVerificationTokenStore(TokenStore):
    model = EmailVerificationToken
    ttl = timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_HOURS)

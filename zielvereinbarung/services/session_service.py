"""
Session Service

Server-side sessions behind an opaque cookie token.

Two independent clocks invalidate a session, whichever fires first:
- absolute lifetime (expires_at, never extended)
- inactivity timeout (last_activity_at, refreshed on every valid read)

Invalidity is detected lazily when the session is read; the invalid row is
deleted at that point. cleanup_expired_sessions() removes the rest.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from zielvereinbarung.core.config import settings
from zielvereinbarung.core.security import generate_session_token
from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.models.session import Session

logger = logging.getLogger(__name__)


class SessionService:
    """Create, resolve and revoke sessions."""

    SESSION_DURATION = timedelta(minutes=settings.SESSION_DURATION_MINUTES)
    ACTIVITY_TIMEOUT = timedelta(minutes=settings.SESSION_INACTIVITY_MINUTES)

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def create_session(
        self,
        user_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        """
        Create a new session for a user.

        Returns:
            The raw session token for the cookie
        """
        now = self.clock()
        token = generate_session_token()

        session = Session(
            token=token,
            user_id=user_id,
            expires_at=now + self.SESSION_DURATION,
            last_activity_at=now,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
            created_at=now,
        )
        self.db.add(session)
        await self.db.flush()

        return token

    async def get_session(self, token: Optional[str]) -> Optional[Session]:
        """
        Resolve a token to a live session, refreshing its activity time.

        Returns None for unknown tokens and for sessions that are expired,
        idle too long, or belong to a locked or inactive user. Those rows
        are deleted.
        """
        if not token:
            return None

        result = await self.db.execute(
            select(Session)
            .options(joinedload(Session.user))
            .where(Session.token == token)
        )
        session = result.scalar_one_or_none()

        if session is None:
            return None

        now = self.clock()
        reason = self._invalid_reason(session, now)
        if reason:
            logger.info(f"Session {session.id} for user {session.user_id} invalidated: {reason}")
            await self.db.delete(session)
            await self.db.flush()
            return None

        session.last_activity_at = now
        await self.db.flush()
        return session

    def _invalid_reason(self, session: Session, now: datetime) -> Optional[str]:
        if now >= session.expires_at:
            return "expired"

        user = session.user
        if user is None or not user.active:
            return "user_inactive"
        if user.locked_until is not None and user.locked_until > now:
            return "user_locked"

        if now - session.last_activity_at > self.ACTIVITY_TIMEOUT:
            return "idle_timeout"

        return None

    async def delete_session(self, token: Optional[str]) -> int:
        """Delete the session for a token. Unknown tokens are a no-op."""
        if not token:
            return 0
        result = await self.db.execute(delete(Session).where(Session.token == token))
        return result.rowcount or 0

    async def delete_all_user_sessions(self, user_id: int) -> int:
        """Revoke every session of a user (password reset, account changes)."""
        result = await self.db.execute(delete(Session).where(Session.user_id == user_id))
        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Deleted {deleted} sessions for user {user_id}")
        return deleted

    async def cleanup_expired_sessions(self) -> int:
        """
        Delete sessions past their absolute lifetime or idle too long.

        Should be run periodically via scheduler.

        Returns:
            Number of sessions removed
        """
        now = self.clock()
        result = await self.db.execute(
            delete(Session).where(
                or_(
                    Session.expires_at < now,
                    Session.last_activity_at < now - self.ACTIVITY_TIMEOUT,
                )
            )
        )
        return result.rowcount or 0

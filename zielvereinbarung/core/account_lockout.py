"""
Account Lockout policy

Brute force protection: too many failed logins lock the account for a while.
"""
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.core.config import settings
from zielvereinbarung.core.utils import utcnow


class AccountLockoutPolicy:
    """
    Manages account lockout for brute force protection.

    Changes are flushed, not committed; the caller owns the transaction.
    """

    # Max failed attempts before lockout
    MAX_FAILED_ATTEMPTS = settings.MAX_FAILED_LOGIN_ATTEMPTS

    # Lockout duration (minutes)
    LOCKOUT_DURATION_MINUTES = settings.LOCKOUT_DURATION_MINUTES

    @classmethod
    async def record_failed_attempt(
        cls,
        db: AsyncSession,
        user,
        clock: Callable[[], datetime] = utcnow,
    ) -> Dict:
        """
        Record a failed login attempt.

        Returns:
            Dict with lockout status:
            {
                "locked": bool,
                "locked_until": datetime or None,
                "attempts": int,
                "remaining_attempts": int
            }
        """
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        attempts = user.failed_login_attempts
        remaining = max(0, cls.MAX_FAILED_ATTEMPTS - attempts)

        result = {
            "locked": False,
            "locked_until": None,
            "attempts": attempts,
            "remaining_attempts": remaining,
        }

        if attempts >= cls.MAX_FAILED_ATTEMPTS:
            user.locked_until = clock() + timedelta(minutes=cls.LOCKOUT_DURATION_MINUTES)
            result["locked"] = True
            result["locked_until"] = user.locked_until

        await db.flush()
        return result

    @classmethod
    async def record_successful_login(
        cls,
        db: AsyncSession,
        user,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Reset failed attempts on successful login."""
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = clock()
        await db.flush()

    @classmethod
    def is_locked(cls, user, now: Optional[datetime] = None) -> bool:
        """Check if account is currently locked."""
        if not user.locked_until:
            return False
        now = now or utcnow()
        return user.locked_until > now


"""
User Service

Account lookups and credential changes shared by the auth routes, plus the
loader behind the personal data export.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from zielvereinbarung.core.security import get_password_hash
from zielvereinbarung.models.form import Form
from zielvereinbarung.models.user import User, UserRole

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def get_with_data(self, user_id: int) -> Optional[User]:
        """User with sessions and created forms (school, code, entries, comments)."""
        result = await self.db.execute(
            select(User)
            .options(
                selectinload(User.sessions),
                selectinload(User.forms).options(
                    joinedload(Form.school),
                    joinedload(Form.access_code),
                    selectinload(Form.entries),
                    selectinload(Form.comments),
                ),
            )
            .where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        schulamt_name: Optional[str] = None,
        role: UserRole = UserRole.ADMIN,
        active: bool = False,
        email_verified: bool = False,
    ) -> User:
        """
        Create an account. Self-registered accounts stay inactive and
        unverified until the verification link is used.
        """
        user = User(
            email=normalize_email(email),
            hashed_password=get_password_hash(password),
            name=name,
            schulamt_name=schulamt_name,
            role=role,
            active=active,
            email_verified=email_verified,
            failed_login_attempts=0,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info(f"Created user {user.id} (role={role.value}, active={active})")
        return user

    async def mark_email_verified(self, user: User) -> None:
        user.email_verified = True
        user.active = True
        await self.db.flush()

    async def set_password(self, user: User, password: str) -> None:
        """Replace the password and lift any lockout."""
        user.hashed_password = get_password_hash(password)
        user.failed_login_attempts = 0
        user.locked_until = None
        await self.db.flush()

"""
Single-use token models

Password reset and email verification tokens share one shape:
- One-time use (used_at tracks usage)
- Time-limited (expires_at)
- At most one live token per email
"""
from sqlalchemy import Column, Integer, String, Index

from zielvereinbarung.core.database import Base, UTCDateTime
from zielvereinbarung.core.utils import utcnow


class EmailTokenMixin:
    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=False)
    used_at = Column(UTCDateTime, nullable=True)

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, token='{self.token[:8]}...')>"


class PasswordResetToken(EmailTokenMixin, Base):
    __tablename__ = "password_reset_tokens"

    __table_args__ = (
        Index('ix_password_reset_tokens_expires', 'expires_at'),
    )


class EmailVerificationToken(EmailTokenMixin, Base):
    __tablename__ = "email_verification_tokens"

    __table_args__ = (
        Index('ix_email_verification_tokens_expires', 'expires_at'),
    )

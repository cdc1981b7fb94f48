"""
Session model for server-side sessions

The cookie carries only the opaque token; everything else lives here.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, Index
from sqlalchemy.orm import relationship

from zielvereinbarung.core.database import Base, UTCDateTime
from zielvereinbarung.core.utils import utcnow


class Session(Base):
    """
    A login session.

    Valid while now < expires_at and the last activity is at most the
    inactivity timeout ago. expires_at is fixed at creation.
    """
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    expires_at = Column(UTCDateTime, nullable=False)
    last_activity_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # Raw values; audit rows get the masked form
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index('ix_sessions_user_id', 'user_id'),
        Index('ix_sessions_expires_at', 'expires_at'),
    )

    def __repr__(self):
        return f"<Session(id={self.id}, user_id={self.user_id}, token='{self.token[:8]}...')>"

"""
User model

Schulamt staff accounts. Account lockout fields back brute force protection.
"""
import enum

from sqlalchemy import Column, Integer, String, Boolean, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship

from zielvereinbarung.core.database import Base, UTCDateTime
from zielvereinbarung.core.utils import utcnow


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


class User(Base):
    """
    User account model.

    Email is stored lower-case. New registrations start inactive and
    unverified until the verification link is used.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Core fields
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    schulamt_name = Column(String(255), nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.ADMIN)
    active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)

    # Account lockout
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(UTCDateTime, nullable=True)

    # Login tracking
    last_login_at = Column(UTCDateTime, nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")
    forms = relationship("Form", back_populates="created_by")

    __table_args__ = (
        Index('ix_users_role', 'role'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, role='{self.role}')>"

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN

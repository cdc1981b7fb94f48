"""
Audit Log model

Append-only record of security-relevant events. Rows are sanitized before
insert (masked email and IP, truncated user agent, redacted metadata) and
never updated. Retention: 90 days.
"""
import enum

from sqlalchemy import Column, BigInteger, Integer, String, Boolean, JSON, Index, Text, Enum as SQLEnum

from zielvereinbarung.core.database import Base, UTCDateTime
from zielvereinbarung.core.utils import utcnow


class AuditAction(str, enum.Enum):
    """Closed set of audit event kinds."""
    # Authentication
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"

    # Forms
    FORM_CREATED = "FORM_CREATED"
    FORM_CREATE_FAILED = "FORM_CREATE_FAILED"
    FORM_UPDATED = "FORM_UPDATED"
    FORM_APPROVED = "FORM_APPROVED"
    FORM_APPROVE_FAILED = "FORM_APPROVE_FAILED"
    FORM_RETURNED = "FORM_RETURNED"
    FORM_RETURN_FAILED = "FORM_RETURN_FAILED"
    FORM_EXPORTED = "FORM_EXPORTED"
    FORM_EXPORT_FAILED = "FORM_EXPORT_FAILED"
    FORM_DELETED = "FORM_DELETED"

    # Entries
    ENTRY_CREATED = "ENTRY_CREATED"
    ENTRY_CREATE_FAILED = "ENTRY_CREATE_FAILED"
    ENTRY_UPDATED = "ENTRY_UPDATED"
    ENTRY_UPDATE_FAILED = "ENTRY_UPDATE_FAILED"
    ENTRY_DELETED = "ENTRY_DELETED"
    ENTRY_DELETE_FAILED = "ENTRY_DELETE_FAILED"

    # Account management
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET_SUCCESS = "PASSWORD_RESET_SUCCESS"
    PASSWORD_RESET_FAILED = "PASSWORD_RESET_FAILED"

    # Schools
    ACCESS_CODE_USED = "ACCESS_CODE_USED"
    SCHOOL_SEARCH = "SCHOOL_SEARCH"
    SCHOOL_SEARCH_FAILED = "SCHOOL_SEARCH_FAILED"

    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    action = Column(SQLEnum(AuditAction, native_enum=False, length=50), nullable=False)

    # Actor
    user_id = Column(Integer, nullable=True)
    user_email = Column(String(255), nullable=True)  # masked

    # Target
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(100), nullable=True)

    # Context (masked/truncated)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(200), nullable=True)

    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)

    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('ix_audit_logs_user_created', 'user_id', 'created_at'),
        Index('ix_audit_logs_resource', 'resource_type', 'resource_id'),
        Index('ix_audit_logs_action', 'action'),
        Index('ix_audit_logs_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', success={self.success})>"

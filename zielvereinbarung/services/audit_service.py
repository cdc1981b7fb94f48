"""
Audit Service

Append-only security event log with PII redaction.

Audit logging fails open: a failed write is logged and swallowed so it can
never break the request that triggered it. Each write runs in a SAVEPOINT,
so a failed insert only rolls back the audit row.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.core.config import settings
from zielvereinbarung.core.pii import sanitize_audit_fields
from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.models.audit_log import AuditAction, AuditLog

logger = logging.getLogger(__name__)

# Structured audit stream alongside the database rows
audit_logger = logging.getLogger("audit")


class AuditService:
    """
    Service for audit logging, queries and retention.

    Usage:
        audit = AuditService(db)
        await audit.log(AuditAction.LOGIN, user_id=user.id, user_email=user.email)
    """

    RETENTION_DAYS = settings.AUDIT_LOG_RETENTION_DAYS

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def log(
        self,
        action: Union[AuditAction, str],
        user_id: Optional[int] = None,
        user_email: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Record an audit event. Never raises.

        Args:
            action: AuditAction (or its name)
            user_id: Acting user, if any
            user_email: Stored masked
            resource_type: e.g. "Form", "User"
            resource_id: ID of the affected resource
            ip_address: Stored masked
            user_agent: Stored truncated
            metadata: Extra context; secret keys are redacted
            success: Outcome of the audited operation
            error_message: Failure detail for unsuccessful operations

        Returns:
            The stored entry, or None if the write failed
        """
        try:
            action = AuditAction(action)
            sanitized = sanitize_audit_fields(
                user_email=user_email,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata=metadata,
            )

            entry = AuditLog(
                action=action,
                user_id=user_id,
                user_email=sanitized["user_email"],
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                ip_address=sanitized["ip_address"],
                user_agent=sanitized["user_agent"],
                event_metadata=sanitized["metadata"],
                success=success,
                error_message=error_message,
                created_at=self.clock(),
            )

            async with self.db.begin_nested():
                self.db.add(entry)
                await self.db.flush()

        except Exception:
            logger.exception(f"Failed to write audit event {action!r}")
            return None

        audit_logger.info(
            f"{entry.action.value} success={success} user={user_id} "
            f"resource={resource_type}:{entry.resource_id} ip={entry.ip_address}"
        )
        return entry

    async def get_user_audit_logs(
        self,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditLog]:
        """Audit trail of a user, newest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.user_id == user_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get_resource_audit_logs(
        self,
        resource_type: str,
        resource_id: Any,
        limit: int = 50,
    ) -> List[AuditLog]:
        """Audit trail of a resource, newest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == str(resource_id),
            )
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    def _retention_cutoff(self) -> datetime:
        return self.clock() - timedelta(days=self.RETENTION_DAYS)

    async def cleanup_old_audit_logs(self) -> int:
        """
        Delete audit rows past the retention window.

        Returns:
            Number of rows deleted
        """
        cutoff = self._retention_cutoff()
        result = await self.db.execute(
            delete(AuditLog).where(AuditLog.created_at < cutoff)
        )
        deleted = result.rowcount or 0
        logger.info(f"Audit cleanup: deleted {deleted} entries older than {self.RETENTION_DAYS} days")
        return deleted

    async def count_old_audit_logs(self) -> int:
        """Rows that the next cleanup would delete."""
        result = await self.db.execute(
            select(func.count(AuditLog.id)).where(AuditLog.created_at < self._retention_cutoff())
        )
        return result.scalar() or 0


def serialize_audit_log(entry: AuditLog) -> Dict[str, Any]:
    """Dict safe for API responses."""
    return {
        "id": entry.id,
        "action": entry.action.value,
        "userId": entry.user_id,
        "userEmail": entry.user_email,
        "resourceType": entry.resource_type,
        "resourceId": entry.resource_id,
        "ipAddress": entry.ip_address,
        "userAgent": entry.user_agent,
        "metadata": entry.event_metadata,
        "success": entry.success,
        "errorMessage": entry.error_message,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }

"""
Cron routes

Called daily by an external scheduler with "Authorization: Bearer <CRON_SECRET>".
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.api.deps import verify_cron_secret
from zielvereinbarung.core.database import get_db
from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.services.audit_service import AuditService
from zielvereinbarung.services.session_service import SessionService
from zielvereinbarung.services.token_service import (
    EmailVerificationTokenStore,
    PasswordResetTokenStore,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.get("/cleanup-audit-logs")
async def cleanup_audit_logs(db: AsyncSession = Depends(get_db)):
    """Delete audit rows past the retention window."""
    logger.info("Starting audit log cleanup")
    deleted = await AuditService(db).cleanup_old_audit_logs()
    return {
        "success": True,
        "deletedCount": deleted,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/cleanup-sessions")
async def cleanup_sessions(db: AsyncSession = Depends(get_db)):
    """Delete dead sessions and expired or used tokens."""
    sessions = await SessionService(db).cleanup_expired_sessions()
    reset_tokens = await PasswordResetTokenStore(db).cleanup_expired()
    verification_tokens = await EmailVerificationTokenStore(db).cleanup_expired()
    return {
        "success": True,
        "deletedSessions": sessions,
        "deletedPasswordResetTokens": reset_tokens,
        "deletedEmailVerificationTokens": verification_tokens,
        "timestamp": utcnow().isoformat(),
    }

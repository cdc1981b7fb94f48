"""
API dependencies
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.core.config import settings
from zielvereinbarung.core.cookies import get_session_token_from_cookie
from zielvereinbarung.core.database import get_db
from zielvereinbarung.core.exceptions import NotAuthenticatedError, RateLimitExceededError
from zielvereinbarung.core.rate_limit import RateLimitConfig, RateLimitStore
from zielvereinbarung.core.request_utils import RequestInfo, get_request_info
from zielvereinbarung.models.audit_log import AuditAction
from zielvereinbarung.models.session import Session
from zielvereinbarung.models.user import User, UserRole
from zielvereinbarung.services.audit_service import AuditService
from zielvereinbarung.services.session_service import SessionService

logger = logging.getLogger(__name__)


def get_rate_limit_store(request: Request) -> RateLimitStore:
    """The store created by create_app() for this application."""
    return request.app.state.rate_limit_store


def rate_limit(
    config: RateLimitConfig,
    route: Optional[str] = None,
    audit_action: Optional[AuditAction] = None,
    resource_type: Optional[str] = None,
):
    """
    Dependency factory enforcing a rate limit preset.

    Buckets are keyed by client IP and route. The route defaults to the
    matched path template, so /access-codes/{code} is one bucket no matter
    which code is tried.

    With audit_action set, a rejection is also recorded as a failed event
    of that kind before the 429 goes out.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit(RateLimits.LOGIN))])
    """

    async def _check(
        request: Request,
        info: RequestInfo = Depends(get_request_info),
        store: RateLimitStore = Depends(get_rate_limit_store),
        db: AsyncSession = Depends(get_db),
    ) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return

        matched = request.scope.get("route")
        route_key = route or getattr(matched, "path", None) or request.url.path
        result = store.check(info.client_ip, route_key, config)
        if not result.allowed:
            if audit_action is not None:
                await AuditService(db).log(
                    action=audit_action,
                    resource_type=resource_type,
                    ip_address=info.client_ip,
                    user_agent=info.user_agent,
                    metadata={"route": route_key},
                    success=False,
                    error_message="Rate limit exceeded",
                )
                await db.commit()
            raise RateLimitExceededError(result)

    return _check


async def get_current_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Session:
    """
    Resolve the session cookie.

    Sessions found invalid are deleted; that deletion is committed before the
    401 so it survives the request rollback.
    """
    token = get_session_token_from_cookie(request)
    session = await SessionService(db).get_session(token)

    if session is None:
        if token:
            await db.commit()
        raise NotAuthenticatedError()

    return session


async def get_current_user(session: Session = Depends(get_current_session)) -> User:
    """Get current authenticated user"""
    return session.user


STAFF_ROLES = (UserRole.ADMIN, UserRole.SUPERADMIN)


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    """Require a staff account (ADMIN or SUPERADMIN) for form management."""
    if user.role not in STAFF_ROLES:
        logger.warning(f"User {user.id} with role {user.role!r} denied staff access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )
    return user


async def get_current_superadmin(user: User = Depends(get_current_user)) -> User:
    """Require superadmin user"""
    if not user.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )
    return user


async def verify_cron_secret(info: RequestInfo = Depends(get_request_info)) -> None:
    """
    Bearer CRON_SECRET check for scheduler-triggered endpoints.

    500 when no secret is configured, 401 on a missing or wrong token.
    """
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET not configured; refusing cron request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron job not configured",
        )

    provided = info.bearer_token or ""
    if not hmac.compare_digest(provided.encode(), settings.CRON_SECRET.encode()):
        logger.warning(f"Rejected cron request from {info.client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

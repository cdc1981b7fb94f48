"""
User data export

Staff download everything stored about their own account: profile, forms
with entries and comments, sessions and their audit trail. Superadmins may
export any account.
"""
import logging
from collections import Counter

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.api.deps import get_current_user, rate_limit
from zielvereinbarung.api.routes.forms import comment_payload, form_payload
from zielvereinbarung.api.routes.entries import entry_payload
from zielvereinbarung.core.database import get_db
from zielvereinbarung.core.rate_limit import RateLimits
from zielvereinbarung.core.request_utils import RequestInfo, get_request_info
from zielvereinbarung.core.utils import isoformat_or_none, utcnow
from zielvereinbarung.models.audit_log import AuditAction
from zielvereinbarung.models.form import FormStatus
from zielvereinbarung.models.user import User
from zielvereinbarung.services.audit_service import AuditService, serialize_audit_log
from zielvereinbarung.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()

EXPORT_AUDIT_LOG_LIMIT = 1000


def build_user_export(user: User, audit_logs: list, requested_by: User) -> dict:
    statuses = Counter(form.status for form in user.forms)
    return {
        "exportDate": utcnow().isoformat(),
        "exportRequestedBy": requested_by.email,
        "user": {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "schulamtName": user.schulamt_name,
            "role": user.role.value,
            "active": user.active,
            "emailVerified": user.email_verified,
            "createdAt": isoformat_or_none(user.created_at),
            "updatedAt": isoformat_or_none(user.updated_at),
            "lastLoginAt": isoformat_or_none(user.last_login_at),
        },
        "forms": [
            {
                **form_payload(form),
                "entries": [entry_payload(e) for e in form.entries],
                "comments": [comment_payload(c) for c in form.comments],
            }
            for form in user.forms
        ],
        # Session tokens are credentials and never leave the server
        "sessions": [
            {
                "id": s.id,
                "createdAt": isoformat_or_none(s.created_at),
                "lastActivityAt": isoformat_or_none(s.last_activity_at),
                "ipAddress": s.ip_address,
                "userAgent": s.user_agent,
            }
            for s in user.sessions
        ],
        "auditLogs": [serialize_audit_log(entry) for entry in audit_logs],
        "statistics": {
            "totalForms": len(user.forms),
            "draftForms": statuses[FormStatus.DRAFT],
            "submittedForms": statuses[FormStatus.SUBMITTED],
            "approvedForms": statuses[FormStatus.APPROVED],
            "returnedForms": statuses[FormStatus.RETURNED],
            "totalEntries": sum(len(form.entries) for form in user.forms),
            "activeSessions": len(user.sessions),
            "auditLogCount": len(audit_logs),
        },
    }


@router.get(
    "/{user_id}/export",
    dependencies=[Depends(rate_limit(
        RateLimits.EXPORT,
        audit_action=AuditAction.UNAUTHORIZED_ACCESS,
        resource_type="User",
    ))],
)
async def export_user_data(
    user_id: int,
    info: RequestInfo = Depends(get_request_info),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Personal data export as a JSON download."""
    audit_service = AuditService(db)

    async def deny(status_code: int, detail: str, reason: str):
        await audit_service.log(
            action=AuditAction.UNAUTHORIZED_ACCESS,
            user_id=current_user.id,
            user_email=current_user.email,
            resource_type="User",
            resource_id=user_id,
            ip_address=info.client_ip,
            user_agent=info.user_agent,
            success=False,
            error_message=reason,
        )
        await db.commit()
        raise HTTPException(status_code=status_code, detail=detail)

    if current_user.id != user_id and not current_user.is_superadmin:
        await deny(
            status.HTTP_403_FORBIDDEN,
            "Forbidden: You can only export your own data",
            "Attempted to export another user's data",
        )

    user = await UserService(db).get_with_data(user_id)
    if user is None:
        await deny(status.HTTP_404_NOT_FOUND, "User not found", "User not found")

    audit_logs = await audit_service.get_user_audit_logs(user_id, limit=EXPORT_AUDIT_LOG_LIMIT)
    export = build_user_export(user, audit_logs, requested_by=current_user)

    await audit_service.log(
        action=AuditAction.USER_UPDATED,
        user_id=current_user.id,
        user_email=current_user.email,
        resource_type="User",
        resource_id=user_id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"action": "data_export", "formsCount": len(user.forms)},
    )

    filename = f"user-data-export-{user_id}-{utcnow().date().isoformat()}.json"
    return JSONResponse(
        content=export,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )

"""
Audit trail routes (SUPERADMIN only)
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.api.deps import get_current_superadmin
from zielvereinbarung.core.database import get_db
from zielvereinbarung.services.audit_service import AuditService, serialize_audit_log

router = APIRouter(dependencies=[Depends(get_current_superadmin)])


@router.get("/users/{user_id}")
async def user_audit_logs(
    user_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    entries = await AuditService(db).get_user_audit_logs(user_id, limit=limit, offset=offset)
    return {"logs": [serialize_audit_log(e) for e in entries]}


@router.get("/resources/{resource_type}/{resource_id}")
async def resource_audit_logs(
    resource_type: str,
    resource_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    entries = await AuditService(db).get_resource_audit_logs(resource_type, resource_id, limit=limit)
    return {"logs": [serialize_audit_log(e) for e in entries]}

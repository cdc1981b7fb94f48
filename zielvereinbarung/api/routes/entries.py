"""
Entry routes

Schools edit the entries of their form without an account. Every request
carries the form's access code in the X-Access-Code header; entries can only
change while the form is a draft or has been returned for revision.
"""
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.api.deps import rate_limit
from zielvereinbarung.core.database import get_db
from zielvereinbarung.core.rate_limit import RateLimits
from zielvereinbarung.core.request_utils import RequestInfo, get_request_info
from zielvereinbarung.core.utils import isoformat_or_none
from zielvereinbarung.models.audit_log import AuditAction
from zielvereinbarung.models.form import Entry
from zielvereinbarung.schemas.schemas import CreateEntryRequest, UpdateEntryRequest
from zielvereinbarung.services.access_code_service import AccessCodeService
from zielvereinbarung.services.audit_service import AuditService
from zielvereinbarung.services.entry_service import EntryService
from zielvereinbarung.services.form_service import FormService

logger = logging.getLogger(__name__)

router = APIRouter()

ACCESS_CODE_HEADER = "X-Access-Code"


def entry_payload(entry: Entry) -> dict:
    return {
        "id": entry.id,
        "formId": entry.form_id,
        "title": entry.title,
        "zielsetzungenText": entry.zielsetzungen_text,
        "zielbereich1": entry.zielbereich1,
        "zielbereich2": entry.zielbereich2,
        "zielbereich3": entry.zielbereich3,
        "datengrundlage": entry.datengrundlage,
        "datengrundlageAndere": entry.datengrundlage_andere,
        "zielgruppe": entry.zielgruppe,
        "zielgruppeSusDetail": entry.zielgruppe_sus_detail,
        "massnahmen": entry.massnahmen,
        "indikatoren": entry.indikatoren,
        "verantwortlich": entry.verantwortlich,
        "beteiligt": entry.beteiligt,
        "beginnSchuljahr": entry.beginn_schuljahr,
        "beginnHalbjahr": entry.beginn_halbjahr,
        "endeSchuljahr": entry.ende_schuljahr,
        "endeHalbjahr": entry.ende_halbjahr,
        "fortbildungJa": entry.fortbildung_ja,
        "fortbildungThemen": entry.fortbildung_themen,
        "fortbildungZielgruppe": entry.fortbildung_zielgruppe,
        "createdAt": isoformat_or_none(entry.created_at),
        "updatedAt": isoformat_or_none(entry.updated_at),
    }


async def _reject(
    db: AsyncSession,
    info: RequestInfo,
    action: AuditAction,
    status_code: int,
    detail: str,
    reason: str,
    resource_id: Optional[int] = None,
) -> NoReturn:
    await AuditService(db).log(
        action=action,
        resource_type="Entry",
        resource_id=resource_id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        success=False,
        error_message=reason,
    )
    await db.commit()
    raise HTTPException(status_code=status_code, detail=detail)


async def _entry_for_change(
    db: AsyncSession,
    info: RequestInfo,
    entry_id: int,
    access_code: Optional[str],
    failed_action: AuditAction,
    verb: str,
) -> Entry:
    """Entry the access code may change, or an audited 401/403/404."""
    if not access_code:
        await _reject(db, info, failed_action, status.HTTP_401_UNAUTHORIZED,
                      "Access code required", "Missing access code", entry_id)

    entry = await EntryService(db).get(entry_id)
    if entry is None:
        await _reject(db, info, failed_action, status.HTTP_404_NOT_FOUND,
                      "Entry not found", "Entry not found", entry_id)

    if not await AccessCodeService(db).grants_access(access_code, entry.form_id):
        await _reject(db, info, failed_action, status.HTTP_403_FORBIDDEN,
                      "Invalid access code for this entry", "Invalid access code", entry_id)

    if not entry.form.is_editable:
        await _reject(db, info, failed_action, status.HTTP_403_FORBIDDEN,
                      f"Cannot {verb} entries in submitted or approved forms",
                      "Form not editable", entry_id)

    return entry


@router.post(
    "/entries",
    dependencies=[Depends(rate_limit(
        RateLimits.ENTRY_SAVE,
        audit_action=AuditAction.ENTRY_CREATE_FAILED,
        resource_type="Entry",
    ))],
)
async def create_entry(
    data: CreateEntryRequest,
    access_code: Optional[str] = Header(default=None, alias=ACCESS_CODE_HEADER),
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """Add an entry to the form the access code opens."""
    action = AuditAction.ENTRY_CREATE_FAILED
    if not access_code:
        await _reject(db, info, action, status.HTTP_401_UNAUTHORIZED,
                      "Access code required", "Missing access code")

    form = await FormService(db).get(data.form_id)
    if form is None:
        await _reject(db, info, action, status.HTTP_404_NOT_FOUND, "Form not found", "Form not found")

    if not await AccessCodeService(db).grants_access(access_code, form.id):
        await _reject(db, info, action, status.HTTP_403_FORBIDDEN,
                      "Invalid access code for this form", "Invalid access code")

    if not form.is_editable:
        await _reject(db, info, action, status.HTTP_403_FORBIDDEN,
                      "Cannot add entries to submitted or approved forms", "Form not editable")

    entry = await EntryService(db).create(form, data.model_dump(exclude={"form_id"}))

    await AuditService(db).log(
        action=AuditAction.ENTRY_CREATED,
        resource_type="Entry",
        resource_id=entry.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"formId": form.id, "title": entry.title},
    )

    return {"entry": entry_payload(entry), "success": True}


@router.patch(
    "/entries/{entry_id}",
    dependencies=[Depends(rate_limit(
        RateLimits.ENTRY_SAVE,
        audit_action=AuditAction.ENTRY_UPDATE_FAILED,
        resource_type="Entry",
    ))],
)
async def update_entry(
    entry_id: int,
    data: UpdateEntryRequest,
    access_code: Optional[str] = Header(default=None, alias=ACCESS_CODE_HEADER),
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """Autosave: only the fields present in the body change."""
    entry = await _entry_for_change(db, info, entry_id, access_code, AuditAction.ENTRY_UPDATE_FAILED, "modify")

    await EntryService(db).update(entry, data.model_dump(exclude_unset=True))

    await AuditService(db).log(
        action=AuditAction.ENTRY_UPDATED,
        resource_type="Entry",
        resource_id=entry.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"formId": entry.form_id, "title": entry.title},
    )

    return {"entry": entry_payload(entry), "success": True}


@router.delete(
    "/entries/{entry_id}",
    dependencies=[Depends(rate_limit(
        RateLimits.ENTRY_SAVE,
        audit_action=AuditAction.ENTRY_DELETE_FAILED,
        resource_type="Entry",
    ))],
)
async def delete_entry(
    entry_id: int,
    access_code: Optional[str] = Header(default=None, alias=ACCESS_CODE_HEADER),
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    entry = await _entry_for_change(db, info, entry_id, access_code, AuditAction.ENTRY_DELETE_FAILED, "delete")
    form_id, title = entry.form_id, entry.title

    await EntryService(db).delete(entry)

    await AuditService(db).log(
        action=AuditAction.ENTRY_DELETED,
        resource_type="Entry",
        resource_id=entry_id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"formId": form_id, "title": title},
    )

    return {"success": True}

"""
Form routes

Staff create a form for a school; the response carries the access code the
school uses to open it. Schools redeem codes and submit without an account.
Only the staff member who created a form may review, export or delete it.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.api.deps import get_current_admin, rate_limit
from zielvereinbarung.api.routes.entries import entry_payload
from zielvereinbarung.core.database import get_db
from zielvereinbarung.core.exceptions import AccessCodeCollisionError, FormStateError
from zielvereinbarung.core.rate_limit import RateLimits
from zielvereinbarung.core.request_utils import RequestInfo, get_request_info
from zielvereinbarung.core.utils import isoformat_or_none
from zielvereinbarung.models.audit_log import AuditAction
from zielvereinbarung.models.form import Comment, Form
from zielvereinbarung.models.user import User
from zielvereinbarung.schemas.schemas import CreateFormRequest, ReturnFormRequest
from zielvereinbarung.services.access_code_service import AccessCodeService, SchoolData
from zielvereinbarung.services.audit_service import AuditService
from zielvereinbarung.services.form_service import FormService

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_ACCESS_CODE = "Ungültiger Zugangscode"


def form_payload(form: Form, code: Optional[str] = None) -> dict:
    return {
        "id": form.id,
        "title": form.title,
        "status": form.status.value,
        "date": form.date.isoformat(),
        "submittedAt": isoformat_or_none(form.submitted_at),
        "approvedAt": isoformat_or_none(form.approved_at),
        "accessCode": code or form.access_code.code,
        "school": {
            "id": form.school.id,
            "externalId": form.school.external_id,
            "schoolNumber": form.school.school_number,
            "name": form.school.name,
            "city": form.school.city,
        },
    }


def comment_payload(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "authorRole": comment.author_role,
        "authorName": comment.author_name,
        "message": comment.message,
        "createdAt": isoformat_or_none(comment.created_at),
    }


def form_detail_payload(form: Form) -> dict:
    """Form with entries and comments; the form must be loaded with content."""
    return {
        **form_payload(form),
        "entries": [entry_payload(e) for e in form.entries],
        "comments": [comment_payload(c) for c in form.comments],
    }


async def get_owned_form(
    db: AsyncSession,
    form_id: int,
    user: User,
    info: RequestInfo,
    failed_action: AuditAction,
    verb: str,
    with_content: bool = False,
) -> Form:
    """
    Load a form the current user created.

    404 for unknown forms, 403 for forms of other staff members. Both are
    audited as failed_action and committed before the error.
    """
    form = await FormService(db).get(form_id, with_content=with_content)

    if form is None or form.created_by_id != user.id:
        not_found = form is None
        await AuditService(db).log(
            action=failed_action,
            user_id=user.id,
            user_email=user.email,
            resource_type="Form",
            resource_id=form_id,
            ip_address=info.client_ip,
            user_agent=info.user_agent,
            success=False,
            error_message="Form not found" if not_found else "Forbidden: not form creator",
        )
        await db.commit()
        if not_found:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Forbidden: You can only {verb} forms you created",
        )

    return form


@router.post("/forms", dependencies=[Depends(rate_limit(RateLimits.FORM_CREATE))])
async def create_form(
    data: CreateFormRequest,
    info: RequestInfo = Depends(get_request_info),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a form with a freshly issued access code."""
    audit_service = AuditService(db)
    school = SchoolData(
        external_id=data.school.external_id,
        name=data.school.name,
        school_number=data.school.school_number,
        address=data.school.address,
        city=data.school.city,
        state=data.school.state,
    )

    try:
        form, code = await AccessCodeService(db).create_form(
            school,
            created_by_id=current_user.id,
            title=data.title,
        )
    except AccessCodeCollisionError:
        await audit_service.log(
            action=AuditAction.FORM_CREATE_FAILED,
            user_id=current_user.id,
            user_email=current_user.email,
            resource_type="Form",
            ip_address=info.client_ip,
            user_agent=info.user_agent,
            success=False,
            error_message="Access code collision",
        )
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Zugangscode konnte nicht vergeben werden. Bitte erneut versuchen.",
        )

    await audit_service.log(
        action=AuditAction.FORM_CREATED,
        user_id=current_user.id,
        user_email=current_user.email,
        resource_type="Form",
        resource_id=form.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={
            "schoolId": form.school.id,
            "schoolName": form.school.name,
            "accessCode": code,
        },
    )

    return {"form": form_payload(form, code)}


@router.get("/access-codes/{code}", dependencies=[Depends(rate_limit(RateLimits.ACCESS_CODE))])
async def redeem_access_code(
    code: str,
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """
    Open a form by access code.

    Malformed and unknown codes get the same 404.
    """
    form = await AccessCodeService(db).redeem(code, with_content=True)
    if form is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=INVALID_ACCESS_CODE)

    await AuditService(db).log(
        action=AuditAction.ACCESS_CODE_USED,
        resource_type="Form",
        resource_id=form.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"schoolId": form.school_id},
    )

    return {"form": form_detail_payload(form)}


@router.post("/access-codes/{code}/submit", dependencies=[Depends(rate_limit(RateLimits.ACCESS_CODE))])
async def submit_form(
    code: str,
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """Hand a draft or returned form in for review."""
    form = await AccessCodeService(db).redeem(code, with_content=True)
    if form is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=INVALID_ACCESS_CODE)

    try:
        await FormService(db).submit(form)
    except FormStateError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Das Formular wurde bereits eingereicht.",
        )

    await AuditService(db).log(
        action=AuditAction.FORM_UPDATED,
        resource_type="Form",
        resource_id=form.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"status": form.status.value, "schoolId": form.school_id},
    )

    return {"form": form_detail_payload(form)}


@router.post(
    "/forms/{form_id}/approve",
    dependencies=[Depends(rate_limit(
        RateLimits.API_GENERAL,
        audit_action=AuditAction.FORM_APPROVE_FAILED,
        resource_type="Form",
    ))],
)
async def approve_form(
    form_id: int,
    info: RequestInfo = Depends(get_request_info),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    form = await get_owned_form(db, form_id, current_user, info, AuditAction.FORM_APPROVE_FAILED, "approve")
    audit_service = AuditService(db)

    try:
        await FormService(db).approve(form)
    except FormStateError as e:
        await audit_service.log(
            action=AuditAction.FORM_APPROVE_FAILED,
            user_id=current_user.id,
            user_email=current_user.email,
            resource_type="Form",
            resource_id=form_id,
            ip_address=info.client_ip,
            user_agent=info.user_agent,
            success=False,
            error_message=str(e),
        )
        await db.commit()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Form is not awaiting review")

    await audit_service.log(
        action=AuditAction.FORM_APPROVED,
        user_id=current_user.id,
        user_email=current_user.email,
        resource_type="Form",
        resource_id=form.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"schoolId": form.school_id, "schoolName": form.school.name},
    )

    return {"form": form_payload(form)}


@router.post(
    "/forms/{form_id}/return",
    dependencies=[Depends(rate_limit(
        RateLimits.API_GENERAL,
        audit_action=AuditAction.FORM_RETURN_FAILED,
        resource_type="Form",
    ))],
)
async def return_form(
    form_id: int,
    data: ReturnFormRequest,
    info: RequestInfo = Depends(get_request_info),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Send a submitted form back to the school with a comment."""
    form = await get_owned_form(
        db, form_id, current_user, info, AuditAction.FORM_RETURN_FAILED, "return", with_content=True,
    )
    audit_service = AuditService(db)

    try:
        await FormService(db).return_for_revision(
            form,
            data.message,
            author_name=current_user.schulamt_name or "Schulamt",
        )
    except FormStateError as e:
        await audit_service.log(
            action=AuditAction.FORM_RETURN_FAILED,
            user_id=current_user.id,
            user_email=current_user.email,
            resource_type="Form",
            resource_id=form_id,
            ip_address=info.client_ip,
            user_agent=info.user_agent,
            success=False,
            error_message=str(e),
        )
        await db.commit()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Form is not awaiting review")

    await audit_service.log(
        action=AuditAction.FORM_RETURNED,
        user_id=current_user.id,
        user_email=current_user.email,
        resource_type="Form",
        resource_id=form.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={
            "schoolId": form.school_id,
            "schoolName": form.school.name,
            "commentLength": len(data.message),
        },
    )

    return {"form": form_detail_payload(form)}


@router.get(
    "/forms/{form_id}/export",
    dependencies=[Depends(rate_limit(
        RateLimits.EXPORT,
        audit_action=AuditAction.FORM_EXPORT_FAILED,
        resource_type="Form",
    ))],
)
async def export_form(
    form_id: int,
    info: RequestInfo = Depends(get_request_info),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Full form as JSON: school, status dates, entries and comments."""
    form = await get_owned_form(
        db, form_id, current_user, info, AuditAction.FORM_EXPORT_FAILED, "export", with_content=True,
    )

    await AuditService(db).log(
        action=AuditAction.FORM_EXPORTED,
        user_id=current_user.id,
        user_email=current_user.email,
        resource_type="Form",
        resource_id=form.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={
            "format": "json",
            "schoolId": form.school_id,
            "schoolName": form.school.name,
            "entriesCount": len(form.entries),
        },
    )

    return {"form": form_detail_payload(form)}


@router.delete("/forms/{form_id}", dependencies=[Depends(rate_limit(RateLimits.API_GENERAL))])
async def delete_form(
    form_id: int,
    info: RequestInfo = Depends(get_request_info),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a form together with its access code, entries and comments."""
    form = await get_owned_form(
        db, form_id, current_user, info, AuditAction.UNAUTHORIZED_ACCESS, "delete", with_content=True,
    )
    school_id, school_name = form.school_id, form.school.name

    await FormService(db).delete(form)

    await AuditService(db).log(
        action=AuditAction.FORM_DELETED,
        user_id=current_user.id,
        user_email=current_user.email,
        resource_type="Form",
        resource_id=form_id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"schoolId": school_id, "schoolName": school_name},
    )

    return {"success": True}

"""
Authentication routes

- Login with account lockout, server-side session cookie
- Logout (always succeeds, clears cookies)
- Registration with email verification
- Password reset via single-use token

Every route commits before raising an HTTP error so audit rows and lockout
counters survive the request rollback.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from zielvereinbarung.api.deps import get_current_user, rate_limit
from zielvereinbarung.core.account_lockout import AccountLockoutPolicy
from zielvereinbarung.core.cookies import (
    clear_session_cookies,
    get_session_token_from_cookie,
    set_session_cookie,
)
from zielvereinbarung.core.database import get_db
from zielvereinbarung.core.password_policy import PasswordPolicy
from zielvereinbarung.core.rate_limit import RateLimits
from zielvereinbarung.core.request_utils import RequestInfo, get_request_info
from zielvereinbarung.core.security import verify_password
from zielvereinbarung.models.audit_log import AuditAction
from zielvereinbarung.models.user import User
from zielvereinbarung.schemas.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from zielvereinbarung.services.audit_service import AuditService
from zielvereinbarung.services.auth_email_service import AuthEmailService, get_auth_email_service
from zielvereinbarung.services.session_service import SessionService
from zielvereinbarung.services.token_service import (
    EmailVerificationTokenStore,
    PasswordResetTokenStore,
    TokenStatus,
)
from zielvereinbarung.services.user_service import UserService, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Ungültige Anmeldedaten"
FORGOT_PASSWORD_MESSAGE = "Falls ein Konto mit dieser E-Mail existiert, wurde ein Reset-Link gesendet."


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "schulamtName": user.schulamt_name,
        "role": user.role.value,
    }


@router.post("/login", dependencies=[Depends(rate_limit(RateLimits.LOGIN))])
async def login(
    credentials: LoginRequest,
    response: Response,
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """
    Login and receive a session cookie.

    All failures answer with the same 401 so callers cannot tell unknown
    accounts, wrong passwords, locked and inactive accounts apart.
    """
    client_ip = info.client_ip
    audit_service = AuditService(db)
    email = normalize_email(credentials.email)

    user = await UserService(db).get_by_email(email)

    async def fail(reason: str, **metadata):
        await audit_service.log(
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id if user else None,
            user_email=email,
            ip_address=client_ip,
            user_agent=info.user_agent,
            metadata={"reason": reason, **metadata},
            success=False,
            error_message=reason,
        )
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CREDENTIALS,
        )

    if user is None:
        await fail("user_not_found")

    if AccountLockoutPolicy.is_locked(user):
        await fail("account_locked")

    if not verify_password(credentials.password, user.hashed_password):
        lockout = await AccountLockoutPolicy.record_failed_attempt(db, user)
        if lockout["locked"]:
            await audit_service.log(
                action=AuditAction.ACCOUNT_LOCKED,
                user_id=user.id,
                user_email=email,
                ip_address=client_ip,
                user_agent=info.user_agent,
                metadata={"locked_until": lockout["locked_until"].isoformat()},
            )
        await fail("invalid_password", attempts=lockout["attempts"], locked=lockout["locked"])

    if not user.active:
        await fail("account_inactive")

    await AccountLockoutPolicy.record_successful_login(db, user)
    token = await SessionService(db).create_session(
        user.id,
        ip_address=client_ip,
        user_agent=info.user_agent,
    )
    await audit_service.log(
        action=AuditAction.LOGIN,
        user_id=user.id,
        user_email=user.email,
        ip_address=client_ip,
        user_agent=info.user_agent,
    )

    set_session_cookie(response, token)
    return {"success": True, "user": user_payload(user)}


@router.post("/logout")
async def logout(
    request: Request,
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """Delete the session and clear cookies. Always 200."""
    token = get_session_token_from_cookie(request)
    sessions = SessionService(db)

    session = await sessions.get_session(token)
    if session is not None:
        await AuditService(db).log(
            action=AuditAction.LOGOUT,
            user_id=session.user_id,
            user_email=session.user.email,
            ip_address=info.client_ip,
            user_agent=info.user_agent,
        )
    await sessions.delete_session(token)

    response = JSONResponse({"success": True})
    clear_session_cookies(response)
    return response


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {"user": user_payload(user)}


@router.post("/register", dependencies=[Depends(rate_limit(RateLimits.REGISTER))])
async def register(
    data: RegisterRequest,
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
    mailer: AuthEmailService = Depends(get_auth_email_service),
):
    """Create an inactive account and mail a verification link."""
    valid, errors = PasswordPolicy.validate(data.password)
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Ungültige Eingabe",
                "details": [{"field": "password", "message": m} for m in errors],
            },
        )

    users = UserService(db)
    if await users.get_by_email(data.email) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ein Benutzer mit dieser E-Mail-Adresse existiert bereits.",
        )

    user = await users.create_user(
        email=data.email,
        password=data.password,
        name=data.name,
        schulamt_name=data.schulamt_name,
    )
    token = await EmailVerificationTokenStore(db).create(user.email)

    await AuditService(db).log(
        action=AuditAction.USER_CREATED,
        user_id=user.id,
        user_email=user.email,
        resource_type="User",
        resource_id=user.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"schulamtName": user.schulamt_name, "emailVerified": False},
    )
    await db.commit()

    await mailer.send_verification_email(user.email, token, user.name, user.schulamt_name)

    return {
        "success": True,
        "message": "Registrierung erfolgreich. Bitte bestätigen Sie Ihre E-Mail-Adresse.",
    }


@router.get("/verify-email")
async def verify_email(
    token: str = Query(default=""),
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """Confirm an email address and activate the account."""
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token ist erforderlich")

    tokens = EmailVerificationTokenStore(db)
    checked = await tokens.check(token)

    if checked.status is TokenStatus.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ungültiger Token")
    if checked.status is TokenStatus.EXPIRED:
        await tokens.delete(token)
        await db.commit()
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token abgelaufen")
    if checked.status is TokenStatus.USED:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token bereits verwendet")

    users = UserService(db)
    user = await users.get_by_email(checked.email)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benutzer nicht gefunden")

    if not await tokens.consume(token):
        # Lost the race against a concurrent verification
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token bereits verwendet")

    await users.mark_email_verified(user)
    await AuditService(db).log(
        action=AuditAction.USER_UPDATED,
        user_id=user.id,
        user_email=user.email,
        resource_type="User",
        resource_id=user.id,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"emailVerified": True, "accountActivated": True},
    )

    return {"success": True, "message": "E-Mail erfolgreich bestätigt"}


@router.post("/forgot-password", dependencies=[Depends(rate_limit(RateLimits.FORGOT_PASSWORD))])
async def forgot_password(
    data: ForgotPasswordRequest,
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
    mailer: AuthEmailService = Depends(get_auth_email_service),
):
    """
    Mail a reset link to active accounts.

    The answer is identical whether or not the account exists.
    """
    user = await UserService(db).get_by_email(data.email)

    if user is not None and user.active:
        token = await PasswordResetTokenStore(db).create(user.email)
        await AuditService(db).log(
            action=AuditAction.PASSWORD_RESET_REQUESTED,
            user_id=user.id,
            user_email=user.email,
            ip_address=info.client_ip,
            user_agent=info.user_agent,
        )
        await db.commit()
        await mailer.send_password_reset_email(user.email, token, user.name)

    return {"success": True, "message": FORGOT_PASSWORD_MESSAGE}


@router.get("/validate-reset-token")
async def validate_reset_token(
    token: str = Query(default=""),
    db: AsyncSession = Depends(get_db),
):
    """Lets the reset page tell missing, expired and used links apart."""
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token is required")

    tokens = PasswordResetTokenStore(db)
    checked = await tokens.check(token)

    if checked.status is TokenStatus.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid token")
    if checked.status is TokenStatus.EXPIRED:
        await tokens.delete(token)
        await db.commit()
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token expired")
    if checked.status is TokenStatus.USED:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token already used")

    return {"valid": True}


@router.post("/reset-password", dependencies=[Depends(rate_limit(RateLimits.RESET_PASSWORD))])
async def reset_password(
    data: ResetPasswordRequest,
    info: RequestInfo = Depends(get_request_info),
    db: AsyncSession = Depends(get_db),
):
    """Set a new password with a reset token and end all sessions of the account."""
    if not data.token or not data.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token und Passwort sind erforderlich.",
        )

    valid, errors = PasswordPolicy.validate(data.password)
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Ungültige Eingabe",
                "details": [{"field": "password", "message": m} for m in errors],
            },
        )

    audit_service = AuditService(db)
    tokens = PasswordResetTokenStore(db)
    checked = await tokens.check(data.token)

    async def fail(status_code: int, message: str, reason: str):
        await audit_service.log(
            action=AuditAction.PASSWORD_RESET_FAILED,
            user_email=checked.email,
            ip_address=info.client_ip,
            user_agent=info.user_agent,
            success=False,
            error_message=reason,
        )
        await db.commit()
        raise HTTPException(status_code=status_code, detail=message)

    if checked.status is TokenStatus.NOT_FOUND:
        await fail(status.HTTP_400_BAD_REQUEST, "Ungültiger oder abgelaufener Token.", "Invalid token")
    if checked.status is TokenStatus.EXPIRED:
        await tokens.delete(data.token)
        await fail(
            status.HTTP_400_BAD_REQUEST,
            "Der Token ist abgelaufen. Bitte fordern Sie einen neuen an.",
            "Token expired",
        )
    if checked.status is TokenStatus.USED:
        await fail(status.HTTP_400_BAD_REQUEST, "Dieser Token wurde bereits verwendet.", "Token already used")

    users = UserService(db)
    user = await users.get_by_email(checked.email)
    if user is None or not user.active:
        await fail(status.HTTP_404_NOT_FOUND, "Benutzer nicht gefunden.", "User not found or inactive")

    # Consume first: of two concurrent resets only one may change the password
    if not await tokens.consume(data.token):
        await fail(status.HTTP_400_BAD_REQUEST, "Dieser Token wurde bereits verwendet.", "Token already used")

    await users.set_password(user, data.password)
    revoked = await SessionService(db).delete_all_user_sessions(user.id)

    await audit_service.log(
        action=AuditAction.PASSWORD_RESET_SUCCESS,
        user_id=user.id,
        user_email=user.email,
        ip_address=info.client_ip,
        user_agent=info.user_agent,
        metadata={"sessionsRevoked": revoked},
    )

    return {"success": True, "message": "Passwort erfolgreich geändert."}

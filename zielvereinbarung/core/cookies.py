"""
Cookie Management Utilities

Centralized handling of the opaque session cookie.
"""
from typing import Optional

from fastapi import Response
from starlette.requests import Request

from zielvereinbarung.core.config import settings


# Cookie names
SESSION_COOKIE = settings.SESSION_COOKIE_NAME

# Cookies written by earlier releases; cleared on logout and failed auth
LEGACY_COOKIES = ("auth-token", "user-id")


def set_session_cookie(response: Response, token: str) -> None:
    """HttpOnly session cookie, lifetime matching the absolute session duration."""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.COOKIE_SAMESITE,
        max_age=settings.SESSION_DURATION_MINUTES * 60,
        path="/",
    )


def clear_session_cookies(response: Response) -> None:
    """Remove the session cookie and any legacy auth cookies."""
    for name in (SESSION_COOKIE, *LEGACY_COOKIES):
        response.delete_cookie(
            key=name,
            path="/",
            secure=settings.cookie_secure,
            httponly=True,
            samesite=settings.COOKIE_SAMESITE,
        )


def get_session_token_from_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(SESSION_COOKIE)

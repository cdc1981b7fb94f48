"""
End-to-end tests for the authentication API.
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.models import AuditAction, AuditLog, Session, User
from zielvereinbarung.services.auth_email_service import get_auth_email_service

NEW_PASSWORD = "Neues-Passwort-2025!"


class RecordingMailer:
    """Captures outgoing auth mails instead of sending them."""

    def __init__(self):
        self.sent = []

    async def send_password_reset_email(self, to_email, token, name=None):
        self.sent.append(("reset", to_email, token))
        return True

    async def send_verification_email(self, to_email, token, name=None, schulamt_name=None):
        self.sent.append(("verify", to_email, token))
        return True

    def last_token(self, kind: str) -> str:
        return [t for k, _, t in self.sent if k == kind][-1]


@pytest.fixture
def mailer(app):
    recording = RecordingMailer()
    app.dependency_overrides[get_auth_email_service] = lambda: recording
    return recording


async def _audit_actions(session_factory):
    async with session_factory() as s:
        result = await s.execute(select(AuditLog.action).order_by(AuditLog.id))
        return [row[0] for row in result.all()]


class TestLogin:
    """Login, /me and session cookie"""

    async def test_login_sets_session_cookie(self, client, create_user, login):
        await create_user()

        response = await login()

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"]["email"] == "leitung@schulamt-koeln.de"
        assert body["user"]["role"] == "ADMIN"
        assert "session-token" in response.cookies
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    async def test_me_with_session(self, client, create_user, login):
        await create_user()
        await login()

        response = await client.get("/api/auth/me")

        assert response.status_code == 200
        assert response.json()["user"]["schulamtName"] == "Schulamt Köln"

    async def test_me_without_session(self, client):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    async def test_email_is_case_insensitive(self, client, create_user, login):
        await create_user()
        response = await login(email="Leitung@Schulamt-Koeln.de")
        assert response.status_code == 200

    async def test_failures_are_indistinguishable(self, client, create_user, login):
        await create_user()
        await create_user(email="inaktiv@schulamt-koeln.de", active=False)

        wrong_password = await login(password="Falsches-Passwort-1")
        unknown_user = await login(email="niemand@schulamt-koeln.de")
        inactive = await login(email="inaktiv@schulamt-koeln.de")

        for response in (wrong_password, unknown_user, inactive):
            assert response.status_code == 401
            assert response.json() == {"error": "Ungültige Anmeldedaten"}

    async def test_overlong_password_is_a_plain_failure(self, client, create_user, login):
        await create_user()
        response = await login(password="Aa1!" + "x" * 76)
        assert response.status_code == 401

    async def test_failed_login_is_audited(self, client, create_user, login, session_factory):
        await create_user()
        await login(password="Falsches-Passwort-1")

        async with session_factory() as s:
            entry = (await s.execute(select(AuditLog))).scalar_one()

        assert entry.action is AuditAction.LOGIN_FAILED
        assert entry.success is False
        assert entry.user_email == "l***g@schulamt-koeln.de"
        assert entry.event_metadata["reason"] == "invalid_password"


class TestInactivity:
    async def test_idle_session_rejected_after_31_minutes(self, client, create_user, login, session_factory):
        await create_user()
        await login()
        assert (await client.get("/api/auth/me")).status_code == 200

        async with session_factory() as s:
            await s.execute(update(Session).values(last_activity_at=utcnow() - timedelta(minutes=31)))
            await s.commit()

        response = await client.get("/api/auth/me")

        assert response.status_code == 401
        async with session_factory() as s:
            assert (await s.execute(select(func.count(Session.id)))).scalar() == 0

    async def test_session_past_absolute_expiry(self, client, create_user, login, session_factory):
        await create_user()
        await login()

        async with session_factory() as s:
            await s.execute(update(Session).values(expires_at=utcnow() - timedelta(seconds=1)))
            await s.commit()

        assert (await client.get("/api/auth/me")).status_code == 401


class TestLockout:
    async def test_five_failures_lock_account(self, client, create_user, login, session_factory):
        await create_user()

        # Separate client addresses so the login rate limit stays out of the way
        for i in range(5):
            response = await login(password="Falsches-Passwort-1", headers={"X-Forwarded-For": f"203.0.113.{i}"})
            assert response.status_code == 401

        response = await login(headers={"X-Forwarded-For": "203.0.113.99"})

        assert response.status_code == 401
        async with session_factory() as s:
            user = (await s.execute(select(User))).scalar_one()
            assert user.failed_login_attempts == 5
            assert user.locked_until > utcnow()
        assert AuditAction.ACCOUNT_LOCKED in await _audit_actions(session_factory)

    async def test_success_resets_counter(self, client, create_user, login, session_factory):
        await create_user()
        await login(password="Falsches-Passwort-1")
        await login(password="Falsches-Passwort-1")

        assert (await login()).status_code == 200

        async with session_factory() as s:
            user = (await s.execute(select(User))).scalar_one()
            assert user.failed_login_attempts == 0
            assert user.last_login_at is not None


class TestLogout:
    async def test_logout_ends_session(self, client, create_user, login, session_factory):
        await create_user()
        await login()

        response = await client.post("/api/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert (await client.get("/api/auth/me")).status_code == 401
        async with session_factory() as s:
            assert (await s.execute(select(func.count(Session.id)))).scalar() == 0
        assert AuditAction.LOGOUT in await _audit_actions(session_factory)

    async def test_logout_without_session(self, client):
        response = await client.post("/api/auth/logout")
        assert response.status_code == 200


class TestRateLimit:
    async def test_sixth_login_in_window_is_rejected(self, client, login):
        for _ in range(5):
            assert (await login(email="niemand@schulamt-koeln.de")).status_code == 401

        response = await login(email="niemand@schulamt-koeln.de")

        assert response.status_code == 429
        assert response.json()["retryAfter"] >= 1
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert "Retry-After" in response.headers

    async def test_limit_is_per_client(self, client, login):
        for _ in range(6):
            await login(email="niemand@schulamt-koeln.de")

        response = await login(email="niemand@schulamt-koeln.de", headers={"X-Forwarded-For": "198.51.100.1"})

        assert response.status_code == 401


class TestRegistration:
    REGISTRATION = {
        "name": "Jonas Becker",
        "schulamtName": "Schulamt Bonn",
        "email": "jonas.becker@schulamt-bonn.de",
        "password": "Registrierung-2025!",
    }

    async def test_register_then_verify_then_login(self, client, mailer, login):
        response = await client.post("/api/auth/register", json=self.REGISTRATION)
        assert response.status_code == 200

        # Not active before verification
        assert (await login(email=self.REGISTRATION["email"], password=self.REGISTRATION["password"])).status_code == 401

        token = mailer.last_token("verify")
        verified = await client.get("/api/auth/verify-email", params={"token": token})
        assert verified.status_code == 200

        assert (await login(email=self.REGISTRATION["email"], password=self.REGISTRATION["password"])).status_code == 200

        again = await client.get("/api/auth/verify-email", params={"token": token})
        assert again.status_code == 410

    async def test_weak_password(self, client, mailer):
        response = await client.post("/api/auth/register", json={**self.REGISTRATION, "password": "kurz"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Ungültige Eingabe"
        assert all(d["field"] == "password" for d in body["details"])
        assert mailer.sent == []

    async def test_password_beyond_bcrypt_limit(self, client, mailer, session_factory):
        response = await client.post(
            "/api/auth/register", json={**self.REGISTRATION, "password": "Aa1!" + "x" * 76}
        )

        assert response.status_code == 400
        assert any("72 bytes" in d["message"] for d in response.json()["details"])
        assert mailer.sent == []
        async with session_factory() as s:
            assert (await s.execute(select(func.count(User.id)))).scalar() == 0

    async def test_duplicate_email(self, client, create_user, mailer):
        await create_user(email="jonas.becker@schulamt-bonn.de")
        response = await client.post("/api/auth/register", json=self.REGISTRATION)
        assert response.status_code == 409

    async def test_invalid_body(self, client, mailer):
        response = await client.post("/api/auth/register", json={"email": "not-an-email"})
        assert response.status_code == 400
        assert response.json()["error"] == "Ungültige Eingabe"

    async def test_verify_email_errors(self, client):
        assert (await client.get("/api/auth/verify-email")).status_code == 400
        assert (await client.get("/api/auth/verify-email", params={"token": "f" * 64})).status_code == 404


class TestPasswordReset:
    async def test_unknown_email_gets_same_answer(self, client, create_user, mailer):
        await create_user()

        known = await client.post("/api/auth/forgot-password", json={"email": "leitung@schulamt-koeln.de"})
        unknown = await client.post("/api/auth/forgot-password", json={"email": "niemand@schulamt-koeln.de"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len(mailer.sent) == 1

    async def test_inactive_user_gets_no_mail(self, client, create_user, mailer):
        await create_user(active=False)
        await client.post("/api/auth/forgot-password", json={"email": "leitung@schulamt-koeln.de"})
        assert mailer.sent == []

    async def test_reset_revokes_sessions(self, client, create_user, login, mailer, session_factory):
        await create_user()
        await login()
        await client.post("/api/auth/forgot-password", json={"email": "leitung@schulamt-koeln.de"})
        token = mailer.last_token("reset")

        validated = await client.get("/api/auth/validate-reset-token", params={"token": token})
        assert validated.json() == {"valid": True}

        response = await client.post("/api/auth/reset-password", json={"token": token, "password": NEW_PASSWORD})
        assert response.status_code == 200

        assert (await client.get("/api/auth/me")).status_code == 401
        assert (await login()).status_code == 401
        assert (await login(password=NEW_PASSWORD)).status_code == 200

        actions = await _audit_actions(session_factory)
        assert AuditAction.PASSWORD_RESET_REQUESTED in actions
        assert AuditAction.PASSWORD_RESET_SUCCESS in actions

    async def test_token_single_use(self, client, create_user, mailer):
        await create_user()
        await client.post("/api/auth/forgot-password", json={"email": "leitung@schulamt-koeln.de"})
        token = mailer.last_token("reset")

        first = await client.post("/api/auth/reset-password", json={"token": token, "password": NEW_PASSWORD})
        second = await client.post("/api/auth/reset-password", json={"token": token, "password": NEW_PASSWORD})

        assert first.status_code == 200
        assert second.status_code == 400
        assert (await client.get("/api/auth/validate-reset-token", params={"token": token})).status_code == 410

    async def test_expired_token(self, client, create_user, mailer, session_factory):
        from zielvereinbarung.models import PasswordResetToken

        await create_user()
        await client.post("/api/auth/forgot-password", json={"email": "leitung@schulamt-koeln.de"})
        token = mailer.last_token("reset")

        async with session_factory() as s:
            await s.execute(update(PasswordResetToken).values(expires_at=utcnow() - timedelta(minutes=1)))
            await s.commit()

        response = await client.post("/api/auth/reset-password", json={"token": token, "password": NEW_PASSWORD})

        assert response.status_code == 400
        assert "abgelaufen" in response.json()["error"]
        assert AuditAction.PASSWORD_RESET_FAILED in await _audit_actions(session_factory)

    async def test_weak_new_password(self, client, create_user, mailer):
        await create_user()
        await client.post("/api/auth/forgot-password", json={"email": "leitung@schulamt-koeln.de"})
        token = mailer.last_token("reset")

        response = await client.post("/api/auth/reset-password", json={"token": token, "password": "schwach"})

        assert response.status_code == 400
        assert (await client.get("/api/auth/validate-reset-token", params={"token": token})).status_code == 200

    async def test_new_password_beyond_bcrypt_limit(self, client, create_user, mailer):
        await create_user()
        await client.post("/api/auth/forgot-password", json={"email": "leitung@schulamt-koeln.de"})
        token = mailer.last_token("reset")

        response = await client.post(
            "/api/auth/reset-password", json={"token": token, "password": "Aa1!" + "x" * 76}
        )

        assert response.status_code == 400
        assert (await client.get("/api/auth/validate-reset-token", params={"token": token})).status_code == 200

    async def test_missing_fields(self, client):
        response = await client.post("/api/auth/reset-password", json={})
        assert response.status_code == 400

    async def test_validate_reset_token_errors(self, client):
        assert (await client.get("/api/auth/validate-reset-token")).status_code == 400
        assert (await client.get("/api/auth/validate-reset-token", params={"token": "a" * 64})).status_code == 404

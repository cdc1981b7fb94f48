"""
Tests for the personal data export.
"""
from sqlalchemy import select

from zielvereinbarung.core.config import settings
from zielvereinbarung.models import AuditAction, AuditLog, UserRole


async def _rows(session_factory, action):
    async with session_factory() as s:
        result = await s.execute(select(AuditLog).where(AuditLog.action == action))
        return list(result.scalars().all())


class TestOwnExport:
    async def test_export_contains_forms_and_statistics(self, client, create_form):
        form = await create_form()
        await client.post(
            "/api/entries",
            json={"formId": form["id"], "title": "Leseförderung"},
            headers={"X-Access-Code": form["accessCode"]},
        )
        me = (await client.get("/api/auth/me")).json()["user"]

        response = await client.get(f"/api/users/{me['id']}/export")

        assert response.status_code == 200
        assert response.headers["content-disposition"].startswith(
            f"attachment; filename=user-data-export-{me['id']}-"
        )
        export = response.json()
        assert export["user"]["email"] == "leitung@schulamt-koeln.de"
        assert [f["id"] for f in export["forms"]] == [form["id"]]
        assert export["forms"][0]["entries"][0]["title"] == "Leseförderung"
        stats = export["statistics"]
        assert stats["totalForms"] == 1
        assert stats["draftForms"] == 1
        assert stats["totalEntries"] == 1
        assert stats["activeSessions"] == 1
        assert any(log["action"] == "FORM_CREATED" for log in export["auditLogs"])

    async def test_session_tokens_are_not_exported(self, client, create_user, login):
        user = await create_user()
        await login()
        token = client.cookies.get(settings.SESSION_COOKIE_NAME)

        response = await client.get(f"/api/users/{user.id}/export")

        assert token
        assert token not in response.text
        assert "token" not in response.json()["sessions"][0]

    async def test_export_is_audited(self, client, create_user, login, session_factory):
        user = await create_user()
        await login()

        await client.get(f"/api/users/{user.id}/export")

        logged = (await _rows(session_factory, AuditAction.USER_UPDATED))[0]
        assert logged.event_metadata == {"action": "data_export", "formsCount": 0}
        assert logged.resource_id == str(user.id)


class TestForeignExport:
    async def test_admin_cannot_export_other_user(self, client, create_user, login, session_factory):
        other = await create_user(email="pruefung@schulamt-bonn.de")
        await create_user()
        await login()

        response = await client.get(f"/api/users/{other.id}/export")

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden: You can only export your own data"}
        denied = (await _rows(session_factory, AuditAction.UNAUTHORIZED_ACCESS))[0]
        assert denied.success is False
        assert denied.resource_type == "User"
        assert denied.resource_id == str(other.id)

    async def test_superadmin_exports_any_user(self, client, create_user, login):
        other = await create_user(email="pruefung@schulamt-bonn.de")
        await create_user(role=UserRole.SUPERADMIN)
        await login()

        response = await client.get(f"/api/users/{other.id}/export")

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["email"] == "pruefung@schulamt-bonn.de"
        assert body["exportRequestedBy"] == "leitung@schulamt-koeln.de"
        assert body["sessions"] == []

    async def test_unknown_user(self, client, create_user, login, session_factory):
        await create_user(role=UserRole.SUPERADMIN)
        await login()

        response = await client.get("/api/users/9999/export")

        assert response.status_code == 404
        denied = (await _rows(session_factory, AuditAction.UNAUTHORIZED_ACCESS))[0]
        assert denied.error_message == "User not found"

    async def test_anonymous(self, client):
        assert (await client.get("/api/users/1/export")).status_code == 401

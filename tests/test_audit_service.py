"""
Tests for audit logging: sanitization, fail-open writes, queries, retention.
"""
from unittest.mock import AsyncMock

from sqlalchemy import func, select

from zielvereinbarung.core.pii import REDACTED
from zielvereinbarung.models import AuditAction, AuditLog
from zielvereinbarung.services.audit_service import AuditService, serialize_audit_log


async def _count(db) -> int:
    result = await db.execute(select(func.count(AuditLog.id)))
    return result.scalar()


class TestLog:
    async def test_row_is_sanitized(self, db, clock):
        entry = await AuditService(db, clock=clock).log(
            AuditAction.FORM_CREATED,
            user_id=1,
            user_email="anna.schmidt@schulamt-koeln.de",
            resource_type="Form",
            resource_id=42,
            ip_address="192.168.10.20",
            user_agent="A" * 400,
            metadata={"schoolId": 3, "accessCode": "ABCD2345"},
        )

        assert entry.id is not None
        assert entry.user_email == "a***t@schulamt-koeln.de"
        assert entry.ip_address == "192.168.***"
        assert len(entry.user_agent) == 200
        assert entry.resource_id == "42"
        assert entry.event_metadata == {"schoolId": 3, "accessCode": REDACTED}
        assert entry.created_at == clock.now
        assert entry.success is True

    async def test_action_by_name(self, db, clock):
        entry = await AuditService(db, clock=clock).log("LOGIN_FAILED", success=False, error_message="x")
        assert entry.action is AuditAction.LOGIN_FAILED
        assert entry.success is False

    async def test_unknown_action_is_swallowed(self, db, clock):
        assert await AuditService(db, clock=clock).log("NOT_AN_ACTION") is None
        assert await _count(db) == 0

    async def test_write_failure_is_swallowed(self, db, clock, monkeypatch):
        service = AuditService(db, clock=clock)
        monkeypatch.setattr(db, "flush", AsyncMock(side_effect=RuntimeError("disk full")))

        assert await service.log(AuditAction.LOGIN, user_id=1) is None

        monkeypatch.undo()
        assert await _count(db) == 0

    async def test_failed_write_keeps_earlier_changes(self, db, clock):
        service = AuditService(db, clock=clock)
        await service.log(AuditAction.LOGIN, user_id=1)
        await service.log("BOGUS")
        await service.log(AuditAction.LOGOUT, user_id=1)

        assert await _count(db) == 2


class TestQueries:
    async def test_user_logs_newest_first(self, db, clock):
        service = AuditService(db, clock=clock)
        await service.log(AuditAction.LOGIN, user_id=1)
        clock.advance(minutes=1)
        await service.log(AuditAction.FORM_CREATED, user_id=1)
        clock.advance(minutes=1)
        await service.log(AuditAction.LOGOUT, user_id=1)
        await service.log(AuditAction.LOGIN, user_id=2)

        logs = await service.get_user_audit_logs(1)

        assert [e.action for e in logs] == [AuditAction.LOGOUT, AuditAction.FORM_CREATED, AuditAction.LOGIN]

    async def test_user_logs_pagination(self, db, clock):
        service = AuditService(db, clock=clock)
        for _ in range(5):
            await service.log(AuditAction.LOGIN, user_id=1)
            clock.advance(seconds=1)

        page = await service.get_user_audit_logs(1, limit=2, offset=2)

        assert len(page) == 2

    async def test_resource_logs(self, db, clock):
        service = AuditService(db, clock=clock)
        await service.log(AuditAction.FORM_CREATED, resource_type="Form", resource_id=7)
        clock.advance(minutes=1)
        await service.log(AuditAction.ACCESS_CODE_USED, resource_type="Form", resource_id="7")
        await service.log(AuditAction.FORM_CREATED, resource_type="Form", resource_id=8)

        logs = await service.get_resource_audit_logs("Form", 7)

        assert [e.action for e in logs] == [AuditAction.ACCESS_CODE_USED, AuditAction.FORM_CREATED]

    async def test_serialize(self, db, clock):
        entry = await AuditService(db, clock=clock).log(
            AuditAction.LOGIN, user_id=5, user_email="max@schulamt.de"
        )

        data = serialize_audit_log(entry)

        assert data["action"] == "LOGIN"
        assert data["userId"] == 5
        assert data["userEmail"] == "m***x@schulamt.de"
        assert data["createdAt"] == clock.now.isoformat()


class TestRetention:
    async def test_cleanup_deletes_rows_older_than_retention(self, db, clock):
        service = AuditService(db, clock=clock)
        await service.log(AuditAction.LOGIN, user_id=1)
        clock.advance(days=AuditService.RETENTION_DAYS - 1)
        await service.log(AuditAction.LOGOUT, user_id=1)

        clock.advance(days=2)

        assert await service.count_old_audit_logs() == 1
        assert await service.cleanup_old_audit_logs() == 1
        assert await _count(db) == 1
        assert await service.count_old_audit_logs() == 0

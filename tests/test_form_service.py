"""
Tests for the form review state machine.
"""
import pytest
from sqlalchemy import func, select

from zielvereinbarung.core.exceptions import FormStateError
from zielvereinbarung.models import AccessCode, Comment, Entry, Form, FormStatus
from zielvereinbarung.services.access_code_service import AccessCodeService, SchoolData
from zielvereinbarung.services.entry_service import EntryService
from zielvereinbarung.services.form_service import FormService

SCHOOL = SchoolData(external_id="NRW-166042", name="Gesamtschule Köln-Holweide")


@pytest.fixture
async def form_id(session_factory, create_user):
    user = await create_user()
    async with session_factory() as s:
        form, _ = await AccessCodeService(s).create_form(SCHOOL, created_by_id=user.id)
        await s.commit()
        return form.id


async def _load(session_factory, form_id, clock=None):
    s = session_factory()
    service = FormService(s, clock=clock) if clock else FormService(s)
    return s, service, await service.get(form_id, with_content=True)


class TestTransitions:
    async def test_submit_then_approve_stamps_times(self, session_factory, form_id, clock):
        s, service, form = await _load(session_factory, form_id, clock)
        async with s:
            await service.submit(form)
            submitted_at = clock.now
            clock.advance(days=3)
            await service.approve(form)

            assert form.status == FormStatus.APPROVED
            assert form.submitted_at == submitted_at
            assert form.approved_at == clock.now
            assert not form.is_editable

    async def test_return_appends_comment_and_reopens(self, session_factory, form_id):
        s, service, form = await _load(session_factory, form_id)
        async with s:
            await service.submit(form)
            comment = await service.return_for_revision(form, "Bitte ergänzen", author_name="Schulamt Köln")
            await s.commit()

            assert form.status == FormStatus.RETURNED
            assert form.is_editable
            assert comment.id is not None
            assert comment.author_role == "SCHULAMT"

            await service.submit(form)
            assert form.status == FormStatus.SUBMITTED

    @pytest.mark.parametrize("status", [FormStatus.DRAFT, FormStatus.APPROVED, FormStatus.RETURNED])
    async def test_review_needs_submitted_form(self, session_factory, form_id, status):
        s, service, form = await _load(session_factory, form_id)
        async with s:
            form.status = status

            with pytest.raises(FormStateError):
                await service.approve(form)
            with pytest.raises(FormStateError):
                await service.return_for_revision(form, "x", author_name="Schulamt")

            assert form.status == status
            assert form.comments == []

    @pytest.mark.parametrize("status", [FormStatus.SUBMITTED, FormStatus.APPROVED])
    async def test_cannot_submit_locked_form(self, session_factory, form_id, status):
        s, service, form = await _load(session_factory, form_id)
        async with s:
            form.status = status

            with pytest.raises(FormStateError):
                await service.submit(form)


class TestDelete:
    async def test_delete_removes_code_entries_and_comments(self, session_factory, form_id):
        s, service, form = await _load(session_factory, form_id)
        async with s:
            await EntryService(s).create(form, {"title": "Leseförderung"})
            await service.submit(form)
            await service.return_for_revision(form, "Bitte ergänzen", author_name="Schulamt")
            await s.commit()

        s, service, form = await _load(session_factory, form_id)
        async with s:
            assert len(form.entries) == 1
            await service.delete(form)
            await s.commit()

        async with session_factory() as s:
            for model in (Form, AccessCode, Entry, Comment):
                assert (await s.execute(select(func.count(model.id)))).scalar() == 0

"""
Form Service

Review workflow of a form:

    DRAFT -> SUBMITTED -> APPROVED
                 |
                 v
             RETURNED -> SUBMITTED -> ...

Schools submit with their access code; the staff member who created the form
approves it or returns it with a comment.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from zielvereinbarung.core.exceptions import FormStateError
from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.models.form import Comment, Form, FormStatus

logger = logging.getLogger(__name__)

SCHULAMT_ROLE = "SCHULAMT"


class FormService:
    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def get(self, form_id: int, with_content: bool = False) -> Optional[Form]:
        """
        Form with school and access code.

        with_content also loads entries and comments, which export, delete
        and return need.
        """
        options = [joinedload(Form.school), joinedload(Form.access_code)]
        if with_content:
            options += [selectinload(Form.entries), selectinload(Form.comments)]

        result = await self.db.execute(select(Form).options(*options).where(Form.id == form_id))
        return result.scalar_one_or_none()

    async def submit(self, form: Form) -> None:
        if not form.is_editable:
            raise FormStateError(f"cannot submit a {form.status.value} form")

        form.status = FormStatus.SUBMITTED
        form.submitted_at = self.clock()
        await self.db.flush()

    async def approve(self, form: Form) -> None:
        if form.status != FormStatus.SUBMITTED:
            raise FormStateError(f"cannot approve a {form.status.value} form")

        form.status = FormStatus.APPROVED
        form.approved_at = self.clock()
        await self.db.flush()

    async def return_for_revision(self, form: Form, message: str, author_name: str) -> Comment:
        """Send a submitted form back to the school. Needs form.comments loaded."""
        if form.status != FormStatus.SUBMITTED:
            raise FormStateError(f"cannot return a {form.status.value} form")

        form.status = FormStatus.RETURNED
        comment = Comment(author_role=SCHULAMT_ROLE, author_name=author_name, message=message)
        form.comments.append(comment)
        await self.db.flush()
        return comment

    async def delete(self, form: Form) -> None:
        """Delete a form with its code, entries and comments (load with_content)."""
        await self.db.delete(form)
        await self.db.flush()
        logger.info(f"Deleted form {form.id}")

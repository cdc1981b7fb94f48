"""
Entry Service
"""
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from zielvereinbarung.models.form import Entry, Form

LIST_FIELDS = ("zielbereich1", "zielbereich2", "zielbereich3", "datengrundlage", "zielgruppe")


class EntryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, entry_id: int) -> Optional[Entry]:
        """Entry with its form and the form's access code."""
        result = await self.db.execute(
            select(Entry)
            .options(joinedload(Entry.form).joinedload(Form.access_code))
            .where(Entry.id == entry_id)
        )
        return result.scalar_one_or_none()

    async def create(self, form: Form, fields: Dict[str, Any]) -> Entry:
        entry = Entry(form_id=form.id, title="", fortbildung_ja=False)
        for name in LIST_FIELDS:
            setattr(entry, name, [])
        self._apply(entry, fields)

        self.db.add(entry)
        await self.db.flush()
        return entry

    async def update(self, entry: Entry, fields: Dict[str, Any]) -> Entry:
        """Apply the given fields only; absent keys keep their value."""
        self._apply(entry, fields)
        await self.db.flush()
        return entry

    async def delete(self, entry: Entry) -> None:
        await self.db.delete(entry)
        await self.db.flush()

    @staticmethod
    def _apply(entry: Entry, fields: Dict[str, Any]) -> None:
        for name, value in fields.items():
            if value is None:
                # null clears optional text; required columns fall back to empty
                if name in LIST_FIELDS:
                    value = []
                elif name == "fortbildung_ja":
                    value = False
                elif name == "title":
                    continue
            setattr(entry, name, value)

"""
Access Code Service

Schools open their form with a short code instead of an account. Codes use
an alphabet without look-alike characters (no I, O, 0, 1) so they survive
being read aloud or typed from paper.
"""
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from zielvereinbarung.core.exceptions import AccessCodeCollisionError
from zielvereinbarung.models.form import AccessCode, Form, School

logger = logging.getLogger(__name__)

ACCESS_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ACCESS_CODE_LENGTH = 8
FALLBACK_CODE_LENGTH = 10
MAX_ISSUE_ATTEMPTS = 5

# Redemption accepts the full [A-Z0-9] range; older codes predate the alphabet
_VALID_CODE = re.compile(r"^[A-Z0-9]+$")
VALID_CODE_LENGTHS = (ACCESS_CODE_LENGTH, FALLBACK_CODE_LENGTH)


def generate_access_code(length: int = ACCESS_CODE_LENGTH) -> str:
    """Uniformly random code from the unambiguous alphabet."""
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(length))


def normalize_access_code(raw: Optional[str]) -> Optional[str]:
    """
    Trim and uppercase user input.

    Returns None when the result cannot be a code, so callers can reject it
    without touching storage.
    """
    if raw is None:
        return None
    code = raw.strip().upper()
    if len(code) not in VALID_CODE_LENGTHS or not _VALID_CODE.match(code):
        return None
    return code


@dataclass
class SchoolData:
    """School record as chosen from the external directory."""
    external_id: str
    name: str
    school_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class AccessCodeService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def code_exists(self, code: str) -> bool:
        result = await self.db.execute(select(AccessCode.id).where(AccessCode.code == code))
        return result.scalar_one_or_none() is not None

    async def issue(self) -> str:
        """
        Pick a code not yet in storage.

        After MAX_ISSUE_ATTEMPTS collisions a longer code is returned unchecked;
        its collision odds are negligible and the unique constraint still
        guards the insert.
        """
        for _ in range(MAX_ISSUE_ATTEMPTS):
            candidate = generate_access_code(ACCESS_CODE_LENGTH)
            if not await self.code_exists(candidate):
                return candidate

        logger.warning(
            f"{MAX_ISSUE_ATTEMPTS} access code collisions in a row, "
            f"falling back to {FALLBACK_CODE_LENGTH} characters"
        )
        return generate_access_code(FALLBACK_CODE_LENGTH)

    async def redeem(self, raw_code: Optional[str], with_content: bool = False) -> Optional[Form]:
        """
        Form bound to a code, or None for malformed or unknown codes.

        with_content also loads the entries and comments the school edits
        and reads.
        """
        code = normalize_access_code(raw_code)
        if code is None:
            return None

        options = [joinedload(Form.school), joinedload(Form.access_code)]
        if with_content:
            options += [selectinload(Form.entries), selectinload(Form.comments)]

        result = await self.db.execute(
            select(Form)
            .join(AccessCode, AccessCode.form_id == Form.id)
            .options(*options)
            .where(AccessCode.code == code)
        )
        return result.scalar_one_or_none()

    async def grants_access(self, raw_code: Optional[str], form_id: int) -> bool:
        """True when the code opens exactly this form."""
        form = await self.redeem(raw_code)
        return form is not None and form.id == form_id

    async def upsert_school(self, school: SchoolData) -> School:
        result = await self.db.execute(
            select(School).where(School.external_id == school.external_id)
        )
        db_school = result.scalar_one_or_none()

        if db_school is None:
            db_school = School(external_id=school.external_id)
            self.db.add(db_school)

        db_school.school_number = school.school_number
        db_school.name = school.name
        db_school.address = school.address
        db_school.city = school.city
        db_school.state = school.state

        await self.db.flush()
        return db_school

    async def create_form(
        self,
        school: SchoolData,
        created_by_id: int,
        title: Optional[str] = None,
    ) -> Tuple[Form, str]:
        """
        Create a form for a school together with its access code.

        Raises:
            AccessCodeCollisionError: the issued code was taken concurrently
        """
        db_school = await self.upsert_school(school)
        code = await self.issue()

        # Linked by id so a rejected insert leaves nothing pending on the school
        form = Form(
            school_id=db_school.id,
            created_by_id=created_by_id,
            title=title,
            access_code=AccessCode(code=code),
        )

        try:
            async with self.db.begin_nested():
                self.db.add(form)
                await self.db.flush()
        except IntegrityError as e:
            logger.error(f"Access code insert rejected by unique constraint: {type(e).__name__}")
            raise AccessCodeCollisionError("access code already in use") from e

        form.school = db_school
        return form, code

"""
School, Form, AccessCode, Entry and Comment models

A school opens its Zielvereinbarung form with the form's access code and
fills in entries while the form is editable. Staff review submitted forms
and leave comments when returning them.
"""
import enum

from sqlalchemy import Column, Integer, String, Boolean, Text, JSON, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship

from zielvereinbarung.core.database import Base, UTCDateTime
from zielvereinbarung.core.utils import utcnow


class FormStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    RETURNED = "RETURNED"


# Schools may change entries until the form is submitted, and again once
# it comes back for revision
EDITABLE_STATUSES = (FormStatus.DRAFT, FormStatus.RETURNED)


class School(Base):
    """Local copy of a school from the external school directory."""
    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(100), unique=True, nullable=False, index=True)
    school_number = Column(String(50), nullable=True)
    name = Column(String(255), nullable=False)
    address = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(100), nullable=True)

    forms = relationship("Form", back_populates="school")

    def __repr__(self):
        return f"<School(id={self.id}, external_id='{self.external_id}')>"


class Form(Base):
    __tablename__ = "forms"

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(Integer, ForeignKey("schools.id"), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String(500), nullable=True)
    status = Column(SQLEnum(FormStatus), nullable=False, default=FormStatus.DRAFT)
    date = Column(UTCDateTime, nullable=False, default=utcnow)
    submitted_at = Column(UTCDateTime, nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    school = relationship("School", back_populates="forms")
    created_by = relationship("User", back_populates="forms")
    access_code = relationship(
        "AccessCode",
        back_populates="form",
        uselist=False,
        cascade="all, delete-orphan",
    )
    entries = relationship(
        "Entry",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="Entry.id",
    )
    comments = relationship(
        "Comment",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="Comment.id",
    )

    __table_args__ = (
        Index('ix_forms_created_by', 'created_by_id'),
    )

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    def __repr__(self):
        return f"<Form(id={self.id}, status='{self.status}')>"


class AccessCode(Base):
    """
    Bound 1:1 to a form and never regenerated.

    The unique constraint on code is the final guard against duplicates.
    """
    __tablename__ = "access_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(10), unique=True, nullable=False, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), unique=True, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    form = relationship("Form", back_populates="access_code")

    def __repr__(self):
        return f"<AccessCode(id={self.id}, form_id={self.form_id})>"


class Entry(Base):
    """
    One goal of a form: target areas, measures, schedule and training needs.

    List fields hold option keys chosen in the school's form.
    """
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False, default="")

    # Goals
    zielsetzungen_text = Column(Text, nullable=True)
    zielbereich1 = Column(JSON, nullable=False, default=list)
    zielbereich2 = Column(JSON, nullable=False, default=list)
    zielbereich3 = Column(JSON, nullable=False, default=list)

    # Evidence and audience
    datengrundlage = Column(JSON, nullable=False, default=list)
    datengrundlage_andere = Column(String(500), nullable=True)
    zielgruppe = Column(JSON, nullable=False, default=list)
    zielgruppe_sus_detail = Column(String(500), nullable=True)

    # Measures
    massnahmen = Column(Text, nullable=True)
    indikatoren = Column(Text, nullable=True)
    verantwortlich = Column(String(500), nullable=True)
    beteiligt = Column(String(500), nullable=True)

    # Schedule: school year ("2025/26") and half (1 or 2)
    beginn_schuljahr = Column(String(10), nullable=True)
    beginn_halbjahr = Column(Integer, nullable=True)
    ende_schuljahr = Column(String(10), nullable=True)
    ende_halbjahr = Column(Integer, nullable=True)

    # Training
    fortbildung_ja = Column(Boolean, nullable=False, default=False)
    fortbildung_themen = Column(String(1000), nullable=True)
    fortbildung_zielgruppe = Column(String(500), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    form = relationship("Form", back_populates="entries")

    __table_args__ = (
        Index('ix_entries_form', 'form_id'),
    )

    def __repr__(self):
        return f"<Entry(id={self.id}, form_id={self.form_id})>"


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False)
    author_role = Column(String(20), nullable=False)  # SCHULAMT | SCHULE
    author_name = Column(String(255), nullable=True)
    message = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    form = relationship("Form", back_populates="comments")

    def __repr__(self):
        return f"<Comment(id={self.id}, form_id={self.form_id})>"

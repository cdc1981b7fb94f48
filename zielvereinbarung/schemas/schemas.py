from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CamelModel(BaseModel):
    """Accepts camelCase (API) and snake_case field names."""
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# AUTH SCHEMAS
# ============================================================================
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    schulamt_name: str = Field(alias="schulamtName", min_length=1, max_length=255)
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = ""
    password: str = ""


# ============================================================================
# FORM SCHEMAS
# ============================================================================
class SchoolInput(CamelModel):
    external_id: str = Field(alias="externalId", min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    school_number: Optional[str] = Field(default=None, alias="schoolNumber", max_length=50)
    address: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=255)
    state: Optional[str] = Field(default=None, max_length=100)


class CreateFormRequest(BaseModel):
    school: SchoolInput
    title: Optional[str] = Field(default=None, max_length=500)



class ReturnFormRequest(BaseModel):
    message: str = Field(min_length=1, max_length=2000)


# ============================================================================
# ENTRY SCHEMAS
# ============================================================================
OptionList = Optional[List[str]]


class EntryFields(CamelModel):
    """Editable entry fields; unset fields are left alone on update."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    zielsetzungen_text: Optional[str] = Field(default=None, alias="zielsetzungenText", max_length=5000)
    zielbereich1: OptionList = Field(default=None, max_length=10)
    zielbereich2: OptionList = Field(default=None, max_length=10)
    zielbereich3: OptionList = Field(default=None, max_length=10)
    datengrundlage: OptionList = Field(default=None, max_length=10)
    datengrundlage_andere: Optional[str] = Field(default=None, alias="datengrundlageAndere", max_length=500)
    zielgruppe: OptionList = Field(default=None, max_length=10)
    zielgruppe_sus_detail: Optional[str] = Field(default=None, alias="zielgruppeSusDetail", max_length=500)
    massnahmen: Optional[str] = Field(default=None, max_length=10000)
    indikatoren: Optional[str] = Field(default=None, max_length=10000)
    verantwortlich: Optional[str] = Field(default=None, max_length=500)
    beteiligt: Optional[str] = Field(default=None, max_length=500)
    beginn_schuljahr: Optional[str] = Field(default=None, alias="beginnSchuljahr", max_length=10)
    beginn_halbjahr: Optional[int] = Field(default=None, alias="beginnHalbjahr", ge=1, le=2)
    ende_schuljahr: Optional[str] = Field(default=None, alias="endeSchuljahr", max_length=10)
    ende_halbjahr: Optional[int] = Field(default=None, alias="endeHalbjahr", ge=1, le=2)
    fortbildung_ja: Optional[bool] = Field(default=None, alias="fortbildungJa")
    fortbildung_themen: Optional[str] = Field(default=None, alias="fortbildungThemen", max_length=1000)
    fortbildung_zielgruppe: Optional[str] = Field(default=None, alias="fortbildungZielgruppe", max_length=500)


class CreateEntryRequest(EntryFields):
    form_id: int = Field(alias="formId")
    title: str = Field(min_length=1, max_length=500)


class UpdateEntryRequest(EntryFields):
    pass

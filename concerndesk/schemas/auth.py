# concerndesk/schemas/auth.py
from __future__ import annotations
from pydantic import BaseModel, EmailStr, Field

from concerndesk.db.models import CampusEnum
from concerndesk.schemas.users import UserOut


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class RegisterIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    campus: CampusEnum | None = None
    batch: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=32)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut

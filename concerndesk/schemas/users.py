# concerndesk/schemas/users.py
from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict

from concerndesk.db.models import CampusEnum, RoleEnum


class UserBrief(BaseModel):
    """Мінімальний профіль для вкладення у заявку / таймлайн."""
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str | None = None
    role: RoleEnum


class SenderOut(BaseModel):
    """Публічні поля відправника в чаті."""
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    role: RoleEnum
    profile_image: str | None = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str
    role: RoleEnum
    campus: CampusEnum | None = None
    batch: str | None = None
    phone: str | None = None
    profile_image: str | None = None
    is_active: bool


class UserUpdate(BaseModel):
    # власний профіль або адмін; None = не чіпати
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    batch: str | None = Field(default=None, max_length=64)
    campus: CampusEnum | None = None

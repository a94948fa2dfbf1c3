# concerndesk/schemas/concerns.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from concerndesk.db.models import (
    CampusEnum,
    CategoryEnum,
    ConcernStatusEnum,
    SeverityEnum,
)
from concerndesk.schemas.common import AttachmentOut
from concerndesk.schemas.users import UserBrief


class ConcernCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    category: CategoryEnum
    severity: SeverityEnum = SeverityEnum.medium
    is_anonymous: bool = False
    campus: Optional[CampusEnum] = None


class StatusUpdateIn(BaseModel):
    status: ConcernStatusEnum
    comment: Optional[str] = Field(default=None, max_length=1000)


class AssignIn(BaseModel):
    mentor_id: int


class RateIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=1000)


class ConcernFilters(BaseModel):
    status: Optional[ConcernStatusEnum] = None
    category: Optional[CategoryEnum] = None
    severity: Optional[SeverityEnum] = None
    campus: Optional[CampusEnum] = None
    search: Optional[str] = None


class TimelineEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: ConcernStatusEnum
    updated_by: Optional[UserBrief] = None
    comment: str = ""
    timestamp: datetime


class ConcernOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: str
    title: str
    description: str
    category: CategoryEnum
    severity: SeverityEnum
    status: ConcernStatusEnum
    campus: Optional[CampusEnum] = None
    is_anonymous: bool
    student: UserBrief
    assigned_to: Optional[UserBrief] = None
    attachments: list[AttachmentOut] = []
    timeline: list[TimelineEntryOut] = []
    rating: Optional[int] = None
    feedback: Optional[str] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class BucketCount(BaseModel):
    name: str
    count: int


class ConcernStats(BaseModel):
    total: int
    pending: int
    resolved: int
    closed: int
    by_status: dict[str, int]
    category_distribution: list[BucketCount]
    severity_distribution: list[BucketCount]

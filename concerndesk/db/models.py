# concerndesk/db/models.py
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from concerndesk.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# JSONB у Postgres, звичайний JSON деінде (sqlite у тестах)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ==== Енуми (python + sqlalchemy) ====


class RoleEnum(str, enum.Enum):
    student = "student"
    mentor = "mentor"
    admin = "admin"
    superadmin = "superadmin"

    @property
    def is_staff(self) -> bool:
        return self in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self in ADMIN_ROLES


STAFF_ROLES = frozenset({RoleEnum.mentor, RoleEnum.admin, RoleEnum.superadmin})
ADMIN_ROLES = frozenset({RoleEnum.admin, RoleEnum.superadmin})


class ConcernStatusEnum(str, enum.Enum):
    submitted = "Submitted"
    in_review = "In Review"
    assigned = "Assigned"
    in_progress = "In Progress"
    resolved = "Resolved"
    closed = "Closed"
    reopened = "Reopened"


# статуси, що рахуються як "в роботі" у статистиці
PENDING_STATUSES = (
    ConcernStatusEnum.submitted,
    ConcernStatusEnum.in_review,
    ConcernStatusEnum.assigned,
    ConcernStatusEnum.in_progress,
)
# після яких студент може поставити оцінку
RATEABLE_STATUSES = frozenset({ConcernStatusEnum.resolved, ConcernStatusEnum.closed})


class CategoryEnum(str, enum.Enum):
    technical = "Technical"
    personal = "Personal"
    financial = "Financial"
    behavioral = "Behavioral"
    misconduct = "Misconduct"
    infrastructure = "Infrastructure"
    course_content = "Course Content"
    mentor_related = "Mentor Related"
    other = "Other"


class SeverityEnum(str, enum.Enum):
    low = "Low"
    medium = "Medium"
    high = "High"
    critical = "Critical"


class CampusEnum(str, enum.Enum):
    kochi = "Kochi"
    calicut = "Calicut"
    trivandrum = "Trivandrum"
    other = "Other"


def _enum(cls: type[enum.Enum], name: str) -> Enum:
    # у БД пишемо значення ("In Review"), а не імена членів
    return Enum(cls, name=name, values_callable=lambda e: [m.value for m in e])


# ==== Міксини ====


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# ==== Моделі ====


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[RoleEnum] = mapped_column(
        _enum(RoleEnum, "role_enum"),
        default=RoleEnum.student,
        nullable=False,
    )
    campus: Mapped[Optional[CampusEnum]] = mapped_column(
        _enum(CampusEnum, "campus_enum"),
        nullable=True,
    )
    batch: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    profile_image: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


class Concern(TimestampMixin, Base):
    __tablename__ = "concerns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    assigned_to_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    category: Mapped[CategoryEnum] = mapped_column(
        _enum(CategoryEnum, "concern_category_enum"),
        nullable=False,
    )
    severity: Mapped[SeverityEnum] = mapped_column(
        _enum(SeverityEnum, "concern_severity_enum"),
        default=SeverityEnum.medium,
        nullable=False,
    )
    status: Mapped[ConcernStatusEnum] = mapped_column(
        _enum(ConcernStatusEnum, "concern_status_enum"),
        default=ConcernStatusEnum.submitted,
        nullable=False,
    )
    campus: Mapped[Optional[CampusEnum]] = mapped_column(
        _enum(CampusEnum, "campus_enum"),
        nullable=True,
    )
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attachments: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    rating: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # relationships (selectin: в async не можна лінивого завантаження)
    student: Mapped["User"] = relationship(foreign_keys=[student_id], lazy="selectin")
    assigned_to: Mapped[Optional["User"]] = relationship(foreign_keys=[assigned_to_id], lazy="selectin")
    timeline: Mapped[List["TimelineEntry"]] = relationship(
        back_populates="concern",
        cascade="all, delete-orphan",
        order_by="TimelineEntry.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_concerns_status_severity", "status", "severity"),
        Index("ix_concerns_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Concern id={self.id} ticket_id={self.ticket_id} status={self.status}>"


class TimelineEntry(Base):
    """Рядок журналу статусів. Тільки додається, ніколи не редагується."""

    __tablename__ = "concern_timeline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    concern_id: Mapped[int] = mapped_column(
        ForeignKey("concerns.id", ondelete="CASCADE"),
        index=True,
    )
    status: Mapped[ConcernStatusEnum] = mapped_column(
        _enum(ConcernStatusEnum, "concern_status_enum"),
        nullable=False,
    )
    updated_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    concern: Mapped["Concern"] = relationship(back_populates="timeline")
    updated_by: Mapped[Optional["User"]] = relationship(lazy="selectin")


class ChatMessage(TimestampMixin, Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    concern_id: Mapped[int] = mapped_column(
        ForeignKey("concerns.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    attachments: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    sender: Mapped["User"] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_chat_messages_concern_created", "concern_id", "created_at"),
    )


class Counter(Base):
    """Іменовані послідовності (номер заявки BRT000001 тощо)."""

    __tablename__ = "counters"

    CONCERN = "concern"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

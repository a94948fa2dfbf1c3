# concerndesk/services/policy.py
"""
Політика доступу до заявок.

Чисті функції без I/O: на вході актор (AuthIdentity) і заявка,
на виході bool. Сервіси викликають authorize(...), щоб перетворити
False на Unauthorized ще до будь-яких змін у БД.

Правила:
  - student бачить лише власні заявки;
  - mentor бачить лише заявки, призначені на нього;
  - admin / superadmin бачать усе.
"""
from __future__ import annotations

from dataclasses import dataclass

from concerndesk.core.errors import Unauthorized
from concerndesk.db.models import (
    ADMIN_ROLES,
    RATEABLE_STATUSES,
    STAFF_ROLES,
    Concern,
    ConcernStatusEnum,
    RoleEnum,
    User,
)


@dataclass(frozen=True)
class AuthIdentity:
    id: int
    role: RoleEnum
    name: str

    @classmethod
    def from_user(cls, user: User) -> "AuthIdentity":
        return cls(id=user.id, role=RoleEnum(user.role), name=user.name)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def can_access(actor: AuthIdentity, concern: Concern) -> bool:
    if actor.role in ADMIN_ROLES:
        return True
    if actor.role == RoleEnum.mentor:
        return concern.assigned_to_id is not None and concern.assigned_to_id == actor.id
    return concern.student_id == actor.id


def can_transition(
    actor: AuthIdentity, concern: Concern, target: ConcernStatusEnum | None = None
) -> bool:
    # цільовий статус не перевіряється: граф переходів вільний
    return actor.role in STAFF_ROLES and can_access(actor, concern)


def can_assign(actor: AuthIdentity, concern: Concern | None = None) -> bool:
    return actor.role in ADMIN_ROLES


def can_delete(actor: AuthIdentity, concern: Concern | None = None) -> bool:
    return actor.role in ADMIN_ROLES


def can_rate(actor: AuthIdentity, concern: Concern) -> bool:
    return actor.role == RoleEnum.student and concern.student_id == actor.id


def rating_open(concern: Concern) -> bool:
    return concern.status in RATEABLE_STATUSES


def can_submit(actor: AuthIdentity) -> bool:
    return actor.role == RoleEnum.student


def can_view_stats(actor: AuthIdentity) -> bool:
    return actor.role in ADMIN_ROLES


def authorize(allowed: bool, message: str = "Not authorized") -> None:
    if not allowed:
        raise Unauthorized(message)

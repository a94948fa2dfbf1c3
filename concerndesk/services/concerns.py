# concerndesk/services/concerns.py
"""
TicketStore: читання/запис заявок без бізнес-правил.

Комітить викликач (LifecycleEngine / роутер), тут лише flush.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from concerndesk.core.config import Settings
from concerndesk.core.errors import NotFound
from concerndesk.db.models import (
    PENDING_STATUSES,
    CategoryEnum,
    ChatMessage,
    Concern,
    ConcernStatusEnum,
    Counter,
    RoleEnum,
    SeverityEnum,
)
from concerndesk.schemas.concerns import BucketCount, ConcernFilters, ConcernStats
from concerndesk.services.policy import AuthIdentity

log = logging.getLogger(__name__)


def like_pattern(term: str) -> str:
    """Підрядок для LIKE з екрануванням % і _ (регістр знімаємо окремо)."""
    escaped = (
        term.strip().lower()
        .replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )
    return f"%{escaped}%"


class TicketStore:
    def __init__(self, settings: Settings):
        self.prefix = settings.ticket_prefix
        self.width = settings.ticket_id_width

    # ==== Читання ====

    async def get(self, db: AsyncSession, concern_id: int) -> Optional[Concern]:
        q = (
            select(Concern)
            .where(Concern.id == concern_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(q)).scalar_one_or_none()

    async def require(self, db: AsyncSession, concern_id: int) -> Concern:
        concern = await self.get(db, concern_id)
        if concern is None:
            raise NotFound("Concern not found", entity="concern", entity_id=concern_id)
        return concern

    async def list(
        self, db: AsyncSession, actor: AuthIdentity, filters: ConcernFilters | None = None
    ) -> Sequence[Concern]:
        filters = filters or ConcernFilters()
        q = select(Concern)

        # область видимості за роллю
        if actor.role == RoleEnum.student:
            q = q.where(Concern.student_id == actor.id)
        elif actor.role == RoleEnum.mentor:
            q = q.where(Concern.assigned_to_id == actor.id)

        if filters.status is not None:
            q = q.where(Concern.status == filters.status)
        if filters.category is not None:
            q = q.where(Concern.category == filters.category)
        if filters.severity is not None:
            q = q.where(Concern.severity == filters.severity)
        if filters.campus is not None:
            q = q.where(Concern.campus == filters.campus)
        if filters.search and filters.search.strip():
            pattern = like_pattern(filters.search)
            q = q.where(
                or_(
                    func.lower(Concern.title).like(pattern, escape="\\"),
                    func.lower(Concern.ticket_id).like(pattern, escape="\\"),
                )
            )

        q = q.order_by(Concern.created_at.desc(), Concern.id.desc())
        return (await db.execute(q)).scalars().all()

    # ==== Номер заявки ====

    def format_ticket_id(self, n: int) -> str:
        return f"{self.prefix}{n:0{self.width}d}"

    async def next_ticket_id(self, db: AsyncSession) -> str:
        """
        Атомарний інкремент рядка counters у поточній транзакції.
        Рядок тримає блокування до commit, тож два submit не отримають один номер.
        """
        stmt = (
            update(Counter)
            .where(Counter.name == Counter.CONCERN)
            .values(value=Counter.value + 1)
            .returning(Counter.value)
            .execution_options(synchronize_session=False)
        )
        n = (await db.execute(stmt)).scalar_one_or_none()
        if n is None:
            # лічильника ще немає (схема без міграції), сідимо з кількості заявок
            total = (await db.execute(select(func.count()).select_from(Concern))).scalar_one()
            n = int(total) + 1
            db.add(Counter(name=Counter.CONCERN, value=n))
            await db.flush()
            log.warning("ticket_counter_seeded", extra={"value": n})
        return self.format_ticket_id(int(n))

    # ==== Запис ====

    async def add(self, db: AsyncSession, concern: Concern) -> Concern:
        db.add(concern)
        await db.flush()
        return concern

    async def delete(self, db: AsyncSession, concern: Concern) -> None:
        # чат не має ORM-каскаду з боку Concern, чистимо явно
        await db.execute(
            delete(ChatMessage)
            .where(ChatMessage.concern_id == concern.id)
            .execution_options(synchronize_session=False)
        )
        await db.delete(concern)
        await db.flush()

    # ==== Статистика ====

    async def stats(self, db: AsyncSession) -> ConcernStats:
        total = (await db.execute(select(func.count()).select_from(Concern))).scalar_one()

        by_status = {s.value: 0 for s in ConcernStatusEnum}
        rows = await db.execute(select(Concern.status, func.count()).group_by(Concern.status))
        for status_, n in rows.all():
            by_status[ConcernStatusEnum(status_).value] = int(n)

        pending = sum(by_status[s.value] for s in PENDING_STATUSES)

        return ConcernStats(
            total=int(total),
            pending=pending,
            resolved=by_status[ConcernStatusEnum.resolved.value],
            closed=by_status[ConcernStatusEnum.closed.value],
            by_status=by_status,
            category_distribution=await self._distribution(db, Concern.category, CategoryEnum),
            severity_distribution=await self._distribution(db, Concern.severity, SeverityEnum),
        )

    async def _distribution(self, db: AsyncSession, column, enum_cls) -> list[BucketCount]:
        rows = await db.execute(select(column, func.count()).group_by(column))
        buckets = [BucketCount(name=enum_cls(value).value, count=int(n)) for value, n in rows.all()]
        buckets.sort(key=lambda b: (-b.count, b.name))
        return buckets

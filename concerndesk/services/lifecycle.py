# concerndesk/services/lifecycle.py
"""
LifecycleEngine: submit / transition / assign / rate / delete.

Порядок кожної мутації однаковий:
    policy -> зміна + запис у timeline -> commit -> publish -> notify

Граф статусів вільний: будь-який статус від авторизованого актора
записується, повторний той самий статус теж додає рядок у timeline.
Publish і notify виконуються лише після успішного commit і ніколи
не кидають винятків назовні.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from concerndesk.core.config import Settings
from concerndesk.core.errors import Conflict, NotFound, ValidationFailed
from concerndesk.db.models import (
    STAFF_ROLES,
    Concern,
    ConcernStatusEnum,
    TimelineEntry,
    User,
    utcnow,
)
from concerndesk.schemas.concerns import ConcernCreate
from concerndesk.services import notifications as events
from concerndesk.services.concerns import TicketStore
from concerndesk.services.notifications import NotificationDispatcher
from concerndesk.services.policy import (
    AuthIdentity,
    authorize,
    can_assign,
    can_delete,
    can_rate,
    can_submit,
    can_transition,
    rating_open,
)
from concerndesk.services.realtime import RealtimeBus, concern_room, user_room

log = logging.getLogger(__name__)


def concern_brief(concern: Concern) -> Dict[str, Any]:
    """Те, що йде в сповіщення: без опису і вкладень."""
    student = concern.student
    return {
        "id": concern.id,
        "ticket_id": concern.ticket_id,
        "title": concern.title,
        "category": concern.category.value,
        "severity": concern.severity.value,
        "status": concern.status.value,
        "is_anonymous": concern.is_anonymous,
        "student_email": student.email if student else None,
        "student_name": student.name if student else None,
    }


class LifecycleEngine:
    def __init__(
        self,
        store: TicketStore,
        bus: RealtimeBus,
        notifier: NotificationDispatcher,
        settings: Settings,
    ):
        self.store = store
        self.bus = bus
        self.notifier = notifier
        self.settings = settings

    # ==== Внутрішнє ====

    async def _commit(self, db: AsyncSession) -> None:
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            log.warning("concern_commit_conflict", extra={"error": str(e.orig)})
            raise Conflict("Concern conflicts with an existing record") from e

    def _append(
        self, concern: Concern, status: ConcernStatusEnum, actor: AuthIdentity, comment: str | None
    ) -> TimelineEntry:
        entry = TimelineEntry(
            status=status,
            updated_by_id=actor.id,
            comment=comment or "",
            timestamp=utcnow(),
        )
        concern.timeline.append(entry)
        return entry

    def _apply_status(self, concern: Concern, status: ConcernStatusEnum) -> None:
        concern.status = status
        now = utcnow()
        if status == ConcernStatusEnum.resolved:
            concern.resolved_at = now
        elif status == ConcernStatusEnum.closed:
            concern.closed_at = now
        elif status == ConcernStatusEnum.reopened:
            concern.resolved_at = None
            concern.closed_at = None

    def _publish(self, room: str, event: str, data: Dict[str, Any]) -> None:
        try:
            self.bus.publish(room, event, data)
        except Exception:
            log.exception("realtime_publish_failed", extra={"room": room, "event": event})

    def _notify(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self.notifier.dispatch(event_type, payload)
        except Exception:
            log.exception("notification_dispatch_failed", extra={"event_type": event_type})

    # ==== Операції ====

    async def submit(
        self,
        db: AsyncSession,
        actor: AuthIdentity,
        data: ConcernCreate,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Concern:
        authorize(can_submit(actor), "Only students can submit concerns")

        student = await db.get(User, actor.id)
        if student is None:
            raise NotFound("User not found", entity="user", entity_id=actor.id)

        concern = Concern(
            ticket_id=await self.store.next_ticket_id(db),
            student_id=actor.id,
            title=data.title,
            description=data.description,
            category=data.category,
            severity=data.severity,
            status=ConcernStatusEnum.submitted,
            campus=data.campus or student.campus,
            is_anonymous=data.is_anonymous,
            attachments=list(attachments or []),
        )
        self._append(concern, ConcernStatusEnum.submitted, actor, "")
        await self.store.add(db, concern)
        await self._commit(db)

        concern = await self.store.require(db, concern.id)
        log.info(
            "concern_submitted",
            extra={"concern_id": concern.id, "ticket_id": concern.ticket_id, "student_id": actor.id},
        )
        self._notify(
            events.CONCERN_SUBMITTED,
            {"to": self.settings.notify_admin_email, "concern": concern_brief(concern)},
        )
        return concern

    async def transition(
        self,
        db: AsyncSession,
        concern: Concern,
        new_status: ConcernStatusEnum,
        actor: AuthIdentity,
        comment: str | None = None,
    ) -> Concern:
        authorize(
            can_transition(actor, concern, new_status),
            "Not authorized to update this concern",
        )
        previous = concern.status
        self._apply_status(concern, new_status)
        entry = self._append(concern, new_status, actor, comment)
        await self._commit(db)

        concern = await self.store.require(db, concern.id)
        log.info(
            "concern_status_updated",
            extra={
                "concern_id": concern.id,
                "from": previous.value,
                "to": new_status.value,
                "actor_id": actor.id,
            },
        )
        update = {
            "concern_id": concern.id,
            "ticket_id": concern.ticket_id,
            "status": new_status.value,
            "updated_by": actor.name,
            "comment": entry.comment,
            "timestamp": entry.timestamp,
        }
        self._publish(concern_room(concern.id), "status-update", update)
        self._publish(
            user_room(concern.student_id),
            "notification",
            {
                "type": "status-update",
                "message": f"Your concern {concern.ticket_id} is now {new_status.value}",
                **update,
            },
        )
        self._notify(
            events.CONCERN_STATUS_UPDATED,
            {
                "concern": concern_brief(concern),
                "updated_by": actor.name,
                "comment": entry.comment,
            },
        )
        return concern

    async def assign(
        self, db: AsyncSession, concern: Concern, mentor_id: int, actor: AuthIdentity
    ) -> Concern:
        authorize(can_assign(actor, concern), "Not authorized to assign concerns")

        mentor = await db.get(User, mentor_id)
        if mentor is None:
            raise NotFound("Mentor not found", entity="user", entity_id=mentor_id)
        if mentor.role not in STAFF_ROLES:
            raise ValidationFailed("Assignee must be a mentor or admin", field="mentor_id")

        comment = f"Assigned to {mentor.name}"
        concern.assigned_to_id = mentor.id
        self._apply_status(concern, ConcernStatusEnum.assigned)
        entry = self._append(concern, ConcernStatusEnum.assigned, actor, comment)
        await self._commit(db)

        concern = await self.store.require(db, concern.id)
        log.info(
            "concern_assigned",
            extra={"concern_id": concern.id, "mentor_id": mentor.id, "actor_id": actor.id},
        )
        update = {
            "concern_id": concern.id,
            "ticket_id": concern.ticket_id,
            "status": ConcernStatusEnum.assigned.value,
            "updated_by": actor.name,
            "assigned_to": mentor.name,
            "comment": comment,
            "timestamp": entry.timestamp,
        }
        self._publish(concern_room(concern.id), "status-update", update)
        self._publish(
            user_room(concern.student_id),
            "notification",
            {
                "type": "status-update",
                "message": f"Your concern {concern.ticket_id} was assigned to {mentor.name}",
                **update,
            },
        )
        self._publish(
            user_room(mentor.id),
            "notification",
            {
                "type": "assignment",
                "message": f"Concern {concern.ticket_id} was assigned to you",
                **update,
            },
        )
        brief = concern_brief(concern)
        self._notify(
            events.CONCERN_ASSIGNED,
            {"concern": brief, "mentor_email": mentor.email, "mentor_name": mentor.name},
        )
        self._notify(
            events.CONCERN_STATUS_UPDATED,
            {"concern": brief, "updated_by": actor.name, "comment": comment},
        )
        return concern

    async def rate(
        self,
        db: AsyncSession,
        concern: Concern,
        actor: AuthIdentity,
        rating: int,
        feedback: str | None = None,
    ) -> Concern:
        authorize(can_rate(actor, concern), "Not authorized to rate this concern")
        if not rating_open(concern):
            raise ValidationFailed("Can only rate resolved or closed concerns", field="status")
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationFailed("Rating must be between 1 and 5", field="rating")
        if feedback is not None and len(feedback) > 1000:
            raise ValidationFailed("Feedback must be at most 1000 characters", field="feedback")

        concern.rating = rating
        concern.feedback = feedback or ""
        await self._commit(db)

        log.info("concern_rated", extra={"concern_id": concern.id, "rating": rating})
        return await self.store.require(db, concern.id)

    async def delete(self, db: AsyncSession, concern: Concern, actor: AuthIdentity) -> None:
        authorize(can_delete(actor, concern), "Not authorized to delete concerns")
        concern_id, ticket_id = concern.id, concern.ticket_id
        await self.store.delete(db, concern)
        await self._commit(db)
        log.info(
            "concern_deleted",
            extra={"concern_id": concern_id, "ticket_id": ticket_id, "actor_id": actor.id},
        )

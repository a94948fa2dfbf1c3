# concerndesk/services/chat.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from concerndesk.core.errors import ValidationFailed
from concerndesk.db.models import ChatMessage, Concern, utcnow
from concerndesk.schemas.chat import ChatMessageOut
from concerndesk.services.policy import AuthIdentity, authorize, can_access
from concerndesk.services.realtime import RealtimeBus, concern_room

log = logging.getLogger(__name__)

MAX_MESSAGE_LEN = 1000


def clean_message(message: str | None) -> str:
    """Обрізає пробіли; порожній або задовгий текст -> ValidationFailed."""
    text = (message or "").strip()
    if not text:
        raise ValidationFailed("Message is required", field="message")
    if len(text) > MAX_MESSAGE_LEN:
        raise ValidationFailed(
            f"Message must be at most {MAX_MESSAGE_LEN} characters", field="message"
        )
    return text


class ChatThread:
    """Чат усередині заявки. Доступ той самий, що й до заявки (can_access)."""

    def __init__(self, bus: RealtimeBus):
        self.bus = bus

    async def append(
        self,
        db: AsyncSession,
        concern: Concern,
        sender: AuthIdentity,
        message: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatMessage:
        authorize(can_access(sender, concern), "Not authorized to access this chat")

        text = clean_message(message)

        msg = ChatMessage(
            concern_id=concern.id,
            sender_id=sender.id,
            message=text,
            attachments=list(attachments or []),
            is_read=False,
        )
        db.add(msg)
        await db.commit()

        msg = (
            await db.execute(
                select(ChatMessage)
                .where(ChatMessage.id == msg.id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        log.info(
            "chat_message_created",
            extra={"concern_id": concern.id, "message_id": msg.id, "sender_id": sender.id},
        )

        payload = jsonable_encoder(ChatMessageOut.model_validate(msg))
        try:
            self.bus.publish(concern_room(concern.id), "new-message", payload)
        except Exception:
            log.exception("realtime_publish_failed", extra={"concern_id": concern.id})
        return msg

    async def list(
        self, db: AsyncSession, concern: Concern, actor: AuthIdentity
    ) -> Sequence[ChatMessage]:
        authorize(can_access(actor, concern), "Not authorized to access this chat")
        q = (
            select(ChatMessage)
            .where(ChatMessage.concern_id == concern.id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
            # після bulk-update у mark_read об'єкти в сесії застарілі
            .execution_options(populate_existing=True)
        )
        return (await db.execute(q)).scalars().all()

    async def mark_read(self, db: AsyncSession, concern: Concern, actor: AuthIdentity) -> int:
        """Позначає прочитаними чужі повідомлення. Повторний виклик поверне 0."""
        authorize(can_access(actor, concern), "Not authorized to access this chat")
        stmt = (
            update(ChatMessage)
            .where(
                ChatMessage.concern_id == concern.id,
                ChatMessage.sender_id != actor.id,
                ChatMessage.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        updated = int(result.rowcount or 0)
        log.info(
            "chat_marked_read",
            extra={"concern_id": concern.id, "actor_id": actor.id, "updated": updated},
        )
        return updated

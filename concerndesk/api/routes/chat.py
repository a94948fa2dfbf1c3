# concerndesk/api/routes/chat.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, File, Form, UploadFile, status

from concerndesk.api.deps import ChatDep, ConcernDep, DBDep, IdentityDep, SettingsDep
from concerndesk.schemas.chat import ChatMessageOut, MarkReadOut
from concerndesk.schemas.common import Envelope
from concerndesk.services.chat import clean_message
from concerndesk.services.policy import authorize, can_access
from concerndesk.services.uploads import CHAT_ATTACHMENTS_LIMIT, discard_uploads, save_uploads

router = APIRouter()


@router.get("/{concern_id}", response_model=Envelope[list[ChatMessageOut]])
async def list_messages(concern: ConcernDep, db: DBDep, actor: IdentityDep, chat: ChatDep):
    rows = await chat.list(db, concern, actor)
    data = [ChatMessageOut.model_validate(m) for m in rows]
    return Envelope[list[ChatMessageOut]](data=data, count=len(data))


@router.post("/{concern_id}", response_model=Envelope[ChatMessageOut], status_code=status.HTTP_201_CREATED)
async def send_message(
    concern: ConcernDep,
    db: DBDep,
    actor: IdentityDep,
    chat: ChatDep,
    settings: SettingsDep,
    message: str = Form(""),
    attachments: Optional[List[UploadFile]] = File(None),
):
    # без доступу чи з порожнім текстом файли на диск не пишемо
    authorize(can_access(actor, concern), "Not authorized to access this chat")
    text = clean_message(message)
    files = await save_uploads(attachments, CHAT_ATTACHMENTS_LIMIT, settings)
    try:
        msg = await chat.append(db, concern, actor, text, files)
    except Exception:
        await discard_uploads(files, settings)
        raise
    return Envelope[ChatMessageOut](
        message="Message sent successfully",
        data=ChatMessageOut.model_validate(msg),
    )


@router.put("/{concern_id}/read", response_model=Envelope[MarkReadOut])
async def mark_read(concern: ConcernDep, db: DBDep, actor: IdentityDep, chat: ChatDep):
    updated = await chat.mark_read(db, concern, actor)
    return Envelope[MarkReadOut](message="Messages marked as read", data=MarkReadOut(updated=updated))

# concerndesk/schemas/chat.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

from concerndesk.schemas.common import AttachmentOut
from concerndesk.schemas.users import SenderOut


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    concern_id: int
    sender: SenderOut
    message: str
    attachments: list[AttachmentOut] = []
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class MarkReadOut(BaseModel):
    updated: int

# concerndesk/schemas/common.py
from __future__ import annotations

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Єдиний конверт відповіді: {success, message?, data?, count?}."""
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
    count: Optional[int] = None


class AttachmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    filename: str
    original_name: str
    path: str
    mimetype: Optional[str] = None
    size: int
    uploaded_at: Optional[datetime] = None

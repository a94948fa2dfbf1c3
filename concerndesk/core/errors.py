# concerndesk/core/errors.py
"""
Доменні помилки ConcernDesk.

Ієрархія:
    DomainError (base)
    ├── NotFound          (404, сутності немає)
    ├── Unauthorized      (403, порушення політики доступу)
    ├── ValidationFailed  (400, некоректні поля / стан)
    └── Conflict          (409, конфлікт унікальності)

Все інше вважається Unexpected і віддається як 500.
Роутери нічого не ловлять самі: маппінг у конверт відповіді
робиться exception handler-ами в main.py.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class DomainError(Exception):
    status_code: int = 500

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class NotFound(DomainError):
    status_code = 404

    def __init__(self, message: str, entity: Optional[str] = None, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message, "NOT_FOUND")


class Unauthorized(DomainError):
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, "UNAUTHORIZED")


class ValidationFailed(DomainError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        code = f"VALIDATION_FAILED_{field.upper()}" if field else "VALIDATION_FAILED"
        super().__init__(message, code)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class Conflict(DomainError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, "CONFLICT")

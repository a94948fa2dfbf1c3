# concerndesk/api/deps.py
from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from concerndesk.core.config import Settings
from concerndesk.core.errors import Unauthorized
from concerndesk.core.security import decode_token
from concerndesk.db.models import Concern, RoleEnum, User
from concerndesk.db.session import get_session
from concerndesk.services.chat import ChatThread
from concerndesk.services.concerns import TicketStore
from concerndesk.services.lifecycle import LifecycleEngine
from concerndesk.services.policy import AuthIdentity

# OAuth2 bearer (для /api/docs); помилку 401 віддаємо самі, у форматі конверта
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# Тип для DI сесії БД
DBDep = Annotated[AsyncSession, Depends(get_session)]


# ==== Сервіси з app.state ====

def get_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings


def get_store(conn: HTTPConnection) -> TicketStore:
    return conn.app.state.store


def get_lifecycle(conn: HTTPConnection) -> LifecycleEngine:
    return conn.app.state.lifecycle


def get_chat(conn: HTTPConnection) -> ChatThread:
    return conn.app.state.chat


SettingsDep = Annotated[Settings, Depends(get_settings)]
StoreDep = Annotated[TicketStore, Depends(get_store)]
LifecycleDep = Annotated[LifecycleEngine, Depends(get_lifecycle)]
ChatDep = Annotated[ChatThread, Depends(get_chat)]


# ==== Автентифікація ====

async def user_from_token(db: AsyncSession, token: Optional[str], settings: Settings) -> Optional[User]:
    """Спільне для HTTP і WebSocket: None, якщо токен невалідний або юзер неактивний."""
    if not token:
        return None
    try:
        payload = decode_token(token, settings.jwt_secret, settings.jwt_alg)
        user_id = int(payload["sub"])
    except (ValueError, KeyError, TypeError):
        return None
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    db: DBDep,
    settings: SettingsDep,
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
) -> User:
    """
    Декодує Bearer JWT, дістає користувача з БД і перевіряє активність.
    """
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no token")
    user = await user_from_token(db, token, settings)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_identity(current: CurrentUser) -> AuthIdentity:
    return AuthIdentity.from_user(current)


IdentityDep = Annotated[AuthIdentity, Depends(get_identity)]


def require_role(*allowed: RoleEnum):
    """
    Пускає лише користувачів, чия роль входить у перелік allowed.
    Приклад: @router.get(..., dependencies=[Depends(require_role(RoleEnum.admin))])
    """
    allowed_set = frozenset(allowed)

    async def _guard(current: CurrentUser) -> User:
        if current.role not in allowed_set:
            raise Unauthorized(f"User role '{current.role.value}' is not authorized to access this route")
        return current

    return _guard


require_admin = require_role(RoleEnum.admin, RoleEnum.superadmin)


# ==== Заявка за шляхом ====

async def get_concern(concern_id: int, db: DBDep, store: StoreDep) -> Concern:
    return await store.require(db, concern_id)


ConcernDep = Annotated[Concern, Depends(get_concern)]

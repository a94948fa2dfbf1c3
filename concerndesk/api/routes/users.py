# concerndesk/api/routes/users.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, or_, select

from concerndesk.api.deps import CurrentUser, DBDep, IdentityDep, require_admin
from concerndesk.core.errors import NotFound, Unauthorized, ValidationFailed
from concerndesk.core.logging import log_extra
from concerndesk.db.models import CampusEnum, RoleEnum, User
from concerndesk.schemas.common import Envelope
from concerndesk.schemas.users import UserOut, UserUpdate
from concerndesk.services.concerns import like_pattern

router = APIRouter()
log = logging.getLogger(__name__)


async def _require_user(db, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found", entity="user", entity_id=user_id)
    return user


# ---------- ADMIN ----------
@router.get("", response_model=Envelope[list[UserOut]], dependencies=[Depends(require_admin)])
async def list_users(
    db: DBDep,
    role: Optional[RoleEnum] = None,
    campus: Optional[CampusEnum] = None,
    search: Optional[str] = Query(None, description="search by name/email"),
):
    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role)
    if campus is not None:
        stmt = stmt.where(User.campus == campus)
    if search and search.strip():
        pattern = like_pattern(search)
        stmt = stmt.where(
            or_(
                func.lower(User.name).like(pattern, escape="\\"),
                func.lower(User.email).like(pattern, escape="\\"),
            )
        )
    rows = (await db.execute(stmt.order_by(User.id.asc()))).scalars().all()
    data = [UserOut.model_validate(u) for u in rows]
    return Envelope[list[UserOut]](data=data, count=len(data))


@router.get("/{user_id}", response_model=Envelope[UserOut])
async def get_user(user_id: int, db: DBDep, current: CurrentUser):
    user = await _require_user(db, user_id)
    return Envelope[UserOut](data=UserOut.model_validate(user))


@router.put("/{user_id}", response_model=Envelope[UserOut])
async def update_user(
    user_id: int, payload: UserUpdate, request: Request, db: DBDep, actor: IdentityDep
):
    # власний профіль або адмін
    if actor.id != user_id and not actor.is_admin:
        raise Unauthorized("Not authorized to update this profile")
    user = await _require_user(db, user_id)

    changes = payload.model_dump(exclude_none=True)
    for field, value in changes.items():
        setattr(user, field, value.strip() if isinstance(value, str) else value)
    await db.commit()
    await db.refresh(user)

    log.info("user_updated", extra={**log_extra(request), "user_id": user.id, "fields": sorted(changes)})
    return Envelope[UserOut](message="Profile updated successfully", data=UserOut.model_validate(user))


@router.delete("/{user_id}", response_model=Envelope[None], dependencies=[Depends(require_admin)])
async def delete_user(user_id: int, request: Request, db: DBDep, actor: IdentityDep):
    if actor.id == user_id:
        raise ValidationFailed("You cannot delete your own account", field="user_id")
    user = await _require_user(db, user_id)
    await db.delete(user)
    await db.commit()
    log.info("user_deleted", extra={**log_extra(request), "user_id": user_id, "actor_id": actor.id})
    return Envelope[None](message="User deleted successfully")


@router.put("/{user_id}/toggle-status", response_model=Envelope[UserOut], dependencies=[Depends(require_admin)])
async def toggle_user_status(user_id: int, request: Request, db: DBDep, actor: IdentityDep):
    if actor.id == user_id:
        raise ValidationFailed("You cannot deactivate your own account", field="user_id")
    user = await _require_user(db, user_id)
    user.is_active = not user.is_active
    await db.commit()
    await db.refresh(user)

    state = "activated" if user.is_active else "deactivated"
    log.info("user_status_toggled", extra={**log_extra(request), "user_id": user.id, "state": state})
    return Envelope[UserOut](message=f"User {state} successfully", data=UserOut.model_validate(user))

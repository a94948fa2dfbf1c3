# concerndesk/services/auth.py
from __future__ import annotations
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from concerndesk.core.config import Settings
from concerndesk.core.errors import Conflict
from concerndesk.core.security import create_access_token, hash_password, verify_password
from concerndesk.db.models import RoleEnum, User
from concerndesk.schemas.auth import RegisterIn


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(func.lower(User.email) == normalize_email(email)))
    return res.scalar_one_or_none()


async def authenticate(db: AsyncSession, *, email: str, password: str) -> Optional[User]:
    user = await get_user_by_email(db, email)
    if not user or not user.password_hash:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def register_user(db: AsyncSession, data: RegisterIn) -> User:
    """Самореєстрація завжди створює студента."""
    if await get_user_by_email(db, data.email):
        raise Conflict("User already exists")
    user = User(
        name=data.name.strip(),
        email=normalize_email(data.email),
        password_hash=hash_password(data.password),
        role=RoleEnum.student,
        campus=data.campus,
        batch=data.batch,
        phone=data.phone,
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise Conflict("User already exists") from e
    await db.refresh(user)
    return user


def make_token_for_user(user: User, settings: Settings) -> str:
    role_value = getattr(user.role, "value", user.role)  # Enum → str
    return create_access_token(
        subject=str(user.id),
        role=str(role_value),
        secret=settings.jwt_secret,
        expires_minutes=settings.jwt_expires_min,
        algorithm=settings.jwt_alg,
    )

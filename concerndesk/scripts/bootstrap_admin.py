# concerndesk/scripts/bootstrap_admin.py
from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from concerndesk.core.config import settings
from concerndesk.core.security import hash_password
from concerndesk.db.models import CampusEnum, RoleEnum, User
from concerndesk.db.session import Database, ensure_counters

DEMO_USERS = (
    # email, password, name, role
    ("mentor@example.com", "Mentor123!", "Demo Mentor", RoleEnum.mentor),
    ("student@example.com", "Student123!", "Demo Student", RoleEnum.student),
)


# ---------- helpers ----------
async def _get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email.strip().lower()))
    return res.scalar_one_or_none()


async def ensure_user(
    db: AsyncSession,
    *,
    email: str,
    role: RoleEnum,
    password_plain: Optional[str],
    name: str,
    campus: Optional[CampusEnum] = None,
) -> User:
    """
    Якщо користувача немає, створює його (потрібен password_plain).
    Якщо є, вирівнює роль/ім'я/активність (пароль не чіпає).
    """
    email = email.strip().lower()
    user = await _get_user_by_email(db, email)

    if user is None:
        if not password_plain:
            raise ValueError(f"Не задано пароль для нового користувача {email}")
        user = User(
            email=email,
            password_hash=hash_password(password_plain),
            role=role,
            name=name,
            campus=campus,
            is_active=True,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        print(f"[bootstrap] створено користувача: {email} ({role.value})")
        return user

    updated = False
    if user.role != role:
        user.role = role
        updated = True
    if name and user.name != name:
        user.name = name
        updated = True
    if not user.is_active:
        user.is_active = True
        updated = True

    if updated:
        await db.commit()
        print(f"[bootstrap] оновлено користувача: {email}")
    else:
        print(f"[bootstrap] існує без змін: {email} ({user.role.value})")
    return user


async def seed(
    db: AsyncSession,
    *,
    admin_email: str,
    admin_password: str,
    admin_name: str,
    superadmin: bool = False,
    make_demo: bool = False,
) -> None:
    await ensure_counters(db)
    await ensure_user(
        db,
        email=admin_email,
        role=RoleEnum.superadmin if superadmin else RoleEnum.admin,
        password_plain=admin_password,
        name=admin_name,
    )
    if make_demo:
        for email, password, name, role in DEMO_USERS:
            await ensure_user(
                db, email=email, role=role, password_plain=password, name=name, campus=CampusEnum.kochi
            )
    print("[bootstrap] завершено")


async def _run(args: argparse.Namespace) -> None:
    database = Database(settings.database_url)
    try:
        if args.create_schema:
            await database.create_all()
        async with database.session() as db:
            await seed(
                db,
                admin_email=args.email,
                admin_password=args.password,
                admin_name=args.name,
                superadmin=args.superadmin,
                make_demo=args.demo,
            )
    finally:
        await database.dispose()


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed admin та демо-користувачів")
    p.add_argument("email", nargs="?", default=settings.admin_email, help="Email адміністратора")
    p.add_argument("password", nargs="?", default=settings.admin_password, help="Пароль адміністратора")
    p.add_argument("-n", "--name", default=settings.admin_name, help="Ім'я адміністратора")
    p.add_argument("--superadmin", action="store_true", help="Створити як superadmin")
    p.add_argument("--demo", action="store_true", help="Створити demo-ментора і demo-студента")
    p.add_argument("--create-schema", action="store_true", help="metadata.create_all перед сідом (без alembic)")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    if not args.email:
        raise SystemExit("Помилка: не задано email адміністратора (аргумент або ADMIN_EMAIL у .env)")
    if not args.password:
        raise SystemExit("Помилка: не задано пароль адміністратора (аргумент або ADMIN_PASSWORD у .env)")
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()

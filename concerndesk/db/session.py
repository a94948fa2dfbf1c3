# concerndesk/db/session.py
from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from starlette.requests import HTTPConnection

from concerndesk.db.base import Base

log = logging.getLogger(__name__)


def _sqlite_fk_pragma(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Engine + фабрика сесій одного процесу.
    Створюється в create_app() і живе в app.state.db; закривається в lifespan.
    """

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, future=True)
        if self.engine.dialect.name == "sqlite":
            # sqlite не виконує ON DELETE без цього прагма
            event.listen(self.engine.sync_engine, "connect", _sqlite_fk_pragma)
        self.sessionmaker = async_sessionmaker(
            self.engine, expire_on_commit=False, class_=AsyncSession
        )

    def session(self) -> AsyncSession:
        return self.sessionmaker()

    async def create_all(self) -> None:
        # імпорт реєструє моделі в Base.metadata
        from concerndesk.db import models

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with self.session() as db:
            await ensure_counters(db)
        log.info("schema_ready", extra={"url": self.engine.url.render_as_string(hide_password=True)})

    async def dispose(self) -> None:
        await self.engine.dispose()


async def ensure_counters(db: AsyncSession) -> None:
    """Лічильник номерів заявок має існувати до першого submit."""
    from concerndesk.db.models import Concern, Counter

    exists = (
        await db.execute(select(Counter.name).where(Counter.name == Counter.CONCERN))
    ).scalar_one_or_none()
    if exists is None:
        total = (await db.execute(select(func.count()).select_from(Concern))).scalar_one()
        db.add(Counter(name=Counter.CONCERN, value=int(total)))
        await db.commit()


async def get_session(conn: HTTPConnection) -> AsyncIterator[AsyncSession]:
    """FastAPI-залежність: одна сесія на запит."""
    async with conn.app.state.db.session() as session:
        yield session

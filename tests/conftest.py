"""
Спільні фікстури.

Сервісні тести працюють з тимчасовою SQLite (aiosqlite) і справжніми
RealtimeBus / NotificationDispatcher; доставка сповіщень іде в RecordingSink.
HTTP/WebSocket тести піднімають create_app() через TestClient.
"""
import asyncio
from typing import Any, Dict, List, Mapping, Tuple

import pytest
from fastapi.testclient import TestClient

from concerndesk.core.config import Settings
from concerndesk.core.security import create_access_token, hash_password
from concerndesk.db.models import CampusEnum, CategoryEnum, RoleEnum, SeverityEnum, User
from concerndesk.db.session import Database
from concerndesk.schemas.concerns import ConcernCreate
from concerndesk.services.chat import ChatThread
from concerndesk.services.concerns import TicketStore
from concerndesk.services.lifecycle import LifecycleEngine
from concerndesk.services.notifications import NotificationDispatcher
from concerndesk.services.policy import AuthIdentity
from concerndesk.services.realtime import RealtimeBus

PASSWORD = "secret123"
# bcrypt повільний: хешуємо один раз на всю сесію
PASSWORD_HASH = hash_password(PASSWORD)

# key -> (name, role)
USERS = {
    "student": ("Asha Student", RoleEnum.student),
    "other_student": ("Ravi Student", RoleEnum.student),
    "mentor": ("Meera Mentor", RoleEnum.mentor),
    "other_mentor": ("Nikhil Mentor", RoleEnum.mentor),
    "admin": ("Anil Admin", RoleEnum.admin),
    "superadmin": ("Sara Super", RoleEnum.superadmin),
}


class RecordingSink:
    """NotificationSink, що просто запам'ятовує події."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def send(self, event_type: str, payload: Mapping[str, Any]) -> None:
        self.events.append((event_type, dict(payload)))

    def of(self, event_type: str) -> List[Dict[str, Any]]:
        return [p for e, p in self.events if e == event_type]


class FailingSink:
    def __init__(self):
        self.calls = 0

    def send(self, event_type: str, payload: Mapping[str, Any]) -> None:
        self.calls += 1
        raise ConnectionError("redis is down")


# =============================================================================
# Settings / DB
# =============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        notifications_backend="none",
        auto_create_schema=True,
        fatal_on_unhandled=False,
        jwt_secret="test-secret",
        log_level="WARNING",
    )


@pytest.fixture
async def database(settings):
    db = Database(settings.database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database):
    async with database.session() as s:
        yield s


async def _create_users(db) -> Dict[str, User]:
    out: Dict[str, User] = {}
    for key, (name, role) in USERS.items():
        user = User(
            name=name,
            email=f"{key}@example.com",
            password_hash=PASSWORD_HASH,
            role=role,
            campus=CampusEnum.kochi,
        )
        db.add(user)
        out[key] = user
    await db.commit()
    return out


@pytest.fixture
async def users(session) -> Dict[str, User]:
    return await _create_users(session)


@pytest.fixture
def ids(users) -> Dict[str, AuthIdentity]:
    """AuthIdentity для кожного тестового користувача."""
    return {key: AuthIdentity.from_user(u) for key, u in users.items()}


# =============================================================================
# Сервіси
# =============================================================================

@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


@pytest.fixture
async def bus():
    b = RealtimeBus(queue_size=10)
    await b.start()
    yield b
    await b.close()


@pytest.fixture
async def notifier(sink):
    d = NotificationDispatcher(sink)
    yield d
    await d.aclose()


@pytest.fixture
def store(settings) -> TicketStore:
    return TicketStore(settings)


@pytest.fixture
def engine(store, bus, notifier, settings) -> LifecycleEngine:
    return LifecycleEngine(store, bus, notifier, settings)


@pytest.fixture
def chat(bus) -> ChatThread:
    return ChatThread(bus)


@pytest.fixture
def concern_data() -> ConcernCreate:
    return ConcernCreate(
        title="  Projector broken in lab 2  ",
        description="The projector has not worked for a week.",
        category=CategoryEnum.infrastructure,
        severity=SeverityEnum.high,
    )


@pytest.fixture
def submit(engine, session, ids, concern_data):
    """Подати заявку від імені студента (за замовчуванням "student")."""

    async def _submit(who: str = "student", **overrides):
        data = concern_data.model_copy(update=overrides) if overrides else concern_data
        return await engine.submit(session, ids[who], data)

    return _submit


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def seeded_users(settings) -> Dict[str, Dict[str, Any]]:
    """Користувачі для HTTP-тестів: key -> {id, role, name}."""

    async def _seed():
        db = Database(settings.database_url)
        await db.create_all()
        async with db.session() as s:
            created = await _create_users(s)
            result = {
                key: {"id": u.id, "role": u.role, "name": u.name, "email": u.email}
                for key, u in created.items()
            }
        await db.dispose()
        return result

    return asyncio.run(_seed())


@pytest.fixture
def app(settings, sink, seeded_users):
    from concerndesk.main import create_app

    return create_app(settings, notification_sink=sink)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def password() -> str:
    return PASSWORD


@pytest.fixture
def tokens(settings, seeded_users) -> Dict[str, str]:
    return {
        key: create_access_token(
            subject=str(u["id"]),
            role=u["role"].value,
            secret=settings.jwt_secret,
            expires_minutes=30,
        )
        for key, u in seeded_users.items()
    }


@pytest.fixture
def auth(tokens):
    """auth("admin") -> заголовки з Bearer-токеном."""

    def _headers(who: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {tokens[who]}"}

    return _headers


@pytest.fixture
def create_concern(client, auth):
    """Подати заявку через API, повертає data з конверта."""

    def _create(who: str = "student", **fields) -> Dict[str, Any]:
        form = {
            "title": "Wi-Fi drops every evening",
            "description": "Connection in hostel block B drops after 7pm.",
            "category": "Infrastructure",
            "severity": "Medium",
        }
        form.update(fields)
        r = client.post("/api/concerns", data=form, headers=auth(who))
        assert r.status_code == 201, r.text
        return r.json()["data"]

    return _create

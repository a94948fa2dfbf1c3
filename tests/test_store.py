"""TicketStore: номер заявки, фільтри, пошук, статистика."""
import pytest
from sqlalchemy import delete

from concerndesk.core.config import Settings
from concerndesk.core.errors import NotFound
from concerndesk.db.models import (
    CategoryEnum,
    ConcernStatusEnum,
    Counter,
    SeverityEnum,
)
from concerndesk.schemas.concerns import ConcernFilters
from concerndesk.services.concerns import TicketStore, like_pattern


class TestTicketId:
    def test_format(self, store):
        assert store.format_ticket_id(1) == "BRT000001"
        assert store.format_ticket_id(123456) == "BRT123456"

    def test_custom_prefix_and_width(self, tmp_path):
        s = Settings(_env_file=None, ticket_prefix="TKT", ticket_id_width=4)
        assert TicketStore(s).format_ticket_id(7) == "TKT0007"

    async def test_missing_counter_is_seeded_from_count(self, store, session, submit):
        await submit()
        await submit()
        await session.execute(delete(Counter))
        await session.commit()

        concern = await submit()
        assert concern.ticket_id == "BRT000003"


class TestRequire:
    async def test_missing_concern(self, store, session):
        with pytest.raises(NotFound) as exc:
            await store.require(session, 12345)
        assert exc.value.message == "Concern not found"


class TestList:
    async def test_role_scoping(self, store, engine, session, submit, ids, users):
        mine = await submit()
        await submit("other_student")
        await engine.assign(session, mine, users["mentor"].id, ids["admin"])

        assert [c.id for c in await store.list(session, ids["student"])] == [mine.id]
        assert [c.id for c in await store.list(session, ids["mentor"])] == [mine.id]
        assert await store.list(session, ids["other_mentor"]) == []
        assert len(await store.list(session, ids["admin"])) == 2
        assert len(await store.list(session, ids["superadmin"])) == 2

    async def test_newest_first(self, store, session, submit, ids):
        first = await submit(title="first")
        second = await submit(title="second")
        rows = await store.list(session, ids["admin"])
        assert [c.id for c in rows] == [second.id, first.id]

    async def test_filters(self, store, engine, session, submit, ids):
        tech = await submit(category=CategoryEnum.technical, severity=SeverityEnum.critical)
        await submit(category=CategoryEnum.financial, severity=SeverityEnum.low)
        await engine.transition(session, tech, ConcernStatusEnum.in_progress, ids["admin"])

        by_category = await store.list(session, ids["admin"], ConcernFilters(category=CategoryEnum.technical))
        by_severity = await store.list(session, ids["admin"], ConcernFilters(severity=SeverityEnum.critical))
        by_status = await store.list(session, ids["admin"], ConcernFilters(status=ConcernStatusEnum.in_progress))

        assert [c.id for c in by_category] == [tech.id]
        assert [c.id for c in by_severity] == [tech.id]
        assert [c.id for c in by_status] == [tech.id]

    async def test_search_ticket_id_case_insensitive(self, store, session, submit, ids):
        concern = await submit(title="Library closes early")
        await submit(title="Mess food quality")

        for term in (concern.ticket_id.lower(), concern.ticket_id, "library", "LIBRARY CLOSES"):
            rows = await store.list(session, ids["admin"], ConcernFilters(search=term))
            assert [c.id for c in rows] == [concern.id], term

    async def test_search_treats_wildcards_literally(self, store, session, submit, ids):
        await submit(title="Fees 100 paid twice")
        rows = await store.list(session, ids["admin"], ConcernFilters(search="100%"))
        assert rows == []

    def test_like_pattern_escapes(self):
        assert like_pattern(" A_b%c ") == "%a\\_b\\%c%"


class TestStats:
    async def test_counts_and_distributions(self, store, engine, session, submit, ids):
        a = await submit(category=CategoryEnum.technical, severity=SeverityEnum.high)
        b = await submit(category=CategoryEnum.technical, severity=SeverityEnum.low)
        await submit(category=CategoryEnum.personal, severity=SeverityEnum.high)
        await engine.transition(session, a, ConcernStatusEnum.resolved, ids["admin"])
        await engine.transition(session, b, ConcernStatusEnum.closed, ids["admin"])

        stats = await store.stats(session)

        assert stats.total == 3
        assert stats.pending == 1
        assert stats.resolved == 1
        assert stats.closed == 1
        assert stats.by_status["Submitted"] == 1
        assert stats.by_status["Reopened"] == 0
        assert [(b.name, b.count) for b in stats.category_distribution] == [
            ("Technical", 2),
            ("Personal", 1),
        ]
        assert stats.severity_distribution[0].name == "High"
        assert stats.severity_distribution[0].count == 2

    async def test_empty(self, store, session):
        stats = await store.stats(session)
        assert stats.total == 0
        assert stats.category_distribution == []

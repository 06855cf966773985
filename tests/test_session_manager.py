from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from coverfit.models.models import AppState, ScoreResult
from coverfit.services.session_manager import InMemorySessionStore, MongoSessionStore, SessionManager
from coverfit.utils.exceptions import PersistenceError

NOW = datetime(2026, 3, 1, 12, 0, 0)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def _state(parsed_job=None):
    return AppState(
        job_description="Backend engineer wanted",
        cover_letter="Dear team, I build APIs.",
        parsed_data=parsed_job,
        coverage_results={"resp-0": ScoreResult(score=75, feedback="Mentioned")},
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def manager(store, clock):
    return SessionManager(store, max_age_days=30, clock=clock)


class TestSessionManager:
    """Saved state: save, restore-or-discard, clear"""

    @pytest.mark.asyncio
    async def test_save_stamps_and_restores(self, manager, parsed_job):
        saved = await manager.save("s1", _state(parsed_job))
        assert saved.last_saved == NOW

        restored = await manager.restore("s1")
        assert restored == saved
        assert restored.parsed_data.technicalSkills[0].summary == "Python"
        assert restored.coverage_results["resp-0"].score == 75

    @pytest.mark.asyncio
    async def test_missing_state(self, manager):
        assert await manager.restore("nobody") is None

    @pytest.mark.asyncio
    async def test_state_within_max_age_is_restored(self, manager, clock):
        await manager.save("s1", _state())
        clock.now = NOW + timedelta(days=29, hours=23)
        assert await manager.restore("s1") is not None

    @pytest.mark.asyncio
    async def test_expired_state_is_discarded(self, manager, store, clock):
        await manager.save("s1", _state())
        clock.now = NOW + timedelta(days=30)

        assert await manager.restore("s1") is None
        assert await store.load("s1") is None

    @pytest.mark.asyncio
    async def test_corrupt_state_is_discarded(self, manager, store):
        await store.save("s1", {"cover_letter": "x", "coverage_results": {"resp-0": {"score": "lots"}}, "last_saved": NOW})

        assert await manager.restore("s1") is None
        assert await store.load("s1") is None

    @pytest.mark.asyncio
    async def test_unreadable_store_restores_nothing(self, clock):
        store = InMemorySessionStore()
        store.load = AsyncMock(side_effect=ConnectionError("store down"))
        manager = SessionManager(store, clock=clock)
        assert await manager.restore("s1") is None

    @pytest.mark.asyncio
    async def test_clear(self, manager, store):
        await manager.save("s1", _state())
        await manager.clear("s1")
        assert await store.load("s1") is None
        assert await manager.restore("s1") is None

    @pytest.mark.asyncio
    async def test_save_failure_is_a_persistence_error(self, clock):
        store = InMemorySessionStore()
        store.save = AsyncMock(side_effect=ConnectionError("store down"))
        manager = SessionManager(store, clock=clock)
        with pytest.raises(PersistenceError):
            await manager.save("s1", _state())

    @pytest.mark.asyncio
    async def test_clear_failure_is_a_persistence_error(self, clock):
        store = InMemorySessionStore()
        store.clear = AsyncMock(side_effect=ConnectionError("store down"))
        manager = SessionManager(store, clock=clock)
        with pytest.raises(PersistenceError):
            await manager.clear("s1")


class TestMongoSessionStore:
    """Mongo adapter, with the collection mocked"""

    @pytest.mark.asyncio
    async def test_load_strips_mongo_fields(self):
        coll = MagicMock()
        coll.find_one = AsyncMock(return_value={"_id": "oid", "session_id": "s1", "cover_letter": "Hi"})
        assert await MongoSessionStore(coll).load("s1") == {"cover_letter": "Hi"}
        coll.find_one.assert_called_once_with({"session_id": "s1"})

    @pytest.mark.asyncio
    async def test_load_missing(self):
        coll = MagicMock()
        coll.find_one = AsyncMock(return_value=None)
        assert await MongoSessionStore(coll).load("s1") is None

    @pytest.mark.asyncio
    async def test_save_upserts_one_document(self):
        coll = MagicMock()
        coll.replace_one = AsyncMock()
        await MongoSessionStore(coll).save("s1", {"cover_letter": "Hi"})
        coll.replace_one.assert_called_once_with(
            {"session_id": "s1"},
            {"session_id": "s1", "cover_letter": "Hi"},
            upsert=True,
        )

    @pytest.mark.asyncio
    async def test_clear_deletes(self):
        coll = MagicMock()
        coll.delete_one = AsyncMock()
        await MongoSessionStore(coll).clear("s1")
        coll.delete_one.assert_called_once_with({"session_id": "s1"})

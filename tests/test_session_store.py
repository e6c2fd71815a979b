"""
Tests for the in-memory and SQL session stores.
"""

import pytest
import pytest_asyncio

from interview_flow.config import Settings
from interview_flow.errors import SessionNotFound, StorageError
from interview_flow.sessions.schemas import FlowSession, TurnRole
from interview_flow.sessions.store import (
    InMemorySessionStore,
    SessionStoreBase,
    SqlSessionStore,
    create_session_store,
)


def make_session(session_id: str = "s1", flow_name: str = "code_interview") -> FlowSession:
    session = FlowSession(session_id=session_id, flow_name=flow_name, step_index=1)
    session.variables = {"problem_statement": "Find the maximum subarray sum."}
    session.add_turn(TurnRole.ASSISTANT, "Which language?", step_index=1)
    session.add_turn(TurnRole.USER, "Python", step_index=1)
    return session


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    if request.param == "memory":
        store = InMemorySessionStore()
    else:
        store = SqlSessionStore(database_url=f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    yield store
    await store.close()


class TestSessionStore:
    """Contract tests run against every backend."""

    @pytest.mark.asyncio
    async def test_missing_session(self, store: SessionStoreBase) -> None:
        with pytest.raises(SessionNotFound):
            await store.load("nope")
        assert not await store.exists("nope")

    @pytest.mark.asyncio
    async def test_save_and_load(self, store: SessionStoreBase) -> None:
        session = make_session()
        await store.save(session)

        loaded = await store.load("s1")

        assert loaded.flow_name == "code_interview"
        assert loaded.step_index == 1
        assert loaded.variables == session.variables
        assert [(t.role, t.content) for t in loaded.history] == [
            (TurnRole.ASSISTANT, "Which language?"),
            (TurnRole.USER, "Python"),
        ]
        assert await store.exists("s1")

    @pytest.mark.asyncio
    async def test_loaded_copy_is_detached(self, store: SessionStoreBase) -> None:
        await store.save(make_session())

        loaded = await store.load("s1")
        loaded.variables["programming_language"] = "Python"
        loaded.history.clear()

        again = await store.load("s1")
        assert "programming_language" not in again.variables
        assert len(again.history) == 2

    @pytest.mark.asyncio
    async def test_save_overwrites_whole_snapshot(self, store: SessionStoreBase) -> None:
        await store.save(make_session())
        current = await store.load("s1")

        replacement = FlowSession(
            session_id="s1", flow_name="code_interview", step_index=2, version=current.version
        )
        replacement.variables = {"solution_code": "pass"}
        await store.save(replacement)

        loaded = await store.load("s1")
        assert loaded.step_index == 2
        assert loaded.variables == {"solution_code": "pass"}
        assert loaded.history == []

    @pytest.mark.asyncio
    async def test_delete(self, store: SessionStoreBase) -> None:
        await store.save(make_session())

        assert await store.delete("s1") is True
        assert await store.delete("s1") is False
        with pytest.raises(SessionNotFound):
            await store.load("s1")

    @pytest.mark.asyncio
    async def test_list_ids_by_flow(self, store: SessionStoreBase) -> None:
        await store.save(make_session("a"))
        await store.save(make_session("b", flow_name="other"))

        assert sorted(await store.list_ids()) == ["a", "b"]
        assert await store.list_ids(flow_name="other") == ["b"]

    @pytest.mark.asyncio
    async def test_list_ids_is_not_truncated(self, store: SessionStoreBase) -> None:
        for number in range(120):
            await store.save(make_session(f"s{number}"))

        assert len(await store.list_ids()) == 120
        assert len(await store.list_ids(flow_name="code_interview")) == 120

    @pytest.mark.asyncio
    async def test_versions_advance_on_each_save(self, store: SessionStoreBase) -> None:
        session = make_session()
        assert session.version == 0

        await store.save(session)
        assert session.version == 1
        loaded = await store.load("s1")
        assert loaded.version == 1

        await store.save(loaded)
        assert loaded.version == 2
        assert (await store.load("s1")).version == 2

    @pytest.mark.asyncio
    async def test_stale_copy_is_rejected(self, store: SessionStoreBase) -> None:
        await store.save(make_session())
        first = await store.load("s1")
        second = await store.load("s1")

        first.variables["programming_language"] = "Python"
        await store.save(first)

        second.variables["programming_language"] = "Rust"
        with pytest.raises(StorageError):
            await store.save(second)

        loaded = await store.load("s1")
        assert loaded.variables["programming_language"] == "Python"
        assert loaded.version == 2

    @pytest.mark.asyncio
    async def test_second_insert_of_new_session_is_rejected(self, store: SessionStoreBase) -> None:
        await store.save(make_session())

        with pytest.raises(StorageError):
            await store.save(make_session())

        assert (await store.load("s1")).version == 1

    @pytest.mark.asyncio
    async def test_save_after_delete_is_rejected(self, store: SessionStoreBase) -> None:
        await store.save(make_session())
        loaded = await store.load("s1")
        await store.delete("s1")

        with pytest.raises(StorageError):
            await store.save(loaded)
        assert not await store.exists("s1")


class TestSqlSessionStore:
    """Tests specific to the SQL backend."""

    @pytest.mark.asyncio
    async def test_persists_across_store_instances(self, tmp_path) -> None:
        url = f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}"
        first = SqlSessionStore(database_url=url)
        await first.save(make_session())
        await first.close()

        second = SqlSessionStore(database_url=url)
        loaded = await second.load("s1")
        await second.close()

        assert loaded.history[1].content == "Python"

    @pytest.mark.asyncio
    async def test_backend_failure_becomes_storage_error(self, tmp_path) -> None:
        store = SqlSessionStore(database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")

        with pytest.raises(StorageError):
            await store.save(make_session())
        await store.close()


class TestCreateSessionStore:
    """Tests for choosing the backend from settings."""

    def test_memory_from_settings(self) -> None:
        assert isinstance(create_session_store(Settings(session_store="memory")), InMemorySessionStore)

    @pytest.mark.asyncio
    async def test_sql_override_creates_parent_directory(self, tmp_path) -> None:
        settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'data' / 'flows.db'}")

        store = create_session_store(settings, backend="sql")

        assert isinstance(store, SqlSessionStore)
        assert (tmp_path / "data").is_dir()
        await store.close()

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            create_session_store(Settings(), backend="redis")

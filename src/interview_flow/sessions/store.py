"""
Session stores.

A store persists FlowSession snapshots keyed by session id. `save`
replaces the whole snapshot; the orchestrator only calls it after a call
has fully succeeded, so a stored snapshot always reflects a completed call.
Every save bumps the session version and is refused if the stored version
is no longer the one the session was loaded at.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from interview_flow.config import Settings, get_settings
from interview_flow.db.models import Base
from interview_flow.db.repository import FlowSessionRepository
from interview_flow.errors import SessionNotFound, StorageError
from interview_flow.sessions.schemas import FlowSession

logger = logging.getLogger(__name__)


class SessionStoreBase(ABC):
    """Abstract base class for session stores."""

    @abstractmethod
    async def load(self, session_id: str) -> FlowSession:
        """
        Load a session snapshot.

        Args:
            session_id: Session identifier.

        Returns:
            An independent copy of the stored session.

        Raises:
            SessionNotFound: If nothing is stored under the id.
            StorageError: If the backend fails.
        """
        ...

    @abstractmethod
    async def save(self, session: FlowSession) -> None:
        """
        Store a session snapshot, replacing any previous one.

        The save is rejected if another writer saved the session since this
        copy was loaded. On success `session.version` is the new version.

        Raises:
            StorageError: If the backend fails or the stored version moved on.
        """
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Delete a session; returns False if it did not exist."""
        ...

    @abstractmethod
    async def list_ids(self, flow_name: str | None = None) -> list[str]:
        """List stored session ids, optionally for one flow only."""
        ...

    async def exists(self, session_id: str) -> bool:
        try:
            await self.load(session_id)
        except SessionNotFound:
            return False
        return True

    async def close(self) -> None:
        """Release any backend resources."""
        return None


class InMemorySessionStore(SessionStoreBase):
    """Keeps serialized snapshots in a dict; for tests and single-process use."""

    def __init__(self) -> None:
        self._snapshots: dict[str, str] = {}
        self._flows: dict[str, str] = {}
        self._versions: dict[str, int] = {}

    async def load(self, session_id: str) -> FlowSession:
        snapshot = self._snapshots.get(session_id)
        if snapshot is None:
            raise SessionNotFound(session_id)
        return FlowSession.model_validate_json(snapshot)

    async def save(self, session: FlowSession) -> None:
        stored = self._versions.get(session.session_id, 0)
        if stored != session.version:
            raise StorageError(
                f"Session {session.session_id} was modified concurrently "
                f"(expected version {session.version}, found {stored})"
            )
        session.version = stored + 1
        self._snapshots[session.session_id] = session.model_dump_json()
        self._flows[session.session_id] = session.flow_name
        self._versions[session.session_id] = session.version

    async def delete(self, session_id: str) -> bool:
        self._flows.pop(session_id, None)
        self._versions.pop(session_id, None)
        return self._snapshots.pop(session_id, None) is not None

    async def list_ids(self, flow_name: str | None = None) -> list[str]:
        return [
            session_id
            for session_id, name in self._flows.items()
            if flow_name is None or name == flow_name
        ]


class SqlSessionStore(SessionStoreBase):
    """
    Stores snapshots in a SQL database through SQLAlchemy's async engine.

    The table is created on first use. Any SQLAlchemy failure surfaces as
    StorageError.
    """

    def __init__(self, database_url: str | None = None, engine: AsyncEngine | None = None) -> None:
        """
        Initialize the store.

        Args:
            database_url: Async SQLAlchemy URL; defaults to the configured one.
            engine: Pre-built engine, used instead of `database_url` when given.
        """
        if engine is None:
            engine = create_async_engine(database_url or get_settings().database_url)
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._schema_ready = True
            logger.info("Session table ready")

    async def load(self, session_id: str) -> FlowSession:
        try:
            await self._ensure_schema()
            async with self._session_factory() as db:
                snapshot = await FlowSessionRepository(db).get_snapshot(session_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load session {session_id}: {e}")
            raise StorageError(f"Failed to load session {session_id}: {e}") from e

        if snapshot is None:
            raise SessionNotFound(session_id)
        return FlowSession.model_validate(snapshot)

    async def save(self, session: FlowSession) -> None:
        try:
            await self._ensure_schema()
            async with self._session_factory() as db:
                async with db.begin():
                    version = await FlowSessionRepository(db).save_snapshot(session)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save session {session.session_id}: {e}")
            raise StorageError(f"Failed to save session {session.session_id}: {e}") from e
        session.version = version

    async def delete(self, session_id: str) -> bool:
        try:
            await self._ensure_schema()
            async with self._session_factory() as db:
                async with db.begin():
                    repo = FlowSessionRepository(db)
                    model = await repo.get_by_id(session_id)
                    if model is None:
                        return False
                    await repo.delete(model)
                    return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete session {session_id}: {e}") from e

    async def list_ids(self, flow_name: str | None = None) -> list[str]:
        try:
            await self._ensure_schema()
            async with self._session_factory() as db:
                return await FlowSessionRepository(db).list_ids(flow_name=flow_name)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list sessions: {e}") from e

    async def close(self) -> None:
        await self._engine.dispose()


def create_session_store(
    settings: Settings | None = None,
    backend: str | None = None,
) -> SessionStoreBase:
    """
    Create the configured session store.

    Args:
        settings: Settings to read the backend and database URL from.
        backend: "memory" or "sql"; overrides the settings.

    Returns:
        A session store.
    """
    settings = settings or get_settings()
    backend = backend or settings.session_store

    if backend == "sql":
        url = make_url(settings.database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using SQL session store at {url.render_as_string(hide_password=True)}")
        return SqlSessionStore(database_url=settings.database_url)
    if backend == "memory":
        logger.info("Using in-memory session store")
        return InMemorySessionStore()
    raise ValueError(f"Unknown session store backend: {backend}")

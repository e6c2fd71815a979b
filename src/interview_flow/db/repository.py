"""
Repository pattern for database operations.

Provides a clean abstraction over SQLAlchemy for CRUD operations.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from interview_flow.db.models import Base, FlowSessionModel
from interview_flow.errors import StorageError

if TYPE_CHECKING:
    from interview_flow.sessions.schemas import FlowSession

T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    @property
    @abstractmethod
    def _model_class(self) -> type[T]:
        """Get the model class for this repository."""
        ...

    async def get_by_id(self, entity_id: str) -> T | None:
        """
        Get an entity by its ID.

        Args:
            entity_id: The entity's primary key.

        Returns:
            The entity if found, None otherwise.
        """
        return await self._session.get(self._model_class, entity_id)

    async def create(self, entity: T) -> T:
        """
        Create a new entity.

        Args:
            entity: The entity to create.

        Returns:
            The created entity.
        """
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def delete(self, entity: T) -> None:
        """
        Delete an entity.

        Args:
            entity: The entity to delete.
        """
        await self._session.delete(entity)
        await self._session.flush()


class FlowSessionRepository(BaseRepository[FlowSessionModel]):
    """Repository for flow session snapshots."""

    @property
    def _model_class(self) -> type[FlowSessionModel]:
        """Get the model class."""
        return FlowSessionModel

    async def save_snapshot(self, session: "FlowSession") -> int:
        """
        Create or fully overwrite the row for a session.

        The write only succeeds if the stored row is still at the version the
        session was loaded at. A session with version 0 has never been saved
        and is inserted.

        Args:
            session: Session snapshot to store.

        Returns:
            The new stored version.

        Raises:
            StorageError: If the row changed since the session was loaded.
        """
        new_version = session.version + 1
        snapshot = session.model_dump(mode="json")
        snapshot["version"] = new_version

        if session.version == 0:
            await self.create(
                FlowSessionModel(
                    id=session.session_id,
                    flow_name=session.flow_name,
                    step_index=session.step_index,
                    is_complete=session.is_complete,
                    version=new_version,
                    snapshot=snapshot,
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                )
            )
            return new_version

        stmt = (
            update(FlowSessionModel)
            .where(
                FlowSessionModel.id == session.session_id,
                FlowSessionModel.version == session.version,
            )
            .values(
                flow_name=session.flow_name,
                step_index=session.step_index,
                is_complete=session.is_complete,
                version=new_version,
                snapshot=snapshot,
                updated_at=session.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise StorageError(
                f"Session {session.session_id} was modified concurrently "
                f"(expected version {session.version})"
            )
        return new_version

    async def get_snapshot(self, session_id: str) -> dict[str, Any] | None:
        """
        Get the stored snapshot for a session.

        Args:
            session_id: Session identifier.

        Returns:
            The JSON snapshot, or None if no row exists.
        """
        model = await self.get_by_id(session_id)
        if model is None:
            return None
        snapshot = dict(model.snapshot)
        snapshot["version"] = model.version
        return snapshot

    async def list_ids(self, flow_name: str | None = None) -> list[str]:
        """
        List session ids, most recently updated first.

        Args:
            flow_name: Only sessions of this flow, if given.

        Returns:
            Session ids.
        """
        stmt = select(FlowSessionModel.id).order_by(FlowSessionModel.updated_at.desc())
        if flow_name is not None:
            stmt = stmt.where(FlowSessionModel.flow_name == flow_name)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

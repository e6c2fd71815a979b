"""
SQLAlchemy models for database persistence.

Defines the database schema for flow session snapshots.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class FlowSessionModel(Base):
    """Database model for flow sessions; one row per session id."""

    __tablename__ = "flow_sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    flow_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    step_index: Mapped[int | None] = mapped_column(nullable=True)
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # bumped on every save; writes are conditional on the version read
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )

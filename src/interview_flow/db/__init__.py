"""
Database module for persistence.

Provides SQLAlchemy models and repository pattern for
flow session persistence.
"""

from interview_flow.db.models import Base, FlowSessionModel
from interview_flow.db.repository import BaseRepository, FlowSessionRepository

__all__ = [
    "Base",
    "FlowSessionModel",
    "BaseRepository",
    "FlowSessionRepository",
]

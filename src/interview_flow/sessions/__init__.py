"""
Session module: session snapshots and the stores that persist them.
"""

from interview_flow.sessions.schemas import ChatTurn, FlowSession, TurnRole
from interview_flow.sessions.store import (
    InMemorySessionStore,
    SessionStoreBase,
    SqlSessionStore,
    create_session_store,
)

__all__ = [
    "ChatTurn",
    "FlowSession",
    "TurnRole",
    "SessionStoreBase",
    "InMemorySessionStore",
    "SqlSessionStore",
    "create_session_store",
]

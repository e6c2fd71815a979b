"""
Pydantic schemas for flow sessions.

A session is the durable state of one in-progress flow execution: the
variables bound so far, the chat history and the active step pointer.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class TurnRole(str, Enum):
    """Role of the speaker in a chat turn."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatTurn(BaseModel):
    """A single turn in the session's chat history."""

    role: TurnRole = Field(..., description="Role of the speaker")
    content: str = Field(..., description="Content of the turn")
    step_index: int | None = Field(default=None, description="Active step when the turn was recorded")
    timestamp: datetime = Field(default_factory=_now_utc, description="When the turn occurred")


class FlowSession(BaseModel):
    """Snapshot of one flow execution, round-tripped through the session store."""

    session_id: str = Field(..., min_length=1, description="Opaque session identifier")
    flow_name: str = Field(..., description="Name of the flow this session executes")
    step_index: int | None = Field(
        default=None,
        description="Active step pointer; None before the first call, len(steps) once complete",
    )
    variables: dict[str, str] = Field(default_factory=dict, description="Bound variables")
    history: list[ChatTurn] = Field(default_factory=list, description="Ordered chat history")
    awaiting_input: bool = Field(default=False, description="Last turn asked the user for input")
    awaiting_transition: bool = Field(
        default=False,
        description="A completed step is waiting for the user to confirm moving on",
    )
    is_complete: bool = Field(default=False, description="Every step has been completed")
    turn_count: int = Field(default=0, description="Number of calls processed")
    step_iterations: int = Field(default=0, ge=0, description="Calls spent on the active step so far")
    version: int = Field(
        default=0,
        ge=0,
        description="Store version this snapshot was loaded at; 0 if never saved",
    )
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)

    def add_turn(self, role: TurnRole, content: str, step_index: int | None = None) -> ChatTurn:
        """
        Append a turn to the chat history.

        Args:
            role: Role of the speaker.
            content: Content of the turn.
            step_index: Step the turn belongs to.

        Returns:
            The created ChatTurn.
        """
        turn = ChatTurn(role=role, content=content, step_index=step_index)
        self.history.append(turn)
        self.updated_at = turn.timestamp
        return turn

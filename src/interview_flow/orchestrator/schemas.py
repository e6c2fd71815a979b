"""
Pydantic schemas for orchestrator responses.
"""

from enum import Enum

from pydantic import BaseModel, Field

from interview_flow.errors import ErrorKind


class FlowStatus(str, Enum):
    """Outcome of one execute_flow call."""

    NEEDS_INPUT = "needs_input"
    IN_PROGRESS = "in_progress"
    ADVANCED = "advanced"
    COMPLETE = "complete"
    ERROR = "error"


class FlowResponse(BaseModel):
    """What a caller gets back from one execute_flow call."""

    text: str = Field(default="", description="Assistant response text, or the error message")
    status: FlowStatus = Field(..., description="Outcome of the call")
    error: ErrorKind | None = Field(default=None, description="Error kind when status is ERROR")
    session_id: str = Field(..., description="Session the call ran against")
    step_index: int | None = Field(default=None, description="Active step pointer after the call")
    variables: dict[str, str] = Field(default_factory=dict, description="Bound variables after the call")

    @property
    def is_error(self) -> bool:
        return self.status == FlowStatus.ERROR

    @property
    def is_complete(self) -> bool:
        return self.status == FlowStatus.COMPLETE

    def __str__(self) -> str:
        return self.text

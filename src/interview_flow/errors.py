"""
Error taxonomy for flow loading and execution.

Load-time errors (MalformedFlow, MissingDependency) are raised before any
session starts. Run-time errors (GenerationFailed, StorageError) are turned
into error responses by the orchestrator, leaving the session untouched.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of error a caller can see in a flow response."""

    MALFORMED_FLOW = "malformed_flow"
    MISSING_DEPENDENCY = "missing_dependency"
    GENERATION_FAILED = "generation_failed"
    STORAGE_ERROR = "storage_error"
    SESSION_MISMATCH = "session_mismatch"
    PLUGIN_ERROR = "plugin_error"
    STEP_LIMIT_EXCEEDED = "step_limit_exceeded"


class InterviewFlowError(Exception):
    """Base class for all interview-flow errors."""

    kind: ErrorKind = ErrorKind.PLUGIN_ERROR


class MalformedFlow(InterviewFlowError):
    """The flow description is structurally invalid."""

    kind = ErrorKind.MALFORMED_FLOW

    def __init__(self, message: str, step_index: int | None = None) -> None:
        if step_index is not None:
            message = f"step {step_index}: {message}"
        super().__init__(message)
        self.step_index = step_index


class MissingDependency(MalformedFlow):
    """A step requires a variable that no earlier step provides."""

    kind = ErrorKind.MISSING_DEPENDENCY

    def __init__(self, variable: str, step_index: int) -> None:
        super().__init__(
            f"requires '{variable}' but no earlier step provides it",
            step_index=step_index,
        )
        self.variable = variable


class GenerationFailed(InterviewFlowError):
    """The chat-completion service failed and retries were exhausted."""

    kind = ErrorKind.GENERATION_FAILED

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class StorageError(InterviewFlowError):
    """The session store could not load or save a session."""

    kind = ErrorKind.STORAGE_ERROR


class SessionNotFound(InterviewFlowError):
    """No session snapshot exists for the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionFlowMismatch(InterviewFlowError):
    """A session id was reused with a different flow."""

    kind = ErrorKind.SESSION_MISMATCH


class StepLimitExceeded(InterviewFlowError):
    """A step used up its iteration budget without completing."""

    kind = ErrorKind.STEP_LIMIT_EXCEEDED

    def __init__(self, step_index: int, limit: int) -> None:
        super().__init__(f"step {step_index} did not complete within {limit} iterations")
        self.step_index = step_index
        self.limit = limit

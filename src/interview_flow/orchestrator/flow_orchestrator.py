"""
Flow orchestrator.

Executes a flow against a session one user turn at a time: selects the
active step, runs its plugins in order, applies their bindings and
persists the session before returning.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Mapping

from interview_flow.config import get_settings
from interview_flow.errors import (
    ErrorKind,
    GenerationFailed,
    InterviewFlowError,
    SessionFlowMismatch,
    SessionNotFound,
    StepLimitExceeded,
    StorageError,
)
from interview_flow.flows.schemas import (
    DEFAULT_TRANSITION_MESSAGE,
    CompletionType,
    FlowDefinition,
    StepDefinition,
)
from interview_flow.flows.variables import VariableStore
from interview_flow.models.llm_client import ChatCompletionError
from interview_flow.orchestrator.schemas import FlowResponse, FlowStatus
from interview_flow.plugins.base import (
    Advance,
    NeedsInput,
    PluginBinding,
    PluginContext,
    PluginError,
)
from interview_flow.plugins.registry import PluginRegistry
from interview_flow.sessions.schemas import FlowSession, TurnRole
from interview_flow.sessions.store import SessionStoreBase, create_session_store


def select_active_step(flow: FlowDefinition, variables: Mapping[str, str]) -> int | None:
    """
    Find the active step.

    Args:
        flow: The flow being executed.
        variables: Current bindings.

    Returns:
        Index of the earliest step whose requires are all bound and whose
        provides are not all bound, or None when no step qualifies.
    """
    for index, step in enumerate(flow.steps):
        if step.is_ready(variables) and not step.is_done(variables):
            return index
    return None


class FlowOrchestrator:
    """
    Runs flows against sessions held in a session store.

    The orchestrator keeps no session state between calls; every call loads
    the session, works on that copy and saves it only if the call succeeds.
    Calls for the same session id are serialized with a per-session lock.
    A call that races a writer outside this orchestrator loses at save time
    and comes back as a STORAGE_ERROR response.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        store: SessionStoreBase | None = None,
        max_step_iterations: int | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Plugins referenced by the flows this orchestrator runs.
            store: Session store. Creates the configured one if None.
            max_step_iterations: Calls one step may take before the session
                is stopped with an error. Uses settings if None.
        """
        self._logger = logging.getLogger(__name__)
        self._registry = registry
        self._store = store or create_session_store()
        self._max_step_iterations = max_step_iterations or get_settings().max_step_iterations
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def execute_flow(
        self,
        flow: FlowDefinition,
        session_id: str,
        user_input: str = "",
    ) -> FlowResponse:
        """
        Advance a session by one user turn.

        The first call for a session id creates the session; its utterance
        only starts the flow and is not recorded. Later utterances are added
        to the chat history before the active step runs.

        Args:
            flow: The flow to execute.
            session_id: Caller-chosen session identifier.
            user_input: The user's utterance.

        Returns:
            The response to show the user. Run-time failures come back as a
            response with status ERROR; the stored session is then unchanged.
        """
        lock = self._lock_for(session_id)
        async with lock:
            try:
                return await self._execute(flow, session_id, user_input)
            except (GenerationFailed, StorageError, SessionFlowMismatch, StepLimitExceeded) as e:
                self._logger.error(f"Session {session_id}: {e.kind.value}: {e}")
                return await self._error_response(session_id, e.kind, str(e))
            except ChatCompletionError as e:
                self._logger.error(f"Session {session_id}: chat completion failed: {e}")
                return await self._error_response(session_id, ErrorKind.GENERATION_FAILED, str(e))

    async def _execute(self, flow: FlowDefinition, session_id: str, user_input: str) -> FlowResponse:
        try:
            session = await self._store.load(session_id)
        except SessionNotFound:
            session = FlowSession(session_id=session_id, flow_name=flow.name)
            self._logger.info(f"Created session {session_id} for flow '{flow.name}'")

        if session.flow_name != flow.name:
            raise SessionFlowMismatch(
                f"Session {session_id} belongs to flow '{session.flow_name}', not '{flow.name}'"
            )

        if session.is_complete:
            return self._response(session, flow.completion_message, FlowStatus.COMPLETE)

        first_call = session.step_index is None
        if not first_call and user_input.strip():
            session.add_turn(TurnRole.USER, user_input.strip(), step_index=session.step_index)
        session.turn_count += 1

        if session.awaiting_transition:
            self._logger.debug(f"Session {session_id}: transition confirmed")
            session.awaiting_transition = False

        variables = VariableStore(session.variables)
        step_index = select_active_step(flow, variables.snapshot())
        if step_index is None:
            return await self._complete(flow, session, variables, [])

        if session.step_index != step_index:
            session.step_iterations = 0
        session.step_index = step_index
        session.step_iterations += 1
        if session.step_iterations > self._max_step_iterations:
            raise StepLimitExceeded(step_index, self._max_step_iterations)
        step = flow.steps[step_index]
        self._logger.debug(
            f"Session {session_id}: active step {step_index} ({step.goal}), "
            f"iteration {session.step_iterations}"
        )

        outputs: list[str] = []
        for binding in step.plugins:
            result = await self._invoke(binding, step, step_index, session, variables)

            if isinstance(result, PluginError):
                self._logger.error(f"Session {session_id}: plugin {binding.name} failed: {result.message}")
                return await self._error_response(session_id, result.error, result.message)

            if isinstance(result, NeedsInput):
                self._logger.debug(f"Session {session_id}: plugin {binding.name} needs input")
                outputs.append(result.prompt)
                session.awaiting_input = True
                return await self._finish(session, variables, outputs, FlowStatus.NEEDS_INPUT)

            self._apply_bindings(binding, result, variables)
            if result.output:
                outputs.append(result.output)

        session.awaiting_input = False
        if not step.is_done(variables.snapshot()):
            # Some outputs are still missing; wait for the user.
            session.awaiting_input = True
            return await self._finish(session, variables, outputs, FlowStatus.IN_PROGRESS)

        self._logger.info(f"Session {session_id}: step {step_index} complete")
        next_index = select_active_step(flow, variables.snapshot())
        if next_index is None:
            if step.transition_message:
                outputs.append(step.transition_message)
            return await self._complete(flow, session, variables, outputs)

        if step.completion_type == CompletionType.AT_LEAST_ONCE:
            outputs.append(step.transition_message or DEFAULT_TRANSITION_MESSAGE)
            session.awaiting_transition = True
        elif step.transition_message:
            outputs.append(step.transition_message)

        session.step_index = next_index
        session.step_iterations = 0
        return await self._finish(session, variables, outputs, FlowStatus.ADVANCED)

    async def _invoke(
        self,
        binding: PluginBinding,
        step: StepDefinition,
        step_index: int,
        session: FlowSession,
        variables: VariableStore,
    ) -> Advance | NeedsInput | PluginError:
        plugin = self._registry.get(binding.name)
        context = PluginContext(
            variables=variables.snapshot(),
            history=tuple(session.history),
            step_goal=step.goal,
            step_index=step_index,
        )
        return await plugin.invoke(context)

    def _apply_bindings(self, binding: PluginBinding, result: Advance, variables: VariableStore) -> None:
        for name, value in result.bindings.items():
            if name not in binding.outputs:
                self._logger.warning(f"Plugin {binding.name} tried to bind undeclared variable '{name}'")
                continue
            if not value:
                self._logger.warning(f"Plugin {binding.name} returned an empty value for '{name}'")
                continue
            if variables.bind(name, value):
                self._logger.debug(f"Bound '{name}'")

    async def _complete(
        self,
        flow: FlowDefinition,
        session: FlowSession,
        variables: VariableStore,
        outputs: list[str],
    ) -> FlowResponse:
        session.is_complete = True
        session.awaiting_input = False
        session.awaiting_transition = False
        session.step_index = len(flow.steps)
        outputs.append(flow.completion_message)
        self._logger.info(f"Session {session.session_id}: flow '{flow.name}' complete")
        return await self._finish(session, variables, outputs, FlowStatus.COMPLETE)

    async def _finish(
        self,
        session: FlowSession,
        variables: VariableStore,
        outputs: list[str],
        status: FlowStatus,
    ) -> FlowResponse:
        text = "\n\n".join(output for output in outputs if output)
        if text:
            session.add_turn(TurnRole.ASSISTANT, text, step_index=session.step_index)
        session.variables = variables.to_dict()
        await self._store.save(session)
        return self._response(session, text, status)

    @staticmethod
    def _response(session: FlowSession, text: str, status: FlowStatus) -> FlowResponse:
        return FlowResponse(
            text=text,
            status=status,
            session_id=session.session_id,
            step_index=session.step_index,
            variables=dict(session.variables),
        )

    async def _error_response(self, session_id: str, kind: ErrorKind, message: str) -> FlowResponse:
        step_index = None
        variables: dict[str, str] = {}
        try:
            stored = await self._store.load(session_id)
            step_index = stored.step_index
            variables = dict(stored.variables)
        except InterviewFlowError as e:
            self._logger.debug(f"No stored state to report for session {session_id}: {e}")
        return FlowResponse(
            text=message,
            status=FlowStatus.ERROR,
            error=kind,
            session_id=session_id,
            step_index=step_index,
            variables=variables,
        )

    async def get_session(self, session_id: str) -> FlowSession | None:
        """
        Get the stored state of a session.

        Args:
            session_id: Session identifier.

        Returns:
            The session, or None if it does not exist.
        """
        try:
            return await self._store.load(session_id)
        except SessionNotFound:
            return None

    async def reset_session(self, session_id: str) -> bool:
        """
        Delete a session so the next call starts the flow over.

        Returns:
            True if a session was deleted.
        """
        async with self._lock_for(session_id):
            deleted = await self._store.delete(session_id)
        if deleted:
            self._logger.info(f"Reset session {session_id}")
        return deleted

    async def close(self) -> None:
        """Close the session store."""
        await self._store.close()

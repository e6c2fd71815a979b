"""
Plugin invocation contract.

A plugin is one unit of prompt + model-call logic bound to a flow step. It
receives an immutable snapshot of the session's variables and chat history
and returns one of three results:

- Advance: zero or more new bindings plus text to surface.
- NeedsInput: a question for the user; nothing is bound.
- PluginError: the plugin could not produce a usable result.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from interview_flow.errors import ErrorKind
from interview_flow.models.llm_client import (
    GenerationOptions,
    LLMClientBase,
    Message,
    extract_delimited_json,
)
from interview_flow.sessions.schemas import ChatTurn, TurnRole

logger = logging.getLogger(__name__)


class PluginBinding(BaseModel):
    """Load-time record of a plugin's name and the variables it reads and writes."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Registered plugin name")
    inputs: tuple[str, ...] = Field(default=(), description="Variables the plugin reads")
    outputs: tuple[str, ...] = Field(default=(), description="Variables the plugin may bind")


@dataclass(frozen=True)
class PluginContext:
    """Per-call snapshot handed to a plugin."""

    variables: Mapping[str, str] = field(default_factory=dict)
    history: tuple[ChatTurn, ...] = ()
    step_goal: str = ""
    step_index: int = 0

    def get(self, name: str) -> str:
        """Get a variable's value; unfilled parameters arrive as empty string."""
        return self.variables.get(name, "") or ""


class Advance(BaseModel):
    """The plugin completed; `bindings` holds any newly produced variables."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["advance"] = "advance"
    output: str = ""
    bindings: dict[str, str] = Field(default_factory=dict)


class NeedsInput(BaseModel):
    """The plugin needs the user's reply before it can continue."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["needs_input"] = "needs_input"
    prompt: str


class PluginError(BaseModel):
    """The plugin failed without binding anything."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    error: ErrorKind = ErrorKind.PLUGIN_ERROR
    message: str = ""


PluginResult = Union[Advance, NeedsInput, PluginError]


class FlowPlugin(ABC):
    """
    Base class for flow plugins.

    Subclasses declare their name, goal, system prompt and the variables
    they read and write as class attributes, and implement `invoke`.
    """

    name: ClassVar[str]
    goal: ClassVar[str] = ""
    system_prompt: ClassVar[str] = ""
    inputs: ClassVar[tuple[str, ...]] = ()
    outputs: ClassVar[tuple[str, ...]] = ()
    options: ClassVar[GenerationOptions] = GenerationOptions()

    def __init__(self, llm_client: LLMClientBase) -> None:
        self._llm_client = llm_client

    @property
    def binding(self) -> PluginBinding:
        return PluginBinding(name=self.name, inputs=self.inputs, outputs=self.outputs)

    @abstractmethod
    async def invoke(self, context: PluginContext) -> PluginResult:
        """
        Run the plugin against a snapshot of the session.

        Args:
            context: Current bindings and chat history.

        Returns:
            Advance, NeedsInput or PluginError.

        Raises:
            GenerationFailed: If the chat-completion call fails for good.
        """
        ...

    def render_system_prompt(self, context: PluginContext) -> str:
        """Fill `{name}` placeholders in the system prompt from the plugin's inputs."""
        return self.system_prompt.format(**{name: context.get(name) for name in self.inputs})

    def build_messages(self, context: PluginContext) -> list[Message]:
        """System prompt, then the goal as a user message, then the running chat history."""
        messages = [
            Message(role="system", content=self.render_system_prompt(context)),
            Message(role="user", content=self.goal),
        ]
        messages.extend(
            Message(role="assistant" if turn.role == TurnRole.ASSISTANT else "user", content=turn.content)
            for turn in context.history
        )
        return messages

    async def generate(self, context: PluginContext) -> str:
        """Ask the model for the next reply in this plugin's conversation."""
        response = await self._llm_client.chat(self.build_messages(context), self.options)
        return response.content.strip()


class CollectingPlugin(FlowPlugin):
    """
    Plugin that gathers its outputs from the conversation.

    The model is told to converse with the user until the values are known
    and then reply with only a ```-fenced JSON object holding them. A plain
    reply is surfaced as a question; a fenced object is turned into
    bindings. Outputs may fill in across several turns.
    """

    # Output variable -> JSON key in the model's reply, when they differ.
    json_keys: ClassVar[dict[str, str]] = {}
    reprompt: ClassVar[str] = "Could you give me that once more?"

    def acknowledge(self, bindings: Mapping[str, str]) -> str:
        """Text surfaced once values have been collected."""
        return ""

    async def invoke(self, context: PluginContext) -> PluginResult:
        missing = [name for name in self.outputs if not context.get(name)]
        if not missing:
            return Advance()

        reply = await self.generate(context)
        data = extract_delimited_json(reply)
        if data is None:
            return NeedsInput(prompt=reply or self.reprompt)

        bindings: dict[str, str] = {}
        for name in missing:
            value = data.get(self.json_keys.get(name, name))
            if value is None:
                continue
            text = str(value).strip()
            if text:
                bindings[name] = text

        if not bindings:
            logger.debug(f"{self.name}: structured reply had none of {missing}")
            return NeedsInput(prompt=self.reprompt)

        logger.debug(f"{self.name}: collected {sorted(bindings)}")
        return Advance(output=self.acknowledge(bindings), bindings=bindings)

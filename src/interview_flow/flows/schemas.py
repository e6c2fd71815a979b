"""
Pydantic schemas for flow definitions.

A flow is an ordered, immutable sequence of steps. Each step names the
plugins that run for it and the variables it requires and provides.
"""

from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from interview_flow.plugins.base import PluginBinding

DEFAULT_TRANSITION_MESSAGE = "Shall we move on to the next part?"
DEFAULT_COMPLETION_MESSAGE = "This flow is complete. Thank you!"


class CompletionType(str, Enum):
    """How a step decides it is done."""

    ONCE = "once"
    AT_LEAST_ONCE = "at_least_once"


class StepDefinition(BaseModel):
    """One unit of flow progress with declared variable dependencies."""

    model_config = ConfigDict(frozen=True)

    goal: str = Field(default="", description="What the step is for (informational)")
    plugins: tuple[PluginBinding, ...] = Field(..., description="Plugins run in declared order")
    requires: tuple[str, ...] = Field(default=(), description="Variables that must be bound first")
    provides: tuple[str, ...] = Field(default=(), description="Variables the step binds")
    completion_type: CompletionType = Field(default=CompletionType.ONCE)
    transition_message: str | None = Field(default=None)

    def is_ready(self, variables: Mapping[str, str]) -> bool:
        """Every required variable has a non-empty value."""
        return all(variables.get(name) for name in self.requires)

    def is_done(self, variables: Mapping[str, str]) -> bool:
        """Every provided variable has a non-empty value."""
        return all(variables.get(name) for name in self.provides)


class FlowDefinition(BaseModel):
    """A named, ordered sequence of steps."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Flow name")
    goal: str = Field(default="", description="Overall goal of the flow")
    steps: tuple[StepDefinition, ...] = Field(..., description="Steps in execution order")
    completion_message: str = Field(
        default=DEFAULT_COMPLETION_MESSAGE,
        description="Response returned once every step is done",
    )

"""
Flow loading.

Parses a YAML flow description, resolves plugin names against a registry
and rejects flows that could never run to completion.
"""

import logging
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from interview_flow.errors import MalformedFlow, MissingDependency
from interview_flow.flows.schemas import CompletionType, FlowDefinition, StepDefinition
from interview_flow.plugins.base import PluginBinding
from interview_flow.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)

PACKAGED_FLOWS = "interview_flow.flows"

# camelCase spellings accepted for step keys
_KEY_ALIASES = {
    "completionType": "completion_type",
    "transitionMessage": "transition_message",
}


def _names(raw: Any, field: str, step_index: int) -> tuple[str, ...]:
    """Validate a list of variable or plugin names."""
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise MalformedFlow(f"'{field}' must be a list", step_index=step_index)

    names: list[str] = []
    for item in raw:
        if not isinstance(item, str) or not item.strip():
            raise MalformedFlow(f"'{field}' entries must be non-empty strings", step_index=step_index)
        name = item.strip()
        if name in names:
            raise MalformedFlow(f"'{name}' is listed twice in '{field}'", step_index=step_index)
        names.append(name)
    return tuple(names)


def _completion_type(raw: Any, step_index: int) -> CompletionType:
    if raw is None:
        return CompletionType.ONCE
    # Accept "at_least_once", "AtLeastOnce", "at-least-once"
    normalized = str(raw).replace("_", "").replace("-", "").lower()
    for member in CompletionType:
        if member.value.replace("_", "") == normalized:
            return member
    raise MalformedFlow(f"unknown completion type '{raw}'", step_index=step_index)


class FlowLoader:
    """
    Loads flow definitions and binds their plugins.

    Validation happens entirely at load time:
    - every step names at least one registered plugin and provides at least one variable;
    - the first step requires nothing;
    - no two steps provide the same variable;
    - every required variable is provided by an earlier step;
    - each plugin writes only variables its step provides, and together the
      step's plugins cover everything it provides.
    """

    def __init__(self, registry: PluginRegistry) -> None:
        self._registry = registry

    def load(self, source: str | Mapping[str, Any]) -> FlowDefinition:
        """
        Load a flow from YAML text or an already-parsed mapping.

        Args:
            source: YAML document text, or the parsed document.

        Returns:
            The validated flow.

        Raises:
            MalformedFlow: If the document is structurally invalid.
            MissingDependency: If a step requires a variable no earlier step provides.
        """
        if isinstance(source, str):
            try:
                document = yaml.safe_load(source)
            except yaml.YAMLError as e:
                raise MalformedFlow(f"invalid YAML: {e}") from e
        else:
            document = source

        flow = self._build(document)
        logger.info(f"Loaded flow '{flow.name}' with {len(flow.steps)} steps")
        return flow

    def load_file(self, path: str | Path) -> FlowDefinition:
        """Load a flow from a YAML file."""
        return self.load(Path(path).read_text(encoding="utf-8"))

    def load_packaged(self, name: str = "code_interview") -> FlowDefinition:
        """Load one of the flows shipped with the package."""
        text = resources.files(PACKAGED_FLOWS).joinpath("data").joinpath(f"{name}.yaml").read_text(encoding="utf-8")
        return self.load(text)

    def _build(self, document: Any) -> FlowDefinition:
        if not isinstance(document, Mapping):
            raise MalformedFlow("flow document must be a mapping")

        name = document.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MalformedFlow("flow must have a non-empty 'name'")

        raw_steps = document.get("steps")
        if not isinstance(raw_steps, list) or not raw_steps:
            raise MalformedFlow("flow must have a non-empty 'steps' list")

        steps: list[StepDefinition] = []
        provided_by: dict[str, int] = {}

        for index, raw_step in enumerate(raw_steps):
            step = self._build_step(raw_step, index)

            if index == 0 and step.requires:
                raise MalformedFlow(
                    f"the first step cannot require variables (requires {list(step.requires)})",
                    step_index=index,
                )
            for variable in step.requires:
                if variable not in provided_by:
                    raise MissingDependency(variable, step_index=index)
            for variable in step.provides:
                if variable in provided_by:
                    raise MalformedFlow(
                        f"'{variable}' is already provided by step {provided_by[variable]}",
                        step_index=index,
                    )
                provided_by[variable] = index

            steps.append(step)

        extra: dict[str, Any] = {}
        if document.get("completion_message"):
            extra["completion_message"] = str(document["completion_message"])

        return FlowDefinition(
            name=name.strip(),
            goal=str(document.get("goal") or ""),
            steps=tuple(steps),
            **extra,
        )

    def _build_step(self, raw_step: Any, index: int) -> StepDefinition:
        if not isinstance(raw_step, Mapping):
            raise MalformedFlow("step must be a mapping", step_index=index)
        raw = {_KEY_ALIASES.get(key, key): value for key, value in raw_step.items()}

        plugin_names = _names(raw.get("plugins"), "plugins", index)
        if not plugin_names:
            raise MalformedFlow("step must reference at least one plugin", step_index=index)
        requires = _names(raw.get("requires"), "requires", index)
        provides = _names(raw.get("provides"), "provides", index)
        if not provides:
            raise MalformedFlow("step must provide at least one variable", step_index=index)

        bindings = tuple(self._bind(plugin_name, provides, index) for plugin_name in plugin_names)

        covered = {name for binding in bindings for name in binding.outputs}
        uncovered = [name for name in provides if name not in covered]
        if uncovered:
            raise MalformedFlow(f"no plugin in the step outputs {uncovered}", step_index=index)

        transition_message = raw.get("transition_message")
        return StepDefinition(
            goal=str(raw.get("goal") or ""),
            plugins=bindings,
            requires=requires,
            provides=provides,
            completion_type=_completion_type(raw.get("completion_type"), index),
            transition_message=str(transition_message) if transition_message else None,
        )

    def _bind(self, plugin_name: str, provides: tuple[str, ...], index: int) -> PluginBinding:
        if plugin_name not in self._registry:
            raise MalformedFlow(f"unknown plugin '{plugin_name}'", step_index=index)

        binding = self._registry.binding(plugin_name)
        stray = [name for name in binding.outputs if name not in provides]
        if stray:
            raise MalformedFlow(
                f"plugin '{plugin_name}' writes {stray}, which the step does not provide",
                step_index=index,
            )
        return binding

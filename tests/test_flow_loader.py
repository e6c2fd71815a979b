"""
Tests for loading and validating flow descriptions.
"""

import pytest

from interview_flow.errors import MalformedFlow, MissingDependency
from interview_flow.flows.loader import FlowLoader
from interview_flow.flows.schemas import DEFAULT_COMPLETION_MESSAGE, CompletionType
from interview_flow.models.llm_client import LLMClientBase, LLMResponse
from interview_flow.plugins.base import Advance, FlowPlugin
from interview_flow.plugins.interviewer import build_interviewer_registry
from interview_flow.plugins.registry import PluginRegistry


class NoLLM(LLMClientBase):
    async def chat(self, messages, options=None) -> LLMResponse:
        raise AssertionError("loading a flow must not call the model")


class ProvideA(FlowPlugin):
    name = "ProvideA"
    outputs = ("a",)

    async def invoke(self, context):
        return Advance(bindings={"a": "1"})


class ProvideB(FlowPlugin):
    name = "ProvideB"
    inputs = ("a",)
    outputs = ("b",)

    async def invoke(self, context):
        return Advance(bindings={"b": "2"})


class ProvideCD(FlowPlugin):
    name = "ProvideCD"
    outputs = ("c", "d")

    async def invoke(self, context):
        return Advance(bindings={"c": "3", "d": "4"})


VALID_FLOW = """
name: sample
goal: exercise the loader
steps:
  - goal: first
    plugins: [ProvideA]
    provides: [a]
  - goal: second
    plugins: [ProvideB]
    requires: [a]
    provides: [b]
    completionType: AtLeastOnce
    transitionMessage: Ready for more?
"""


@pytest.fixture
def loader() -> FlowLoader:
    llm = NoLLM()
    return FlowLoader(PluginRegistry([ProvideA(llm), ProvideB(llm), ProvideCD(llm)]))


class TestValidFlows:
    """Tests for flows that load."""

    def test_loads_steps_in_order(self, loader: FlowLoader) -> None:
        flow = loader.load(VALID_FLOW)

        assert flow.name == "sample"
        assert flow.goal == "exercise the loader"
        assert [step.goal for step in flow.steps] == ["first", "second"]
        assert flow.steps[0].requires == ()
        assert flow.steps[1].requires == ("a",)
        assert flow.completion_message == DEFAULT_COMPLETION_MESSAGE

    def test_resolves_plugin_bindings(self, loader: FlowLoader) -> None:
        flow = loader.load(VALID_FLOW)

        binding = flow.steps[1].plugins[0]
        assert binding.name == "ProvideB"
        assert binding.inputs == ("a",)
        assert binding.outputs == ("b",)

    def test_camel_case_keys_and_completion_type(self, loader: FlowLoader) -> None:
        flow = loader.load(VALID_FLOW)

        assert flow.steps[0].completion_type == CompletionType.ONCE
        assert flow.steps[1].completion_type == CompletionType.AT_LEAST_ONCE
        assert flow.steps[1].transition_message == "Ready for more?"

    def test_loads_parsed_mapping(self, loader: FlowLoader) -> None:
        flow = loader.load(
            {
                "name": "mapping",
                "completion_message": "All done.",
                "steps": [{"plugins": ["ProvideCD"], "provides": ["c", "d"]}],
            }
        )
        assert flow.steps[0].provides == ("c", "d")
        assert flow.completion_message == "All done."

    def test_load_file(self, loader: FlowLoader, tmp_path) -> None:
        path = tmp_path / "flow.yaml"
        path.write_text(VALID_FLOW, encoding="utf-8")
        assert loader.load_file(path).name == "sample"

    def test_packaged_code_interview(self) -> None:
        loader = FlowLoader(build_interviewer_registry(NoLLM()))

        flow = loader.load_packaged()

        assert flow.name == "code_interview"
        assert len(flow.steps) == 5
        assert [binding.name for binding in flow.steps[1].plugins] == [
            "CollectPreferredLanguagePlugin",
            "GenerateFunctionSignaturePlugin",
        ]
        assert flow.steps[-1].provides == ("interview_feedback", "decision")


class TestMalformedFlows:
    """Tests for flows rejected at load time."""

    @pytest.mark.parametrize(
        "document",
        [
            "name: [unclosed",
            "- just\n- a\n- list",
            "steps:\n  - plugins: [ProvideA]\n    provides: [a]",
            "name: empty\nsteps: []",
            "name: x\nsteps:\n  - just a string",
        ],
    )
    def test_structural_errors(self, loader: FlowLoader, document: str) -> None:
        with pytest.raises(MalformedFlow):
            loader.load(document)

    def test_step_without_plugins(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow, match="at least one plugin"):
            loader.load("name: x\nsteps:\n  - provides: [a]\n    plugins: []")

    def test_step_without_provides(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow, match="provide at least one variable"):
            loader.load("name: x\nsteps:\n  - plugins: [ProvideA]")

    def test_first_step_with_requires(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow) as exc_info:
            loader.load("name: x\nsteps:\n  - plugins: [ProvideB]\n    requires: [a]\n    provides: [b]")
        assert exc_info.value.step_index == 0

    def test_missing_dependency(self, loader: FlowLoader) -> None:
        document = """
name: x
steps:
  - plugins: [ProvideCD]
    provides: [c, d]
  - plugins: [ProvideB]
    requires: [a]
    provides: [b]
"""
        with pytest.raises(MissingDependency) as exc_info:
            loader.load(document)

        assert exc_info.value.variable == "a"
        assert exc_info.value.step_index == 1

    def test_requires_from_a_later_step_is_missing(self, loader: FlowLoader) -> None:
        document = """
name: x
steps:
  - plugins: [ProvideCD]
    provides: [c, d]
  - plugins: [ProvideB]
    requires: [a]
    provides: [b]
  - plugins: [ProvideA]
    provides: [a]
"""
        with pytest.raises(MissingDependency):
            loader.load(document)

    def test_provides_collision(self, loader: FlowLoader) -> None:
        document = """
name: x
steps:
  - plugins: [ProvideA]
    provides: [a]
  - plugins: [ProvideA]
    provides: [a]
"""
        with pytest.raises(MalformedFlow, match="already provided by step 0"):
            loader.load(document)

    def test_unknown_plugin(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow, match="unknown plugin 'Nope'"):
            loader.load("name: x\nsteps:\n  - plugins: [Nope]\n    provides: [a]")

    def test_plugin_writes_outside_step_provides(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow, match="does not provide"):
            loader.load("name: x\nsteps:\n  - plugins: [ProvideCD]\n    provides: [c]")

    def test_provides_not_covered_by_plugins(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow, match="no plugin in the step outputs"):
            loader.load("name: x\nsteps:\n  - plugins: [ProvideA]\n    provides: [a, z]")

    def test_unknown_completion_type(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow, match="completion type"):
            loader.load(
                "name: x\nsteps:\n  - plugins: [ProvideA]\n    provides: [a]\n    completion_type: twice"
            )

    def test_duplicate_names_in_list(self, loader: FlowLoader) -> None:
        with pytest.raises(MalformedFlow, match="listed twice"):
            loader.load("name: x\nsteps:\n  - plugins: [ProvideA, ProvideA]\n    provides: [a]")

"""
Coding-interview plugins.

The plugins that drive the packaged mock coding interview: generate a
problem, collect the candidate's language and a function signature, gather
the final solution and its complexity analysis, then conclude with feedback
and a decision.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from interview_flow.errors import ErrorKind
from interview_flow.models.llm_client import (
    GenerationOptions,
    LLMClientBase,
    extract_delimited_json,
)
from interview_flow.plugins.base import (
    Advance,
    CollectingPlugin,
    FlowPlugin,
    NeedsInput,
    PluginContext,
    PluginError,
    PluginResult,
)
from interview_flow.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)

PASSING_SCORE = 27
MAX_SCORE = 35

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\{.*?\}\s*```", re.DOTALL | re.IGNORECASE)


class GenerateProblemPlugin(FlowPlugin):
    """Writes the coding problem the candidate will solve."""

    name = "GenerateProblemPlugin"
    goal = "Generate the coding problem of finding the maximum subarray sum in a list."
    system_prompt = (
        "You write coding interview problems. Describe the problem of finding the "
        "contiguous subarray with the largest sum in a list of integers. Give a short "
        "statement and one example with its expected output. Do not give hints or a solution."
    )
    outputs = ("problem_statement",)

    async def invoke(self, context: PluginContext) -> PluginResult:
        if context.get("problem_statement"):
            return Advance()

        problem = await self.generate(context)
        if not problem:
            return PluginError(error=ErrorKind.PLUGIN_ERROR, message="The model returned an empty problem statement")

        return Advance(
            output=(
                "Hello! Thanks for joining the coding interview. "
                f"Here's the problem for you to solve:\n{problem}"
            ),
            bindings={"problem_statement": problem},
        )


class CollectPreferredLanguagePlugin(CollectingPlugin):
    """Finds out which programming language the candidate will use."""

    name = "CollectPreferredLanguagePlugin"
    goal = "Get the programming language the user intends to use."
    system_prompt = (
        "Your only task is to learn which programming language the user will use to "
        "solve the problem. Do not discuss the problem, give hints or write code.\n"
        "If the user has not named a language yet, ask them which one they will use.\n"
        "Once the user has named a language, reply with this JSON object only, wrapped "
        "in ``` delimiters:\n"
        '```\n{{"programming_language": "<language>"}}\n```'
    )
    outputs = ("programming_language",)
    reprompt = "Which programming language would you like to use?"


class GenerateFunctionSignaturePlugin(FlowPlugin):
    """Writes the function signature the candidate should implement."""

    name = "GenerateFunctionSignaturePlugin"
    goal = "Generate the function signature the user should implement the solution in."
    system_prompt = (
        "Problem:\n{problem_statement}\n\n"
        "Write only the function signature, with a short doc comment and an empty body, "
        "that the user should implement in {programming_language}. Do not write the solution."
    )
    inputs = ("problem_statement", "programming_language")
    outputs = ("function_signature",)

    async def invoke(self, context: PluginContext) -> PluginResult:
        if context.get("function_signature"):
            return Advance()
        if not context.get("programming_language"):
            return NeedsInput(prompt="Which programming language would you like to use?")

        signature = await self.generate(context)
        if not signature:
            return PluginError(error=ErrorKind.PLUGIN_ERROR, message="The model returned an empty function signature")

        return Advance(
            output=f"Here's a function signature you could use to implement your final solution:\n{signature}",
            bindings={"function_signature": signature},
        )


class PromptSolutionPlugin(CollectingPlugin):
    """Guides the candidate to a final solution without giving it away."""

    name = "PromptSolutionPlugin"
    goal = "Ask the user for the code implementation of the problem."
    system_prompt = (
        "You are an online coding interviewer. The user is solving this problem:\n"
        "{problem_statement}\n\n"
        "They will write it in {programming_language} using this signature:\n"
        "{function_signature}\n\n"
        "Be stingy with hints. Never write solution code, never explain the solution and "
        "never state its time or space complexity. You may answer questions about input "
        "size and validity. If the user proposes a brute force approach, ask them to "
        "optimize it. Ask them to implement their best approach.\n"
        "When the user has written code, ask whether it is their final implementation. "
        "Only after they confirm, reply with this JSON object only, wrapped in ``` delimiters:\n"
        '```\n{{"solution_code": "<the user\'s code>"}}\n```'
    )
    inputs = ("problem_statement", "programming_language", "function_signature")
    outputs = ("solution_code",)
    options = GenerationOptions(max_tokens=1024)
    reprompt = "Is that your final implementation?"

    def acknowledge(self, bindings: Mapping[str, str]) -> str:
        return "Thanks, I have your final solution."


class ComplexityAnalysisPlugin(CollectingPlugin):
    """Collects the candidate's time and space complexity analysis."""

    name = "ComplexityAnalysisPlugin"
    goal = "Ask the user to analyze the time and space complexity of their final solution."
    system_prompt = (
        "The user has submitted this solution to the problem below.\n"
        "Problem:\n{problem_statement}\n\nSolution:\n{solution_code}\n\n"
        "Your only task is to get the user's own time and space complexity analysis. "
        "Never give the analysis yourself. If the user talks about anything else, say "
        "you can only discuss complexity now.\n"
        "As soon as the user states a complexity, reply with this JSON object only, "
        "wrapped in ``` delimiters, leaving out any value they have not given:\n"
        '```\n{{"time_complexity": "<time>", "space_complexity": "<space>"}}\n```'
    )
    inputs = ("problem_statement", "solution_code", "time_complexity", "space_complexity")
    outputs = ("time_complexity", "space_complexity")
    options = GenerationOptions(max_tokens=1024)
    reprompt = "What are the time and space complexity of your solution?"

    def acknowledge(self, bindings: Mapping[str, str]) -> str:
        parts = []
        if "time_complexity" in bindings:
            parts.append(f"time complexity {bindings['time_complexity']}")
        if "space_complexity" in bindings:
            parts.append(f"space complexity {bindings['space_complexity']}")
        return "Noted: " + " and ".join(parts) + "."


class ConcludeInterviewPlugin(FlowPlugin):
    """Scores the interview and tells the candidate the decision."""

    name = "ConcludeInterviewPlugin"
    goal = "As the coding interviewer, give the user feedback and a decision based on their performance."
    system_prompt = (
        "Review the interview above. The user's solution:\n{solution_code}\n"
        "Their analysis: time {time_complexity}, space {space_complexity}.\n\n"
        "Score the user out of 10 each for code reliability, code readability and time and "
        "space optimality, and out of 5 for test case walk-through. Total out of "
        f"{MAX_SCORE}; the user passes above {PASSING_SCORE}, otherwise they may retake in a month.\n"
        "Write the feedback to the user with a justification for each score, then end "
        "with this JSON object wrapped in ``` delimiters:\n"
        '```\n{{"total_score": <number>, "decision": "pass" | "fail"}}\n```'
    )
    inputs = ("problem_statement", "solution_code", "time_complexity", "space_complexity")
    outputs = ("interview_feedback", "decision")
    options = GenerationOptions(max_tokens=2048)

    @staticmethod
    def _decide(data: Mapping[str, object] | None) -> str:
        if not data:
            return ""
        decision = str(data.get("decision") or "").strip().lower()
        if decision in ("pass", "fail"):
            return decision
        try:
            total = float(data.get("total_score"))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return ""
        return "pass" if total > PASSING_SCORE else "fail"

    async def invoke(self, context: PluginContext) -> PluginResult:
        feedback = context.get("interview_feedback")
        decision = context.get("decision")
        if feedback and decision:
            return Advance()

        reply = await self.generate(context)
        bindings: dict[str, str] = {}
        if not feedback:
            text = _FENCED_BLOCK.sub("", reply).strip()
            if text:
                bindings["interview_feedback"] = text
                feedback = text
        if not decision:
            decision = self._decide(extract_delimited_json(reply))
            if decision:
                bindings["decision"] = decision

        if not bindings:
            return PluginError(error=ErrorKind.PLUGIN_ERROR, message="The model returned no feedback")

        output = feedback
        if decision:
            output = f"{feedback}\nDecision: {decision}"
        return Advance(output=output, bindings=bindings)


def build_interviewer_registry(llm_client: LLMClientBase) -> PluginRegistry:
    """
    Create a registry holding every coding-interview plugin.

    Args:
        llm_client: Chat client shared by the plugins.

    Returns:
        The populated registry.
    """
    return PluginRegistry(
        [
            GenerateProblemPlugin(llm_client),
            CollectPreferredLanguagePlugin(llm_client),
            GenerateFunctionSignaturePlugin(llm_client),
            PromptSolutionPlugin(llm_client),
            ComplexityAnalysisPlugin(llm_client),
            ConcludeInterviewPlugin(llm_client),
        ]
    )

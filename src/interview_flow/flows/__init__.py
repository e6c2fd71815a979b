"""
Flow definitions: schemas, YAML loading and the write-once variable store.
"""

from interview_flow.flows.loader import FlowLoader
from interview_flow.flows.schemas import CompletionType, FlowDefinition, StepDefinition
from interview_flow.flows.variables import VariableStore

__all__ = [
    "FlowLoader",
    "FlowDefinition",
    "StepDefinition",
    "CompletionType",
    "VariableStore",
]

"""
Orchestrator module for executing flows against sessions.
"""

from interview_flow.orchestrator.flow_orchestrator import FlowOrchestrator, select_active_step
from interview_flow.orchestrator.schemas import FlowResponse, FlowStatus

__all__ = [
    "FlowOrchestrator",
    "FlowResponse",
    "FlowStatus",
    "select_active_step",
]

"""
Plugins module containing the units of prompt + model-call logic run by flow steps.
"""

from interview_flow.plugins.base import (
    Advance,
    CollectingPlugin,
    FlowPlugin,
    NeedsInput,
    PluginBinding,
    PluginContext,
    PluginError,
    PluginResult,
)
from interview_flow.plugins.interviewer import build_interviewer_registry
from interview_flow.plugins.registry import PluginRegistry

__all__ = [
    "Advance",
    "CollectingPlugin",
    "FlowPlugin",
    "NeedsInput",
    "PluginBinding",
    "PluginContext",
    "PluginError",
    "PluginResult",
    "PluginRegistry",
    "build_interviewer_registry",
]

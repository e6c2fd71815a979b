"""
I/O module for flow interfaces.
"""

from interview_flow.io.text_interface import FlowInterface, TextInterface

__all__ = ["FlowInterface", "TextInterface"]

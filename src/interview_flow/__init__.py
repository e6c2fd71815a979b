"""
interview-flow: step/variable flow execution for LLM-driven interviews.
"""

__version__ = "0.1.0"

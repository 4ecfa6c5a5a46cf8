"""
Codeloop: a tool-using coding agent loop.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .agent import AgentRunController, AlreadyRunningError, CancellationToken, UnknownToolNameError
from .store import ThreadStore, create_thread_store
from .thread import Step, Thread, ToolUseStep
from .tools import Tool, ToolContext, default_tools

__all__ = [
    "AgentRunController",
    "AlreadyRunningError",
    "CancellationToken",
    "Step",
    "Thread",
    "ThreadStore",
    "Tool",
    "ToolContext",
    "ToolUseStep",
    "UnknownToolNameError",
    "create_thread_store",
    "default_tools",
]

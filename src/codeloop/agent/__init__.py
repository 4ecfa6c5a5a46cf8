"""Agent run controller and tool dispatch for codeloop."""

from .cancellation import CancellationToken
from .controller import AgentRunController
from .dispatch import ToolDispatcher
from .errors import AgentError, AlreadyRunningError, RunCancelledError, UnknownToolNameError
from .usage import UsageSummary

__all__ = [
    "AgentError",
    "AgentRunController",
    "AlreadyRunningError",
    "CancellationToken",
    "RunCancelledError",
    "ToolDispatcher",
    "UnknownToolNameError",
    "UsageSummary",
]

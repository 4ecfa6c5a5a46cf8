"""Errors that end or refuse an agent run."""


class AgentError(Exception):
    """Base class for agent run errors."""


class AlreadyRunningError(AgentError):
    """A run was requested on a thread that already has a live run."""

    def __init__(self, thread_id: str, run_id: str):
        self.thread_id = thread_id
        self.run_id = run_id
        super().__init__(f"Thread '{thread_id}' already has a live run ({run_id})")


class UnknownToolNameError(AgentError):
    """The model called a function that no registered tool answers."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No tool handles the function '{name}'")


class RunCancelledError(AgentError):
    """The run observed its cancellation token at a checkpoint."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run {run_id} was cancelled")

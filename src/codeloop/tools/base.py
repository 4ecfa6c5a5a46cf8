"""Tool contract and the per-call context handed to tools.

Hidden design decisions:
- Tools answer structured calls by name and may claim plaintext turns as
  pseudo-functions
- A tool that does not recognise a call returns None so the next tool
  can try
- Paths written by the model are confined to the active directory
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ValidationError

from ..edits import FileEdit
from ..llm.models import FunctionCall, LLMFunction
from ..thread.models import ContextItem, TaggedFunctionResponse, UserVisibleLog

IGNORED_DIRS = frozenset({".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv", ".mypy_cache"})
NO_FOLDER_MESSAGE = "Tell the user they need to choose a folder before you can search the codebase."


class PathError(ValueError):
    """Base class for paths the model may not use."""


class NoActiveDirectoryError(PathError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No folder is open, so '{path}' cannot be resolved")


class OutsideWorkspaceError(PathError):
    def __init__(self, path: str, root: Path):
        self.path = path
        self.root = root
        super().__init__(f"'{path}' is outside the workspace folder {root}")


class ReviewDecision(BaseModel):
    """The user's verdict on a batch of proposed file edits."""

    kind: Literal["accept", "accept_with_comment", "reject", "request_changes"] = "accept"
    comment: str = ""

    @classmethod
    def accept(cls) -> "ReviewDecision":
        return cls()


EditReviewer = Callable[[list[FileEdit]], Awaitable[ReviewDecision]]
LogSink = Callable[[UserVisibleLog], None]
DebugCallback = Callable[[str, str, str], None]


def _discard_log(log: UserVisibleLog) -> None:
    return None


@dataclass
class ToolContext:
    """Environment of one tool invocation.

    Attributes:
        active_directory: Workspace root; None when no folder is open
        log: Receives user-visible logs for the call being handled
        review_edits: Asks the user to review edits; None accepts everything
    """

    active_directory: Path | None = None
    log: LogSink = field(default=_discard_log)
    review_edits: EditReviewer | None = None

    def with_log(self, log: LogSink) -> "ToolContext":
        return replace(self, log=log)

    def resolve_path(self, path: str) -> Path:
        """Map a path written by the model to an absolute path in the workspace.

        Absolute paths already inside the workspace are kept; anything else
        is treated as relative to the workspace root, ignoring a leading "/".

        Raises:
            NoActiveDirectoryError: If no folder is open
            OutsideWorkspaceError: If the path escapes the workspace
        """
        if self.active_directory is None:
            raise NoActiveDirectoryError(path)

        root = self.active_directory.resolve()
        candidate = Path(path)
        if candidate.is_absolute() and candidate.resolve().is_relative_to(root):
            return candidate.resolve()

        resolved = (root / path.lstrip("/")).resolve()
        if not resolved.is_relative_to(root):
            raise OutsideWorkspaceError(path, root)
        return resolved

    def relative_path(self, path: str | Path) -> str:
        """Workspace-relative form of `path`, or the path itself if it lies outside."""
        if self.active_directory is None:
            return str(path)
        try:
            return str(Path(path).resolve().relative_to(self.active_directory.resolve()))
        except ValueError:
            return str(path)


def parse_call_arguments(call: FunctionCall, model: type[BaseModel]) -> BaseModel:
    """Validate a call's JSON arguments against a pydantic model.

    Raises:
        ValueError: If the arguments are not valid JSON or do not match
    """
    try:
        return model.model_validate_json(call.arguments or "{}")
    except ValidationError as e:
        raise ValueError(f"Invalid arguments for {call.name}: {e.errors(include_url=False)}") from e


class Tool(ABC):
    """Abstract base class for tools the agent can use.

    Subclasses list their callable functions, answer the calls addressed to
    them and may contribute text to the system prompt.
    """

    def __init__(self) -> None:
        self._debug_callback: DebugCallback | None = None

    def set_debug_callback(self, callback: DebugCallback | None) -> None:
        """Set debug callback for logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
        """
        self._debug_callback = callback

    def _debug(self, level: str, component: str, message: str) -> None:
        """Send debug message if callback is set."""
        if self._debug_callback:
            self._debug_callback(level, component, message)

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""

    @abstractmethod
    def functions(self) -> list[LLMFunction]:
        """Functions this tool offers to the model."""

    @abstractmethod
    async def handle_call(self, call: FunctionCall, context: ToolContext) -> TaggedFunctionResponse | None:
        """Answer a structured function call.

        Returns:
            The response, or None if the call is not addressed to this tool
        """

    def can_handle_pseudo_function(self, text: str) -> bool:
        return False

    async def handle_pseudo_function(self, text: str, context: ToolContext) -> list[ContextItem] | None:
        """Act on a plaintext assistant turn; None means it was not claimed."""
        return None

    async def context_to_insert_at_beginning_of_thread(self, context: ToolContext) -> str | None:
        """Text added to the system prompt at the start of a run."""
        return None

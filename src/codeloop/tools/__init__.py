"""Tools the coding agent can use.

Each tool offers functions to the model, answers the calls addressed to
it and may claim plaintext assistant turns as pseudo-functions.
"""

from .base import (
    IGNORED_DIRS,
    NO_FOLDER_MESSAGE,
    EditReviewer,
    NoActiveDirectoryError,
    OutsideWorkspaceError,
    PathError,
    ReviewDecision,
    Tool,
    ToolContext,
    parse_call_arguments,
)
from .file_deleter import DeleteFileTool
from .file_editor import FileEditorTool
from .file_reader import ReadFileTool
from .file_tree import FileTreeTool, format_file_tree, list_workspace_files
from .grep import GrepMatch, GrepResult, GrepTool, grep_search


def default_tools() -> list[Tool]:
    """The standard coding toolset, in dispatch order."""
    return [FileEditorTool(), ReadFileTool(), GrepTool(), FileTreeTool(), DeleteFileTool()]


__all__ = [
    "IGNORED_DIRS",
    "NO_FOLDER_MESSAGE",
    "DeleteFileTool",
    "EditReviewer",
    "FileEditorTool",
    "FileTreeTool",
    "GrepMatch",
    "GrepResult",
    "GrepTool",
    "NoActiveDirectoryError",
    "OutsideWorkspaceError",
    "PathError",
    "ReadFileTool",
    "ReviewDecision",
    "Tool",
    "ToolContext",
    "default_tools",
    "format_file_tree",
    "grep_search",
    "list_workspace_files",
    "parse_call_arguments",
]

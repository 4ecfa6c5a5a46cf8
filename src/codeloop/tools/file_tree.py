"""Tool that lists the files in the workspace.

Hidden design decisions:
- Git's view of the workspace is preferred (tracked plus untracked files,
  honouring .gitignore); outside a repository the folder is walked,
  skipping hidden entries and dependency/VCS folders
- Files are grouped by folder so a listing costs one line per file
"""

import asyncio
import subprocess
from itertools import groupby
from pathlib import Path, PurePosixPath

from ..config import FILE_TREE_MAX_FILES
from ..llm.models import FunctionCall, LLMFunction
from ..thread.models import TaggedFunctionResponse, UserVisibleLog
from .base import IGNORED_DIRS, NO_FOLDER_MESSAGE, Tool, ToolContext


def _git_files(root: Path) -> list[str] | None:
    try:
        res = subprocess.run(
            ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"],
            cwd=str(root),
            capture_output=True,
            timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if res.returncode != 0:
        return None
    paths = res.stdout.decode("utf-8", errors="replace").split("\0")
    # Tracked files deleted from disk are still in the index
    return [p for p in paths if p and (root / p).is_file()]


def _walk_files(root: Path) -> list[str]:
    files = []
    for path in root.rglob("*"):
        parts = path.relative_to(root).parts
        if any(part.startswith(".") or part in IGNORED_DIRS for part in parts):
            continue
        if path.is_file():
            files.append(PurePosixPath(*parts).as_posix())
    return files


def list_workspace_files(root: Path) -> list[str]:
    """Workspace-relative POSIX paths of the files under `root`, sorted."""
    files = _git_files(root)
    if files is None:
        files = _walk_files(root)
    return sorted(set(files))


def format_file_tree(files: list[str]) -> str:
    """Render paths grouped by folder.

    A folder holding one file is shown as a single path; a folder holding
    several is shown as a header followed by indented names::

        README.md
        pkg/
         __init__.py
         utils.py
    """
    def folder(path: str) -> str:
        return str(PurePosixPath(path).parent)

    lines = []
    for directory, group in groupby(sorted(files, key=lambda p: (folder(p), p)), key=folder):
        names = [PurePosixPath(p).name for p in group]
        prefix = "" if directory == "." else f"{directory}/"
        if len(names) == 1:
            lines.append(prefix + names[0])
        else:
            lines.append(prefix or "./")
            lines.extend(f" {name}" for name in names)
    return "\n".join(lines)


class FileTreeTool(Tool):
    """Answers `file_tree` calls with the workspace's file listing."""

    def __init__(self, max_files: int = FILE_TREE_MAX_FILES):
        super().__init__()
        self._max_files = max_files

    @property
    def name(self) -> str:
        return "file_tree"

    def functions(self) -> list[LLMFunction]:
        return [
            LLMFunction(
                name="file_tree",
                description=(
                    "Prints the file tree of the workspace. Use it to learn the "
                    "directory structure before creating a file."
                ),
                parameters={"type": "object", "properties": {}}
            )
        ]

    async def handle_call(self, call: FunctionCall, context: ToolContext) -> TaggedFunctionResponse | None:
        if call.name != "file_tree":
            return None

        if context.active_directory is None:
            return TaggedFunctionResponse.for_call(call, NO_FOLDER_MESSAGE)

        root = context.active_directory.resolve()
        try:
            files = await asyncio.to_thread(list_workspace_files, root)
        except OSError as e:
            self._debug("warning", "FileTreeTool", f"listing {root} failed: {e}")
            return TaggedFunctionResponse.for_call(call, f"[File Tree] Unable to list files: {e}")

        context.log(UserVisibleLog(kind="listed_files", detail=f"{len(files)} files"))
        self._debug("debug", "FileTreeTool", f"listed {len(files)} files under {root}")

        if not files:
            return TaggedFunctionResponse.for_call(call, "The workspace folder is empty.")
        text = format_file_tree(files[:self._max_files])
        if len(files) > self._max_files:
            text += f"\n... {len(files) - self._max_files} more files not shown"
        return TaggedFunctionResponse.for_call(call, text)

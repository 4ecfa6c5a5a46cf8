"""Regex search over the workspace.

Hidden design decisions:
- Pure-Python scan, one worker thread per pattern, gathered back in the
  order the patterns were given
- Hits are shown as small file snippets around each matching line
- Binary files and common dependency/VCS folders are skipped
"""

import asyncio
import fnmatch
import re
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field

from ..llm.models import FunctionCall, LLMFunction
from ..thread.models import ContextItem, FileSnippet, TaggedFunctionResponse, TextItem, UserVisibleLog
from .base import IGNORED_DIRS, NO_FOLDER_MESSAGE, Tool, ToolContext, parse_call_arguments


@dataclass
class GrepMatch:
    file: Path
    line: int  # zero-indexed
    text: str


@dataclass
class GrepResult:
    pattern: str
    matches: list[GrepMatch] = field(default_factory=list)
    truncated: bool = False
    error: str | None = None


class GrepArgs(BaseModel):
    patterns: list[str] = Field(min_length=1)
    glob: str | None = None


def iter_text_files(root: Path, file_glob: str | None = None):
    """Yield workspace files in a stable order, skipping ignored folders."""
    for path in sorted(root.rglob("*")):
        if any(part in IGNORED_DIRS for part in path.relative_to(root).parts[:-1]):
            continue
        if not path.is_file():
            continue
        if file_glob and not fnmatch.fnmatch(path.name, file_glob) and not fnmatch.fnmatch(
            str(path.relative_to(root)), file_glob
        ):
            continue
        yield path


def _read_text(path: Path) -> str | None:
    try:
        data = path.read_bytes()
    except OSError:
        return None
    if b"\0" in data[:8192]:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def grep_search(pattern: str, root: Path, max_results: int = 20, file_glob: str | None = None) -> GrepResult:
    """Find lines matching a regex under `root`.

    Raises:
        re.error: If the pattern is not a valid regex
    """
    regex = re.compile(pattern)
    result = GrepResult(pattern=pattern)
    for path in iter_text_files(root, file_glob):
        content = _read_text(path)
        if content is None:
            continue
        for index, line in enumerate(content.split("\n")):
            if regex.search(line):
                if len(result.matches) >= max_results:
                    result.truncated = True
                    return result
                result.matches.append(GrepMatch(file=path, line=index, text=line))
    return result


def _match_snippets(result: GrepResult, context: ToolContext, spread: int) -> list[FileSnippet]:
    snippets: list[FileSnippet] = []
    for match in result.matches:
        start = max(0, match.line - spread)
        last = snippets[-1] if snippets else None
        if last is not None and last.path == str(match.file) and start <= last.line_end:
            # Merge with the previous snippet of the same file
            start = last.line_start
            snippets.pop()
        snippets.append(FileSnippet.from_file(
            match.file,
            context.relative_path(match.file),
            start,
            match.line + spread + 1 - start,
        ))
    return snippets


class GrepTool(Tool):
    """Answers `grep` calls with the snippets around regex hits."""

    def __init__(self, limit: int = 20, spread: int = 2):
        super().__init__()
        self._limit = limit
        self._spread = spread

    @property
    def name(self) -> str:
        return "grep"

    def functions(self) -> list[LLMFunction]:
        return [
            LLMFunction(
                name="grep",
                description="Search for patterns in files using regex",
                parameters={
                    "type": "object",
                    "properties": {
                        "patterns": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Python regex patterns; each is searched separately"
                        },
                        "glob": {
                            "type": "string",
                            "description": "Only search files whose name or relative path matches this glob"
                        }
                    },
                    "required": ["patterns"]
                }
            )
        ]

    async def _search(self, pattern: str, root: Path, file_glob: str | None) -> GrepResult:
        try:
            return await asyncio.to_thread(grep_search, pattern, root, self._limit, file_glob)
        except re.error as e:
            return GrepResult(pattern=pattern, error=str(e))

    def _render(self, result: GrepResult, context: ToolContext) -> list[ContextItem]:
        if result.error is not None:
            return [TextItem(text=f"Grep for '{result.pattern}' failed with error: {result.error}")]
        header = f"{len(result.matches)}{'+' if result.truncated else ''} hits for '{result.pattern}':"
        return [TextItem(text=header), *_match_snippets(result, context, self._spread)]

    async def handle_call(self, call: FunctionCall, context: ToolContext) -> TaggedFunctionResponse | None:
        if call.name != "grep":
            return None

        if context.active_directory is None:
            return TaggedFunctionResponse.for_call(call, NO_FOLDER_MESSAGE)

        try:
            args = parse_call_arguments(call, GrepArgs)
        except ValueError as e:
            return TaggedFunctionResponse.for_call(call, f"Grep failed with error: {e}")

        for pattern in args.patterns:
            context.log(UserVisibleLog(kind="grepped", detail=pattern))

        root = context.active_directory.resolve()
        results = await asyncio.gather(*(self._search(p, root, args.glob) for p in args.patterns))
        self._debug(
            "debug", "GrepTool",
            ", ".join(f"{r.pattern!r}: {len(r.matches)} hits" for r in results)
        )

        try:
            content = [item for result in results for item in self._render(result, context)]
        except (OSError, ValueError) as e:
            return TaggedFunctionResponse.for_call(call, f"Grep failed with error: {e}")
        return TaggedFunctionResponse(id=call.id, name=call.name, content=content)

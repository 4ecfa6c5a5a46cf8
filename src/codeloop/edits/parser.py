"""Parser for code edits embedded in model responses.

Edits are fenced blocks opened by a command line::

    %%%
    > Replace path/to/file.py:10-12
    <replacement lines>
    %%%

Commands are `Write <path>`, `Append <path>`, `Replace <path>:<start>(-<end>)?`
(zero-indexed, end inclusive), `Insert <path>:<index>` and
`FindReplace <path>`, whose body holds the lines to find, a `===WITH===`
line and the replacement lines. A body line equal to the fence is
written as `\\%%%`.

Hidden design decisions:
- Line-oriented state machine (outside, fence opened, in block, skipping)
- Strict mode reports malformed and unterminated commands as issues;
  partial mode materializes the still-open trailing command for previews
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..config import CODE_FENCE, ESCAPED_CODE_FENCE, FIND_REPLACE_DIVIDER
from .errors import EditParseError
from .models import (
    AppendEdit,
    CodeEdit,
    EditPart,
    FindReplaceEdit,
    ParseIssue,
    ParseResult,
    ReplaceEdit,
    TextPart,
    WriteEdit,
)

PathResolver = Callable[[str], str | Path]

_COMMAND_PATTERNS = {
    "Write": re.compile(r"^>\s*Write\s+([^\s:]+)\s*$"),
    "Replace": re.compile(r"^>\s*Replace\s+([^:]+):(\d+(?:-\d+)?)\s*$"),
    "Insert": re.compile(r"^>\s*Insert\s+([^:]+):(\d+)\s*$"),
    "FindReplace": re.compile(r"^>\s*FindReplace\s+([^\s:]+)\s*$"),
    "Append": re.compile(r"^>\s*Append\s+([^\s:]+)\s*$"),
}

_COMMAND_KEYWORD = re.compile(r"^>\s*(Write|Append|Replace|Insert|FindReplace)\b")

_OUTSIDE, _FENCE_OPENED, _IN_BLOCK, _SKIPPING = range(4)


@dataclass
class _Command:
    kind: str
    path: str
    range: str
    line_number: int
    body: list[str] = field(default_factory=list)


def _match_command(line: str, line_number: int) -> _Command | None:
    for kind, pattern in _COMMAND_PATTERNS.items():
        match = pattern.match(line)
        if match:
            line_range = match.group(2) if pattern.groups > 1 else ""
            return _Command(kind=kind, path=match.group(1).strip(), range=line_range, line_number=line_number)
    return None


def _looks_like_command(line: str) -> bool:
    return _COMMAND_KEYWORD.match(line) is not None


class _Parser:
    def __init__(self, resolve_path: PathResolver | None, partial: bool):
        self._resolve_path = resolve_path
        self._partial = partial
        self.result = ParseResult()

    def _issue(self, line_number: int, message: str) -> None:
        self.result.issues.append(ParseIssue(line_number=line_number, message=message))

    def _text(self, line: str) -> None:
        parts = self.result.parts
        if parts and isinstance(parts[-1], TextPart):
            parts[-1].lines.append(line)
        else:
            parts.append(TextPart(lines=[line]))

    def _malformed(self, line: str, line_number: int) -> None:
        self._issue(line_number, f"Malformed edit command: '{line.strip()}'")

    def run(self, text: str) -> ParseResult:
        state = _OUTSIDE
        command: _Command | None = None

        for line_number, line in enumerate(text.split("\n"), start=1):
            if state == _OUTSIDE:
                if line == CODE_FENCE:
                    state = _FENCE_OPENED
                elif _looks_like_command(line):
                    command = _match_command(line, line_number)
                    if command is None:
                        self._malformed(line, line_number)
                        state = _SKIPPING
                    else:
                        state = _IN_BLOCK
                else:
                    self._text(line)

            elif state == _FENCE_OPENED:
                if line == CODE_FENCE:
                    # The earlier fence opened nothing; this one may
                    self._text(CODE_FENCE)
                elif _looks_like_command(line):
                    command = _match_command(line, line_number)
                    if command is None:
                        self._malformed(line, line_number)
                        state = _SKIPPING
                    else:
                        state = _IN_BLOCK
                else:
                    self._text(CODE_FENCE)
                    self._text(line)
                    state = _OUTSIDE

            elif state == _IN_BLOCK:
                if line == CODE_FENCE:
                    self._finish(command, terminated=True)
                    command = None
                    state = _OUTSIDE
                elif line == ESCAPED_CODE_FENCE:
                    command.body.append(CODE_FENCE)
                else:
                    command.body.append(line)

            elif line == CODE_FENCE:
                state = _OUTSIDE

        # While streaming, a trailing fence may still open an edit
        if state == _FENCE_OPENED and not self._partial:
            self._text(CODE_FENCE)
        if state == _IN_BLOCK:
            if self._partial:
                self._finish(command, terminated=False)
            else:
                self._issue(
                    command.line_number,
                    f"Unterminated edit block for '{command.kind} {command.path}': "
                    f"close it with a {CODE_FENCE} line"
                )
        return self.result

    def _finish(self, command: _Command, terminated: bool) -> None:
        edit = self._build(command, terminated)
        if edit is not None:
            self.result.parts.append(EditPart(edit=edit))

    def _build(self, command: _Command, terminated: bool) -> CodeEdit | None:
        try:
            path = str(self._resolve_path(command.path)) if self._resolve_path else command.path
        except (ValueError, OSError) as e:
            self._issue(command.line_number, f"Invalid path '{command.path}': {e}")
            return None

        content = "\n".join(command.body)

        if command.kind == "Write":
            return WriteEdit(path=path, content=content)

        if command.kind == "Append":
            return AppendEdit(path=path, content=content)

        if command.kind == "Insert":
            return ReplaceEdit(
                path=path,
                line_range_start=int(command.range),
                line_range_len=0,
                lines=tuple(command.body),
            )

        if command.kind == "Replace":
            start_str, _, end_str = command.range.partition("-")
            start = int(start_str)
            end = int(end_str) if end_str else start
            if end < start:
                self._issue(command.line_number, f"Replace range {command.range} ends before it starts")
                return None
            return ReplaceEdit(
                path=path,
                line_range_start=start,
                line_range_len=end - start + 1,
                lines=tuple(command.body),
            )

        return self._build_find_replace(command, path, terminated)

    def _build_find_replace(self, command: _Command, path: str, terminated: bool) -> CodeEdit | None:
        dividers = [i for i, line in enumerate(command.body) if line == FIND_REPLACE_DIVIDER]

        if len(dividers) > 1:
            self._issue(
                command.line_number,
                f"FindReplace block for {command.path} has {len(dividers)} "
                f"{FIND_REPLACE_DIVIDER} lines; use exactly one per block"
            )
            return None

        if not dividers:
            if self._partial:
                find, replace = command.body, []
            else:
                self._issue(
                    command.line_number,
                    f"FindReplace block for {command.path} is missing the {FIND_REPLACE_DIVIDER} line"
                )
                return None
        else:
            find = command.body[:dividers[0]]
            replace = command.body[dividers[0] + 1:]

        if not find:
            if self._partial and not terminated:
                return None
            self._issue(command.line_number, f"FindReplace block for {command.path} has nothing to find")
            return None

        return FindReplaceEdit(path=path, find=tuple(find), replace=tuple(replace))


def parse(
    text: str,
    resolve_path: PathResolver | None = None,
    partial: bool = False
) -> ParseResult:
    """Split a response into narrative text and code edits.

    Args:
        text: Model response text
        resolve_path: Maps a path written by the model to an absolute path;
            exceptions it raises are recorded as parse issues
        partial: Accept a still-open trailing command (streaming preview)

    Returns:
        ParseResult with parts in original order and any parse issues
    """
    return _Parser(resolve_path, partial).run(text)


def parse_edits_only(text: str, resolve_path: PathResolver | None = None) -> list[CodeEdit]:
    """Strictly parse a response and return only its edits.

    Raises:
        EditParseError: If any command is malformed or unterminated
    """
    result = parse(text, resolve_path=resolve_path)
    if result.issues:
        raise EditParseError(result.issues)
    return result.edits


def contains_edits_or_malformed_edits(text: str) -> bool:
    """Whether any line of `text` starts an edit command, valid or not."""
    return any(_looks_like_command(line) for line in text.split("\n"))

"""Grouping, index adjustment and application of code edits.

Edits parsed from one response are grouped per file into `FileEdit`s
whose edit lists can be applied in order without further coordinate
translation.

Hidden design decisions:
- Line-range edits use original-file coordinates and are shifted by the
  net line delta of every earlier edit to the same file
- Overlapping line ranges are rejected rather than resolved
- Content-addressed edits (find/replace, append, write) run after the
  line-range edits, in the order they were written
"""

from pathlib import Path

from pydantic import BaseModel

from ..lines import join_lines, split_lines
from .diff import Diff
from .errors import EditFileReadError, FindReplaceMatchError, InvalidLineRangeError, OverlappingEditsError
from .models import AppendEdit, CodeEdit, FindReplaceEdit, ReplaceEdit, WriteEdit


class FileEdit(BaseModel):
    """An ordered, index-adjusted list of edits to one file."""

    path: str
    edits: list[CodeEdit]

    @classmethod
    def from_code_edits(cls, code_edits: list[CodeEdit]) -> list["FileEdit"]:
        """Group edits by path, in order of each path's first appearance.

        Raises:
            OverlappingEditsError: If two line-range edits to a file overlap
        """
        by_path: dict[str, list[CodeEdit]] = {}
        for edit in code_edits:
            by_path.setdefault(edit.path, []).append(edit)

        file_edits = []
        for path, edits in by_path.items():
            replaces = sorted(
                (e for e in edits if isinstance(e, ReplaceEdit)),
                key=lambda e: (e.line_range_start, e.line_range_len),
            )
            _check_overlaps(path, replaces)

            adjusted: list[CodeEdit] = []
            for edit in replaces:
                adjusted.append(adjust_edit_indices(edit, adjusted))
            adjusted.extend(e for e in edits if not isinstance(e, ReplaceEdit))
            file_edits.append(cls(path=path, edits=adjusted))
        return file_edits

    @property
    def description(self) -> str:
        if not self.edits:
            return "Empty edit"
        if len(self.edits) == 1:
            return self.edits[0].description
        return f"Multiple edits to {self.path}"

    @property
    def requires_read_from_disk(self) -> bool:
        """Whether applying needs the current file, decided by the first edit."""
        if not self.edits:
            return False
        return not isinstance(self.edits[0], WriteEdit)

    def apply_to_existing(self, content: str | None) -> str:
        """Apply every edit in order to `content`.

        Raises:
            InvalidLineRangeError: If a replace range falls outside the content
            FindReplaceMatchError: If a find block does not match exactly once
        """
        content = content or ""
        for edit in self.edits:
            if isinstance(edit, FindReplaceEdit):
                content = apply_find_replace(content, list(edit.find), list(edit.replace))
            elif isinstance(edit, AppendEdit):
                content = apply_append(content, edit.content)
            elif isinstance(edit, WriteEdit):
                content = edit.content
            else:
                content = apply_replacement(
                    content, edit.line_range_start, edit.line_range_len, list(edit.lines)
                )
        return content

    def read_current(self) -> str:
        """Read the file as it is on disk now.

        Returns "" for a missing file when the first edit overwrites it.

        Raises:
            EditFileReadError: If the file is needed but cannot be read
        """
        file_path = Path(self.path)
        if not self.requires_read_from_disk and not file_path.exists():
            return ""
        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise EditFileReadError(self.path, str(e)) from e

    def get_before_after(self) -> tuple[str, str]:
        before = self.read_current()
        return before, self.apply_to_existing(before)

    def as_diff(self, collapse_sames: bool = True) -> Diff:
        if not self.edits:
            return Diff()
        before, after = self.get_before_after()
        return Diff.from_lines(split_lines(before), split_lines(after), collapse_sames=collapse_sames)


def _check_overlaps(path: str, sorted_replaces: list[ReplaceEdit]) -> None:
    furthest: ReplaceEdit | None = None
    for edit in sorted_replaces:
        if furthest is not None and edit.line_range_start < furthest.line_range_end:
            raise OverlappingEditsError(path, furthest.description, edit.description)
        if furthest is None or edit.line_range_end >= furthest.line_range_end:
            furthest = edit


def adjust_edit_indices(edit: CodeEdit, previous_edits: list[CodeEdit]) -> CodeEdit:
    """Shift a replace edit by the net delta of earlier replaces to the same file.

    `previous_edits` are already adjusted; their original start is
    recovered by undoing the shift accumulated before them.
    """
    if not isinstance(edit, ReplaceEdit):
        return edit

    shift = 0
    for previous in previous_edits:
        if not isinstance(previous, ReplaceEdit) or previous.path != edit.path:
            continue
        original_start = previous.line_range_start - shift
        if original_start <= edit.line_range_start:
            shift += previous.delta

    if shift == 0:
        return edit
    return edit.model_copy(update={"line_range_start": edit.line_range_start + shift})


def apply_replacement(existing: str, line_range_start: int, length: int, new_lines: list[str]) -> str:
    """Replace `length` lines starting at `line_range_start` with `new_lines`.

    Raises:
        InvalidLineRangeError: Unless 0 <= start and start + length <= line count
    """
    lines = split_lines(existing)
    if line_range_start < 0 or line_range_start + length > len(lines):
        raise InvalidLineRangeError(line_range_start, length, len(lines))
    lines[line_range_start:line_range_start + length] = new_lines
    return join_lines(lines)


def find_ranges(lines: list[str], find: list[str]) -> list[int]:
    """Start indices of every contiguous occurrence of `find` in `lines`."""
    if not find:
        return []
    width = len(find)
    return [i for i in range(len(lines) - width + 1) if lines[i:i + width] == find]


def apply_find_replace(existing: str, find: list[str], replace: list[str]) -> str:
    """Replace the single occurrence of the `find` lines with `replace`.

    Raises:
        FindReplaceMatchError: If `find` occurs zero times or more than once
    """
    lines = split_lines(existing)
    matches = find_ranges(lines, find)
    if len(matches) != 1:
        raise FindReplaceMatchError(find, len(matches))
    start = matches[0]
    lines[start:start + len(find)] = replace
    return join_lines(lines)


def apply_append(existing: str, content: str) -> str:
    if not existing:
        return content
    if existing.endswith("\n"):
        return existing + content
    return existing + "\n" + content

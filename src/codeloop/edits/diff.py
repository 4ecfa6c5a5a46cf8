"""Line-level diffs for reviewing edits before they are written."""

import difflib
from typing import Literal

from pydantic import BaseModel, Field

from ..config import DIFF_COLLAPSE_KEEP, DIFF_COLLAPSE_MIN_RUN


class DiffLine(BaseModel):
    """One line of a diff.

    `collapsed` lines stand for a hidden run of unchanged lines, kept in
    `children` so a viewer can expand them.
    """

    op: Literal["same", "insert", "delete", "collapsed"]
    text: str = ""
    children: list["DiffLine"] = Field(default_factory=list)

    @classmethod
    def same(cls, text: str) -> "DiffLine":
        return cls(op="same", text=text)

    @classmethod
    def insert(cls, text: str) -> "DiffLine":
        return cls(op="insert", text=text)

    @classmethod
    def delete(cls, text: str) -> "DiffLine":
        return cls(op="delete", text=text)


class Diff(BaseModel):
    lines: list[DiffLine] = Field(default_factory=list)

    @classmethod
    def from_lines(cls, before: list[str], after: list[str], collapse_sames: bool = True) -> "Diff":
        """Compute a diff between two line lists.

        A replaced region is reported as its inserted lines followed by the
        deleted lines.
        """
        lines: list[DiffLine] = []
        matcher = difflib.SequenceMatcher(a=before, b=after, autojunk=False)
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                lines.extend(DiffLine.same(text) for text in before[i1:i2])
                continue
            lines.extend(DiffLine.insert(text) for text in after[j1:j2])
            lines.extend(DiffLine.delete(text) for text in before[i1:i2])

        if collapse_sames:
            lines = collapse_runs_of_sames(lines)
        return cls(lines=lines)

    @property
    def has_changes(self) -> bool:
        return any(line.op in ("insert", "delete") for line in self.lines)

    def as_text(self) -> str:
        """Render with `+`, `-` and two-space prefixes, collapsed runs as a marker line."""
        rendered = []
        for line in self.lines:
            if line.op == "insert":
                rendered.append(f"+ {line.text}")
            elif line.op == "delete":
                rendered.append(f"- {line.text}")
            elif line.op == "collapsed":
                rendered.append(f"  ... {len(line.children)} unchanged lines ...")
            else:
                rendered.append(f"  {line.text}")
        return "\n".join(rendered)


def collapse_runs_of_sames(
    lines: list[DiffLine],
    min_run: int = DIFF_COLLAPSE_MIN_RUN,
    keep: int = DIFF_COLLAPSE_KEEP
) -> list[DiffLine]:
    """Hide the middle of long unchanged runs, keeping `keep` lines at each end."""
    result: list[DiffLine] = []
    run: list[DiffLine] = []

    def flush() -> None:
        if len(run) >= min_run:
            result.extend(run[:keep])
            result.append(DiffLine(op="collapsed", children=run[keep:-keep]))
            result.extend(run[-keep:])
        else:
            result.extend(run)
        run.clear()

    for line in lines:
        if line.op == "same":
            run.append(line)
        else:
            flush()
            result.append(line)
    flush()
    return result


def unified_diff(before: str, after: str, filename: str = "file") -> str:
    """Create a unified diff patch between two file contents."""
    return "\n".join(difflib.unified_diff(
        before.splitlines(),
        after.splitlines(),
        fromfile=f"a/{filename}",
        tofile=f"b/{filename}",
        lineterm="",
    ))

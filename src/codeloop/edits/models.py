"""Data models for the code-edit protocol.

A parsed response is a sequence of parts: runs of narrative text and
individual code edits, in the order they appeared. Every edit targets
exactly one absolute file path.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..lines import split_lines


class ReplaceEdit(BaseModel):
    """Replace `line_range_len` lines starting at `line_range_start` with `lines`.

    A length of zero is a pure insertion before `line_range_start`.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["replace"] = "replace"
    path: str
    line_range_start: int = Field(ge=0)
    line_range_len: int = Field(ge=0)
    lines: tuple[str, ...] = ()

    @property
    def line_range_end(self) -> int:
        """Exclusive end of the replaced range."""
        return self.line_range_start + self.line_range_len

    @property
    def delta(self) -> int:
        """Net change in line count once applied."""
        return len(self.lines) - self.line_range_len

    @property
    def description(self) -> str:
        if self.line_range_len == 0:
            return f"Insert {self.path}:{self.line_range_start}"
        return f"Replace {self.path}:{self.line_range_start}-{self.line_range_end - 1}"


class WriteEdit(BaseModel):
    """Create a file, or overwrite it entirely."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["write"] = "write"
    path: str
    content: str

    @property
    def description(self) -> str:
        return f"Write {self.path}"


class AppendEdit(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["append"] = "append"
    path: str
    content: str

    @property
    def description(self) -> str:
        return f"Append {len(split_lines(self.content))} lines to {self.path}"


class FindReplaceEdit(BaseModel):
    """Replace the single verbatim occurrence of `find` with `replace`."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["find_replace"] = "find_replace"
    path: str
    find: tuple[str, ...]
    replace: tuple[str, ...] = ()

    @property
    def description(self) -> str:
        return f"Find/Replace in {self.path}"


CodeEdit = Annotated[
    ReplaceEdit | WriteEdit | AppendEdit | FindReplaceEdit,
    Field(discriminator="kind")
]


class TextPart(BaseModel):
    """A run of narrative lines between edits."""

    kind: Literal["text"] = "text"
    lines: list[str] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class EditPart(BaseModel):
    kind: Literal["edit"] = "edit"
    edit: CodeEdit


Part = Annotated[TextPart | EditPart, Field(discriminator="kind")]


class ParseIssue(BaseModel):
    """A problem found while parsing, with the 1-based line it starts on."""

    model_config = ConfigDict(frozen=True)

    line_number: int
    message: str

    def __str__(self) -> str:
        return f"line {self.line_number}: {self.message}"


class ParseResult(BaseModel):
    """Outcome of parsing one response.

    Attributes:
        parts: Narrative text and edits in original order
        issues: Malformed or unterminated commands that were not turned into edits
    """

    parts: list[Part] = Field(default_factory=list)
    issues: list[ParseIssue] = Field(default_factory=list)

    @property
    def edits(self) -> list[CodeEdit]:
        return [part.edit for part in self.parts if isinstance(part, EditPart)]

    @property
    def narrative(self) -> str:
        return "\n".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def ok(self) -> bool:
        return not self.issues

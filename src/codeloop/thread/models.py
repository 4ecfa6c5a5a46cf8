"""Data models for conversation threads.

These models describe message content as typed context items, the
messages built from them, the agent status of a thread and the
user-visible log entries recorded during tool use. They are independent
of the store backend used to persist them.
"""

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..config import READ_FILE_MAX_LINES, SNIPPET_MAX_LINE_CHARS
from ..lines import join_lines, split_lines, truncate_tail
from ..llm.models import ChatMessage, FunctionCall, FunctionResponse, Role


class TextItem(BaseModel):
    """Plain text content."""

    type: Literal["text"] = "text"
    text: str

    def as_string(self) -> str:
        return self.text


class FileSnippet(BaseModel):
    """A captured range of lines from a file.

    The snippet is a value snapshot taken when it was created; later
    changes to the file do not affect it.

    Attributes:
        path: Absolute path of the file
        project_relative_path: Path relative to the workspace root
        line_start: Zero-indexed first line of the snippet
        lines_count: Number of lines captured
        file_total_len: Total number of lines in the file at capture time
        content: Captured lines joined by newlines
    """

    type: Literal["file_snippet"] = "file_snippet"
    path: str
    project_relative_path: str
    line_start: int = Field(ge=0)
    lines_count: int = Field(ge=0)
    file_total_len: int = Field(ge=0)
    content: str

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        project_relative_path: str | None = None,
        line_start: int = 0,
        lines_count: int = READ_FILE_MAX_LINES
    ) -> "FileSnippet":
        """Read a range of lines from disk.

        The range is clamped to the file; reading past the end yields an
        empty snippet positioned at the last line.

        Raises:
            OSError: If the file cannot be read
            UnicodeDecodeError: If the file is not valid UTF-8
        """
        file_path = Path(path)
        all_lines = split_lines(file_path.read_text(encoding="utf-8"))

        start = min(max(0, line_start), max(0, len(all_lines) - 1))
        end = min(len(all_lines), start + lines_count)
        selected = all_lines[start:end]

        return cls(
            path=str(file_path),
            project_relative_path=project_relative_path or file_path.name,
            line_start=start,
            lines_count=min(lines_count, len(selected)),
            file_total_len=len(all_lines),
            content=join_lines(selected),
        )

    @property
    def line_end(self) -> int:
        """Exclusive end line of the captured range."""
        return self.line_start + self.lines_count

    def covers(self, other: "FileSnippet") -> bool:
        """Whether this snippet contains every line of `other` for the same file."""
        return (
            self.path == other.path
            and self.line_start <= other.line_start
            and other.line_end <= self.line_end
        )

    def as_string(self) -> str:
        output = [
            f"%% BEGIN FILE SNIPPET [{self.project_relative_path}] "
            f"Lines {self.line_start}-{self.line_end} of {self.file_total_len} %%\n"
        ]
        for index, line in enumerate(split_lines(self.content)[:self.lines_count]):
            output.append(f"{self.line_start + index:5d} {truncate_tail(line, SNIPPET_MAX_LINE_CHARS)}")

        remaining = self.file_total_len - self.line_end
        name = Path(self.path).name
        output.append(
            f"\n%% END FILE SNIPPET [{name}]; there are {remaining} more lines available to read %%"
        )
        return "\n".join(output)


class ImageItem(BaseModel):
    """An image attachment, stored as a data URL."""

    type: Literal["image"] = "image"
    url: str

    def as_string(self) -> str:
        return ""


class TextFileItem(BaseModel):
    """A whole text file attached by the user."""

    type: Literal["text_file"] = "text_file"
    filename: str
    content: str

    def as_string(self) -> str:
        return f"[Attached file: {self.filename}]\n{self.content}"


ContextItem = Annotated[
    TextItem | FileSnippet | ImageItem | TextFileItem,
    Field(discriminator="type")
]


def items_as_text(items: list[ContextItem]) -> str:
    return "\n\n".join(text for item in items if (text := item.as_string()))


class TaggedFunctionResponse(BaseModel):
    """A function response whose content is a list of context items."""

    id: str | None = None
    name: str
    content: list[ContextItem] = Field(default_factory=list)

    @classmethod
    def for_call(cls, call: FunctionCall, text: str) -> "TaggedFunctionResponse":
        return cls(id=call.id, name=call.name, content=[TextItem(text=text)] if text else [])

    def as_function_response(self) -> FunctionResponse:
        return FunctionResponse(id=self.id, name=self.name, text=items_as_text(self.content))


class TaggedMessage(BaseModel):
    """A conversation message made of typed context items.

    Carries the structured function calls (assistant) or function
    responses (function role) of the turn alongside its content.
    """

    role: Role
    content: list[ContextItem] = Field(default_factory=list)
    function_calls: list[FunctionCall] = Field(default_factory=list)
    function_responses: list[TaggedFunctionResponse] = Field(default_factory=list)

    @classmethod
    def from_text(cls, role: Role, text: str) -> "TaggedMessage":
        return cls(role=role, content=[TextItem(text=text)] if text else [])

    @classmethod
    def from_chat_message(cls, message: ChatMessage) -> "TaggedMessage":
        content: list[ContextItem] = []
        if message.content:
            content.append(TextItem(text=message.content))
        content.extend(ImageItem(url=url) for url in message.images)
        return cls(
            role=message.role,
            content=content,
            function_calls=list(message.function_calls),
            function_responses=[
                TaggedFunctionResponse(
                    id=resp.id,
                    name=resp.name,
                    content=[TextItem(text=resp.text)] if resp.text else []
                )
                for resp in message.function_responses
            ],
        )

    def as_plain_text(self) -> str:
        return items_as_text(self.content)

    def as_chat_message(self) -> ChatMessage:
        return ChatMessage(
            role=self.role,
            content=self.as_plain_text(),
            images=tuple(item.url for item in self.content if isinstance(item, ImageItem)),
            function_calls=tuple(self.function_calls),
            function_responses=tuple(resp.as_function_response() for resp in self.function_responses),
        )


class NoneStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"


class RunningStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["running"] = "running"
    run_id: str


class PausedStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["paused"] = "paused"
    run_id: str


class StoppedWithErrorStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["stopped_with_error"] = "stopped_with_error"
    message: str


AgentStatus = Annotated[
    NoneStatus | RunningStatus | PausedStatus | StoppedWithErrorStatus,
    Field(discriminator="kind")
]


def is_live(status: AgentStatus) -> bool:
    """Whether a run currently owns the thread."""
    return isinstance(status, RunningStatus | PausedStatus)


def owned_by(status: AgentStatus, run_id: str) -> bool:
    """Whether `status` is the running or paused state of run `run_id`."""
    return isinstance(status, RunningStatus | PausedStatus) and status.run_id == run_id


LogKind = Literal[
    "read_file",
    "grepped",
    "edited_file",
    "rejected_edit",
    "requested_changes",
    "wrote_file",
    "token_usage",
    "listed_files",
    "deleted_file",
    "tool_warning",
    "tool_error",
    "info",
]


class UserVisibleLog(BaseModel):
    """An event rendered as a card in the conversation feed.

    Token usage entries carry their counts in the dedicated fields; every
    other kind only uses `detail`.
    """

    model_config = ConfigDict(frozen=True)

    kind: LogKind
    detail: str = ""
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    model: str | None = None

    @classmethod
    def token_usage(cls, prompt_tokens: int, completion_tokens: int, model: str) -> "UserVisibleLog":
        return cls(
            kind="token_usage",
            detail=f"{prompt_tokens} prompt, {completion_tokens} completion for model {model}",
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            model=model,
        )

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}" if self.detail else self.kind

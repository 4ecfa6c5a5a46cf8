"""Tool that shows the model the contents of a file."""

import asyncio

from pydantic import BaseModel, Field

from ..config import READ_FILE_MAX_LINES
from ..llm.models import FunctionCall, LLMFunction
from ..thread.models import FileSnippet, TaggedFunctionResponse, TextItem, UserVisibleLog
from .base import Tool, ToolContext, parse_call_arguments


class ReadFileArgs(BaseModel):
    path: str
    line_offset: int = Field(default=0, ge=0)


class ReadFileTool(Tool):
    """Answers `read_file` calls with a snippet of up to 2000 lines."""

    def __init__(self, max_lines: int = READ_FILE_MAX_LINES):
        super().__init__()
        self._max_lines = max_lines

    @property
    def name(self) -> str:
        return "read_file"

    def functions(self) -> list[LLMFunction]:
        return [
            LLMFunction(
                name="read_file",
                description="Shows you the contents of a file.",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Path of the file, relative to the workspace folder"
                        },
                        "line_offset": {
                            "type": "integer",
                            "description": f"Zero-indexed line to start reading from; {self._max_lines} lines are shown"
                        }
                    },
                    "required": ["path"]
                }
            )
        ]

    async def handle_call(self, call: FunctionCall, context: ToolContext) -> TaggedFunctionResponse | None:
        if call.name != "read_file":
            return None

        raw_path = call.parsed_arguments().get("path", "")
        try:
            args = parse_call_arguments(call, ReadFileArgs)
            path = context.resolve_path(args.path)
            snippet = await asyncio.to_thread(
                FileSnippet.from_file,
                path,
                context.relative_path(path),
                args.line_offset,
                self._max_lines,
            )
        except (ValueError, OSError) as e:
            self._debug("warning", "ReadFileTool", f"read_file {raw_path!r} failed: {e}")
            return TaggedFunctionResponse(
                id=call.id,
                name=call.name,
                content=[TextItem(text=f"[File Reader] Unable to read '{raw_path}': {e}")]
            )

        context.log(UserVisibleLog(kind="read_file", detail=snippet.project_relative_path))
        self._debug(
            "debug", "ReadFileTool",
            f"read {snippet.project_relative_path} lines {snippet.line_start}-{snippet.line_end}"
        )
        return TaggedFunctionResponse(id=call.id, name=call.name, content=[snippet])

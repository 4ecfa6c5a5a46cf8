"""Tool that deletes a file from the workspace."""

import asyncio

from pydantic import BaseModel

from ..llm.models import FunctionCall, LLMFunction
from ..thread.models import TaggedFunctionResponse, UserVisibleLog
from .base import Tool, ToolContext, parse_call_arguments


class DeleteFileArgs(BaseModel):
    path: str


class DeleteFileTool(Tool):
    """Answers `delete_file` calls. Folders are never removed."""

    @property
    def name(self) -> str:
        return "delete_file"

    def functions(self) -> list[LLMFunction]:
        return [
            LLMFunction(
                name="delete_file",
                description="Deletes a file at the specified path.",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Path of the file to delete, relative to the workspace folder"
                        }
                    },
                    "required": ["path"]
                }
            )
        ]

    async def handle_call(self, call: FunctionCall, context: ToolContext) -> TaggedFunctionResponse | None:
        if call.name != "delete_file":
            return None

        raw_path = call.parsed_arguments().get("path", "")
        try:
            args = parse_call_arguments(call, DeleteFileArgs)
            path = context.resolve_path(args.path)
            relative = context.relative_path(path)
            await asyncio.to_thread(path.unlink)
        except (ValueError, OSError) as e:
            self._debug("warning", "DeleteFileTool", f"delete_file {raw_path!r} failed: {e}")
            return TaggedFunctionResponse.for_call(call, f"Failed to delete file '{raw_path}': {e}")

        context.log(UserVisibleLog(kind="deleted_file", detail=relative))
        self._debug("info", "DeleteFileTool", f"deleted {relative}")
        return TaggedFunctionResponse.for_call(call, f"Successfully deleted file at {relative}")

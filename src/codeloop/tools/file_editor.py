"""Tool that applies the fenced code edits written in assistant messages.

Edits are not structured function calls: the model writes them in the
body of its response and this tool claims that text as a pseudo-function.
The `apply_edits` function only exists so the model can yield after
writing edits; the pseudo-function result is attached to its response.

Hidden design decisions:
- Every file edit is dry-run before the user is asked to review anything
- Nothing is written unless every file edit applies cleanly and the batch
  is accepted; if a write then fails, the files already written are
  reported alongside the failure
- All failures go back to the model as text so it can correct itself
"""

import asyncio
from pathlib import Path

from ..edits import EditError, FileEdit, contains_edits_or_malformed_edits, parse
from ..lines import split_lines
from ..llm.models import FunctionCall, LLMFunction
from ..prompts import get_file_editor_prompt
from ..thread.models import ContextItem, FileSnippet, TaggedFunctionResponse, TextItem, UserVisibleLog
from .base import ReviewDecision, Tool, ToolContext

APPLY_EDITS_DESCRIPTION = (
    "Applies edits written using code fences in your response's main body, "
    "above this function call. NO ARGS FOR THIS FN DIRECTLY."
)
RETRY_HINT = "Please try again or try a different approach, like rewriting a larger portion or the whole file."


def _error_text(detail: str) -> TextItem:
    return TextItem(text=f"Your edits were not applied because of an error:\n{detail}")


def _snapshot(path: Path, relative: str, content: str) -> FileSnippet:
    return FileSnippet.from_file(path, relative, 0, max(1, len(split_lines(content))))


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class FileEditorTool(Tool):
    """Parses, reviews and writes code edits found in assistant prose."""

    @property
    def name(self) -> str:
        return "file_editor"

    def functions(self) -> list[LLMFunction]:
        return [LLMFunction(name="apply_edits", description=APPLY_EDITS_DESCRIPTION)]

    async def handle_call(self, call: FunctionCall, context: ToolContext) -> TaggedFunctionResponse | None:
        if call.name != "apply_edits":
            return None
        # The pseudo-function result is appended to this response by the dispatcher
        return TaggedFunctionResponse.for_call(call, "")

    async def context_to_insert_at_beginning_of_thread(self, context: ToolContext) -> str | None:
        return get_file_editor_prompt()

    def can_handle_pseudo_function(self, text: str) -> bool:
        return contains_edits_or_malformed_edits(text)

    async def handle_pseudo_function(self, text: str, context: ToolContext) -> list[ContextItem] | None:
        result = parse(text, resolve_path=context.resolve_path)
        if result.issues:
            context.log(UserVisibleLog(kind="tool_error", detail="Invalid edits"))
            self._debug("warning", "FileEditorTool", f"{len(result.issues)} parse issues")
            return [_error_text(", ".join(str(issue) for issue in result.issues))]

        if not result.edits:
            return None

        try:
            file_edits = FileEdit.from_code_edits(result.edits)
        except EditError as e:
            context.log(UserVisibleLog(kind="tool_error", detail="Invalid edits"))
            return [_error_text(str(e))]

        for file_edit in file_edits:
            try:
                await asyncio.to_thread(file_edit.get_before_after)
            except EditError as e:
                context.log(UserVisibleLog(kind="tool_error", detail="Failed to apply edits"))
                self._debug("warning", "FileEditorTool", f"dry run failed for {file_edit.description}: {e}")
                return [_error_text(f"{e}\n{RETRY_HINT}")]

        decision = ReviewDecision.accept()
        if context.review_edits is not None:
            decision = await context.review_edits(file_edits)

        paths = ", ".join(context.relative_path(edit.path) for edit in file_edits)
        self._debug("info", "FileEditorTool", f"review of {paths}: {decision.kind}")

        if decision.kind == "reject":
            context.log(UserVisibleLog(kind="rejected_edit", detail=paths))
            return [
                TextItem(text=(
                    "User rejected your latest message's edits. They were rolled back. "
                    "Take a beat and let the user tell you more about what they wanted."
                )),
                *self._latest_versions(file_edits, context),
            ]

        if decision.kind == "request_changes":
            context.log(UserVisibleLog(kind="requested_changes", detail=decision.comment))
            return [
                TextItem(text=(
                    "[User requested changes to the edits in your last message. They were rolled back. "
                    f"Here is what they said:\n\n{decision.comment}"
                )),
                *self._latest_versions(file_edits, context),
            ]

        context.log(UserVisibleLog(kind="edited_file", detail=paths))
        try:
            output = await self._apply(file_edits, context)
        except EditError as e:
            description = ", ".join(edit.description for edit in file_edits)
            self._debug("error", "FileEditorTool", f"writing {description} failed: {e}")
            return [TextItem(text=f"Edits '{description}' failed to apply due to error: {e}.")]

        if decision.kind == "accept_with_comment":
            output.append(TextItem(text=f"[User approved the change above, but left this comment:]\n{decision.comment}"))
        return output

    async def _apply(self, file_edits: list[FileEdit], context: ToolContext) -> list[ContextItem]:
        # Compute every new content first so a failing edit writes nothing
        writes = []
        for file_edit in file_edits:
            _, after = await asyncio.to_thread(file_edit.get_before_after)
            writes.append((Path(file_edit.path), after))

        output: list[ContextItem] = []
        for index, (path, content) in enumerate(writes):
            relative = context.relative_path(path)
            try:
                await asyncio.to_thread(_write_file, path, content)
            except OSError as e:
                self._debug("error", "FileEditorTool", f"writing {relative} failed: {e}")
                context.log(UserVisibleLog(kind="tool_error", detail=f"Failed to write {relative}"))
                skipped = [context.relative_path(p) for p, _ in writes[index + 1:]]
                message = f"Writing {relative} failed due to error: {e}. It was left unchanged"
                if skipped:
                    message += f", and these files were not written: {', '.join(skipped)}"
                output.append(TextItem(text=message + "."))
                break
            context.log(UserVisibleLog(kind="wrote_file", detail=relative))
            output.append(TextItem(text=f"Updated {relative}:"))
            output.append(_snapshot(path, relative, content))
        return output

    def _latest_versions(self, file_edits: list[FileEdit], context: ToolContext) -> list[ContextItem]:
        output: list[ContextItem] = []
        for file_edit in file_edits:
            path = Path(file_edit.path)
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            relative = context.relative_path(path)
            output.append(TextItem(text=f"\nLatest version of {relative}:"))
            output.append(_snapshot(path, relative, content))
        return output

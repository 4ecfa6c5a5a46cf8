"""Unit tests for the built-in tools."""
import json
from dataclasses import fields

import pytest
from conftest import call

from codeloop.thread import FileSnippet, TextItem, UserVisibleLog
from codeloop.tools import (
    NO_FOLDER_MESSAGE,
    DeleteFileTool,
    FileEditorTool,
    FileTreeTool,
    GrepTool,
    NoActiveDirectoryError,
    OutsideWorkspaceError,
    ReadFileTool,
    ReviewDecision,
    ToolContext,
    format_file_tree,
    grep_search,
    list_workspace_files,
)

ORIGINAL_UTILS = "def add(a, b):\n    return a + b\n\ndef subtract(a, b):\n    return a - b\n"

SWAP_EDIT = "\n".join([
    "Swapping the operands.",
    "%%%",
    "> FindReplace pkg/utils.py",
    "    return a - b",
    "===WITH===",
    "    return b - a",
    "%%%",
])


def context_with_logs(workspace, reviewer=None) -> tuple[ToolContext, list[UserVisibleLog]]:
    logs: list[UserVisibleLog] = []
    return ToolContext(active_directory=workspace, log=logs.append, review_edits=reviewer), logs


def reviewer_returning(decision: ReviewDecision, seen: list | None = None):
    async def review(file_edits):
        if seen is not None:
            seen.extend(file_edits)
        return decision
    return review


class TestToolContext:
    """Tests for workspace path resolution."""

    def test_relative_path(self, workspace):
        context = ToolContext(active_directory=workspace)
        assert context.resolve_path("pkg/utils.py") == (workspace / "pkg" / "utils.py").resolve()

    def test_leading_slash_is_relative_to_root(self, workspace):
        context = ToolContext(active_directory=workspace)
        assert context.resolve_path("/README.md") == (workspace / "README.md").resolve()

    def test_absolute_path_inside_kept(self, workspace):
        context = ToolContext(active_directory=workspace)
        target = (workspace / "pkg" / "utils.py").resolve()
        assert context.resolve_path(str(target)) == target

    def test_escape_rejected(self, workspace):
        context = ToolContext(active_directory=workspace)
        with pytest.raises(OutsideWorkspaceError):
            context.resolve_path("../outside.txt")

    def test_no_folder(self):
        with pytest.raises(NoActiveDirectoryError):
            ToolContext().resolve_path("a.txt")

    def test_relative_path_display(self, workspace):
        context = ToolContext(active_directory=workspace)
        assert context.relative_path(workspace / "pkg" / "utils.py") == "pkg/utils.py"

    def test_with_log_keeps_other_fields(self, workspace):
        logs = []
        reviewer = object()
        context = ToolContext(active_directory=workspace, review_edits=reviewer).with_log(logs.append)

        context.log(UserVisibleLog(kind="info", detail="hi"))

        assert [field.name for field in fields(ToolContext)] == ["active_directory", "log", "review_edits"]
        assert context.active_directory == workspace
        assert context.review_edits is reviewer
        assert logs[0].detail == "hi"


class TestReadFileTool:
    """Tests for read_file."""

    @pytest.mark.asyncio
    async def test_reads_snippet(self, workspace):
        context, logs = context_with_logs(workspace)

        response = await ReadFileTool().handle_call(call("read_file", '{"path": "pkg/utils.py"}'), context)

        snippet = response.content[0]
        assert isinstance(snippet, FileSnippet)
        assert snippet.project_relative_path == "pkg/utils.py"
        assert snippet.content == ORIGINAL_UTILS
        assert response.id == "call_read_file"
        assert logs == [UserVisibleLog(kind="read_file", detail="pkg/utils.py")]

    @pytest.mark.asyncio
    async def test_line_offset(self, workspace):
        context, _ = context_with_logs(workspace)

        response = await ReadFileTool(max_lines=1).handle_call(
            call("read_file", '{"path": "pkg/utils.py", "line_offset": 3}'), context
        )

        assert response.content[0].content == "def subtract(a, b):"

    @pytest.mark.asyncio
    async def test_missing_file(self, workspace):
        context, logs = context_with_logs(workspace)

        response = await ReadFileTool().handle_call(call("read_file", '{"path": "nope.py"}'), context)

        assert response.content[0].text.startswith("[File Reader] Unable to read 'nope.py'")
        assert logs == []

    @pytest.mark.asyncio
    async def test_outside_workspace(self, workspace):
        context, _ = context_with_logs(workspace)
        response = await ReadFileTool().handle_call(call("read_file", '{"path": "../../etc/passwd"}'), context)
        assert "outside the workspace" in response.content[0].text

    @pytest.mark.asyncio
    async def test_other_calls_ignored(self, workspace):
        context, _ = context_with_logs(workspace)
        assert await ReadFileTool().handle_call(call("grep"), context) is None


class TestGrepTool:
    """Tests for grep."""

    def test_search_skips_vcs_folders(self, workspace):
        result = grep_search("add", workspace)

        files = [match.file.name for match in result.matches]
        assert files == ["README.md", "utils.py"]
        assert not result.truncated

    def test_search_truncates(self, workspace):
        result = grep_search("a", workspace, max_results=1)
        assert len(result.matches) == 1
        assert result.truncated

    def test_search_glob(self, workspace):
        result = grep_search("add", workspace, file_glob="*.py")
        assert [match.file.name for match in result.matches] == ["utils.py"]

    @pytest.mark.asyncio
    async def test_results_in_pattern_order(self, workspace):
        context, logs = context_with_logs(workspace)
        arguments = json.dumps({"patterns": ["subtract", "Demo"]})

        response = await GrepTool().handle_call(call("grep", arguments), context)

        headers = [item.text for item in response.content if isinstance(item, TextItem)]
        assert headers == ["1 hits for 'subtract':", "1 hits for 'Demo':"]
        assert [log.detail for log in logs] == ["subtract", "Demo"]

    @pytest.mark.asyncio
    async def test_hits_shown_as_snippets(self, workspace):
        context, _ = context_with_logs(workspace)

        response = await GrepTool().handle_call(call("grep", '{"patterns": ["subtract"]}'), context)

        snippet = response.content[1]
        assert isinstance(snippet, FileSnippet)
        assert snippet.line_start == 1
        assert "def subtract(a, b):" in snippet.content

    @pytest.mark.asyncio
    async def test_invalid_regex(self, workspace):
        context, _ = context_with_logs(workspace)

        response = await GrepTool().handle_call(call("grep", '{"patterns": ["("]}'), context)

        assert "failed with error" in response.content[0].text

    @pytest.mark.asyncio
    async def test_no_folder(self):
        response = await GrepTool().handle_call(call("grep", '{"patterns": ["x"]}'), ToolContext())
        assert response.content[0].text == NO_FOLDER_MESSAGE

    @pytest.mark.asyncio
    async def test_missing_patterns(self, workspace):
        context, _ = context_with_logs(workspace)
        response = await GrepTool().handle_call(call("grep", "{}"), context)
        assert response.content[0].text.startswith("Grep failed with error:")


class TestFileTreeTool:
    """Tests for file_tree."""

    def test_format_groups_by_folder(self):
        files = ["README.md", "pkg/__init__.py", "pkg/utils.py", "docs/guide.md", "setup.py"]

        assert format_file_tree(files) == "\n".join([
            "./",
            " README.md",
            " setup.py",
            "docs/guide.md",
            "pkg/",
            " __init__.py",
            " utils.py",
        ])

    def test_walk_skips_hidden_and_dependency_folders(self, workspace, monkeypatch):
        monkeypatch.setattr("codeloop.tools.file_tree._git_files", lambda root: None)
        (workspace / "node_modules").mkdir()
        (workspace / "node_modules" / "lib.js").write_text("x")
        (workspace / ".env").write_text("SECRET=1")

        assert list_workspace_files(workspace) == ["README.md", "pkg/utils.py"]

    @pytest.mark.asyncio
    async def test_lists_workspace(self, workspace):
        context, logs = context_with_logs(workspace)

        response = await FileTreeTool().handle_call(call("file_tree"), context)

        assert response.content[0].text == "README.md\npkg/utils.py"
        assert logs == [UserVisibleLog(kind="listed_files", detail="2 files")]

    @pytest.mark.asyncio
    async def test_listing_capped(self, workspace):
        context, _ = context_with_logs(workspace)

        response = await FileTreeTool(max_files=1).handle_call(call("file_tree"), context)

        assert response.content[0].text == "README.md\n... 1 more files not shown"

    @pytest.mark.asyncio
    async def test_no_folder(self):
        response = await FileTreeTool().handle_call(call("file_tree"), ToolContext())
        assert response.content[0].text == NO_FOLDER_MESSAGE

    @pytest.mark.asyncio
    async def test_other_calls_ignored(self, workspace):
        context, _ = context_with_logs(workspace)
        assert await FileTreeTool().handle_call(call("grep"), context) is None


class TestDeleteFileTool:
    """Tests for delete_file."""

    @pytest.mark.asyncio
    async def test_deletes_file(self, workspace):
        context, logs = context_with_logs(workspace)

        response = await DeleteFileTool().handle_call(call("delete_file", '{"path": "pkg/utils.py"}'), context)

        assert not (workspace / "pkg" / "utils.py").exists()
        assert response.content[0].text == "Successfully deleted file at pkg/utils.py"
        assert logs == [UserVisibleLog(kind="deleted_file", detail="pkg/utils.py")]

    @pytest.mark.asyncio
    async def test_missing_file(self, workspace):
        context, logs = context_with_logs(workspace)

        response = await DeleteFileTool().handle_call(call("delete_file", '{"path": "nope.py"}'), context)

        assert response.content[0].text.startswith("Failed to delete file 'nope.py'")
        assert logs == []

    @pytest.mark.asyncio
    async def test_folders_kept(self, workspace):
        context, _ = context_with_logs(workspace)

        response = await DeleteFileTool().handle_call(call("delete_file", '{"path": "pkg"}'), context)

        assert response.content[0].text.startswith("Failed to delete file 'pkg'")
        assert (workspace / "pkg" / "utils.py").exists()

    @pytest.mark.asyncio
    async def test_outside_workspace(self, workspace):
        outside = workspace.parent / "keep.txt"
        outside.write_text("keep")
        context, _ = context_with_logs(workspace)

        response = await DeleteFileTool().handle_call(call("delete_file", '{"path": "../keep.txt"}'), context)

        assert "outside the workspace" in response.content[0].text
        assert outside.exists()

    @pytest.mark.asyncio
    async def test_no_folder(self):
        response = await DeleteFileTool().handle_call(call("delete_file", '{"path": "a.txt"}'), ToolContext())
        assert response.content[0].text.startswith("Failed to delete file 'a.txt'")


class TestFileEditorTool:
    """Tests for applying fenced edits."""

    def test_claims_edit_text(self):
        tool = FileEditorTool()
        assert tool.can_handle_pseudo_function(SWAP_EDIT)
        assert not tool.can_handle_pseudo_function("No edits here.")

    @pytest.mark.asyncio
    async def test_system_prompt_context(self, workspace):
        text = await FileEditorTool().context_to_insert_at_beginning_of_thread(ToolContext(active_directory=workspace))

        assert "> FindReplace path/file.py" in text
        assert "===WITH===" in text
        assert "{fence}" not in text

    @pytest.mark.asyncio
    async def test_apply_edits_call_has_empty_response(self, workspace):
        context, _ = context_with_logs(workspace)

        response = await FileEditorTool().handle_call(call("apply_edits"), context)

        assert response.name == "apply_edits"
        assert response.content == []

    @pytest.mark.asyncio
    async def test_accepted_edit_written(self, workspace):
        seen = []
        context, logs = context_with_logs(workspace, reviewer_returning(ReviewDecision.accept(), seen))

        items = await FileEditorTool().handle_pseudo_function(SWAP_EDIT, context)

        target = workspace / "pkg" / "utils.py"
        assert target.read_text() == ORIGINAL_UTILS.replace("a - b", "b - a")
        assert items[0].text == "Updated pkg/utils.py:"
        assert isinstance(items[1], FileSnippet)
        assert "return b - a" in items[1].content
        assert len(seen) == 1
        assert [log.kind for log in logs] == ["edited_file", "wrote_file"]

    @pytest.mark.asyncio
    async def test_accept_without_reviewer(self, workspace):
        context, _ = context_with_logs(workspace)
        await FileEditorTool().handle_pseudo_function(SWAP_EDIT, context)
        assert "b - a" in (workspace / "pkg" / "utils.py").read_text()

    @pytest.mark.asyncio
    async def test_new_file_created(self, workspace):
        context, _ = context_with_logs(workspace)

        await FileEditorTool().handle_pseudo_function("%%%\n> Write docs/new.md\n# New\n%%%", context)

        assert (workspace / "docs" / "new.md").read_text() == "# New"

    @pytest.mark.asyncio
    async def test_failed_write_reports_written_files(self, workspace):
        context, logs = context_with_logs(workspace)
        text = SWAP_EDIT + "\n".join([
            "",
            "%%%",
            "> Write README.md/inner.txt",
            "inner",
            "%%%",
            "%%%",
            "> Write docs/after.md",
            "after",
            "%%%",
        ])

        items = await FileEditorTool().handle_pseudo_function(text, context)

        assert "b - a" in (workspace / "pkg" / "utils.py").read_text()
        assert not (workspace / "docs").exists()
        assert items[0].text == "Updated pkg/utils.py:"
        assert items[-1].text.startswith("Writing README.md/inner.txt failed due to error:")
        assert "docs/after.md" in items[-1].text
        assert [log.kind for log in logs] == ["edited_file", "wrote_file", "tool_error"]

    @pytest.mark.asyncio
    async def test_accept_with_comment(self, workspace):
        decision = ReviewDecision(kind="accept_with_comment", comment="Add a test too")
        context, _ = context_with_logs(workspace, reviewer_returning(decision))

        items = await FileEditorTool().handle_pseudo_function(SWAP_EDIT, context)

        assert items[-1].text == "[User approved the change above, but left this comment:]\nAdd a test too"

    @pytest.mark.asyncio
    async def test_rejected_edit_rolled_back(self, workspace):
        context, logs = context_with_logs(workspace, reviewer_returning(ReviewDecision(kind="reject")))

        items = await FileEditorTool().handle_pseudo_function(SWAP_EDIT, context)

        assert (workspace / "pkg" / "utils.py").read_text() == ORIGINAL_UTILS
        assert items[0].text.startswith("User rejected your latest message's edits.")
        assert items[1].text == "\nLatest version of pkg/utils.py:"
        assert logs[0].kind == "rejected_edit"

    @pytest.mark.asyncio
    async def test_requested_changes(self, workspace):
        decision = ReviewDecision(kind="request_changes", comment="Keep the original order")
        context, logs = context_with_logs(workspace, reviewer_returning(decision))

        items = await FileEditorTool().handle_pseudo_function(SWAP_EDIT, context)

        assert (workspace / "pkg" / "utils.py").read_text() == ORIGINAL_UTILS
        assert items[0].text.endswith("Here is what they said:\n\nKeep the original order")
        assert logs[0] == UserVisibleLog(kind="requested_changes", detail="Keep the original order")

    @pytest.mark.asyncio
    async def test_parse_error_reported(self, workspace):
        context, logs = context_with_logs(workspace)
        text = "%%%\n> FindReplace pkg/utils.py\na\n===WITH===\nb\n===WITH===\nc\n%%%"

        items = await FileEditorTool().handle_pseudo_function(text, context)

        assert items[0].text.startswith("Your edits were not applied because of an error:\nline 2:")
        assert logs == [UserVisibleLog(kind="tool_error", detail="Invalid edits")]

    @pytest.mark.asyncio
    async def test_failed_find_not_reviewed(self, workspace):
        seen = []
        context, logs = context_with_logs(workspace, reviewer_returning(ReviewDecision.accept(), seen))
        text = "%%%\n> FindReplace pkg/utils.py\nnot in the file\n===WITH===\nx\n%%%"

        items = await FileEditorTool().handle_pseudo_function(text, context)

        assert "not found VERBATIM" in items[0].text
        assert items[0].text.endswith("rewriting a larger portion or the whole file.")
        assert seen == []
        assert logs[0].detail == "Failed to apply edits"
        assert (workspace / "pkg" / "utils.py").read_text() == ORIGINAL_UTILS

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, workspace):
        context, _ = context_with_logs(workspace)
        text = "\n".join([
            "%%%", "> Write README.md", "replaced", "%%%",
            "%%%", "> Replace pkg/utils.py:40-41", "x", "%%%",
        ])

        items = await FileEditorTool().handle_pseudo_function(text, context)

        assert "Invalid line range" in items[0].text
        assert (workspace / "README.md").read_text() == "# Demo\n\nCall add() to add numbers.\n"

    @pytest.mark.asyncio
    async def test_path_outside_workspace(self, workspace):
        context, _ = context_with_logs(workspace)

        items = await FileEditorTool().handle_pseudo_function("%%%\n> Write ../evil.txt\nx\n%%%", context)

        assert "outside the workspace" in items[0].text
        assert not (workspace.parent / "evil.txt").exists()

    @pytest.mark.asyncio
    async def test_no_edits_not_claimed(self, workspace):
        context, _ = context_with_logs(workspace)
        assert await FileEditorTool().handle_pseudo_function("Plain answer.", context) is None

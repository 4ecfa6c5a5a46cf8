"""Unit tests for the thread data model and step state machine."""
import pytest
from conftest import assistant, call
from hypothesis import given
from hypothesis import strategies as st

from codeloop.config import RESPONSE_INTERRUPTED
from codeloop.llm.models import ChatMessage
from codeloop.thread import (
    FileSnippet,
    NoneStatus,
    PausedStatus,
    RunningStatus,
    Step,
    StoppedWithErrorStatus,
    TaggedFunctionResponse,
    TaggedMessage,
    TextItem,
    Thread,
    ToolUseStep,
    UserVisibleLog,
    is_live,
    owned_by,
)


def make_step(text: str = "hello") -> Step:
    return Step(initial_request=TaggedMessage.from_text("user", text))


class TestToolUseStep:
    """Tests for ToolUseStep completion rules."""

    def test_incomplete_until_answered(self):
        tool_step = ToolUseStep(initial_response=TaggedMessage.from_chat_message(assistant("", call("read_file"))))
        assert not tool_step.is_complete

        tool_step.complete_with_responses([TaggedFunctionResponse.for_call(call("read_file"), "ok")])
        assert tool_step.is_complete

    def test_responses_are_exclusive(self):
        """A step cannot hold both function and pseudo-function responses."""
        tool_step = ToolUseStep(initial_response=TaggedMessage.from_text("assistant", "edits"))
        tool_step.complete_with_pseudo_response([TextItem(text="applied")])

        with pytest.raises(ValueError):
            tool_step.complete_with_responses([TaggedFunctionResponse(name="x")])

    def test_fix_synthesizes_interrupted_responses(self):
        calls = [call("a", call_id="1"), call("b", call_id="2")]
        tool_step = ToolUseStep(initial_response=TaggedMessage.from_chat_message(assistant("", *calls)))

        tool_step.fix_if_incomplete()

        assert [r.id for r in tool_step.computer_response] == ["1", "2"]
        assert all(r.content[0].text == RESPONSE_INTERRUPTED for r in tool_step.computer_response)

    def test_fix_without_calls_uses_pseudo_response(self):
        tool_step = ToolUseStep(initial_response=TaggedMessage.from_text("assistant", "prose"))
        tool_step.fix_if_incomplete()

        assert tool_step.pseudo_function_response.role == "user"
        assert tool_step.pseudo_function_response.as_plain_text() == RESPONSE_INTERRUPTED

    def test_logs_by_call_id(self):
        tool_step = ToolUseStep(initial_response=TaggedMessage.from_text("assistant", ""))
        tool_step.add_log(UserVisibleLog(kind="read_file", detail="a.py"), "call_1")
        tool_step.add_log(UserVisibleLog(kind="info", detail="step"))

        assert tool_step.logs_by_call_id["call_1"][0].detail == "a.py"
        assert tool_step.user_visible_logs[0].kind == "info"


class TestStep:
    """Tests for Step partial-response folding and repair."""

    def test_plaintext_partial_becomes_final_message(self):
        step = make_step()
        step.append_or_update_partial_response(assistant("Hel"))
        step.append_or_update_partial_response(assistant("Hello"))

        assert step.assistant_message_for_user.as_plain_text() == "Hello"
        assert step.tool_use_loop == []
        assert step.is_complete

    def test_function_call_partials_replace_open_tool_step(self):
        step = make_step()
        step.append_or_update_partial_response(assistant("Let me look"))
        step.append_or_update_partial_response(assistant("Let me look", call("read_file", '{"pa')))
        step.append_or_update_partial_response(assistant("Let me look", call("read_file", '{"path": "a"}')))

        assert step.assistant_message_for_user is None
        assert len(step.tool_use_loop) == 1
        assert step.pending_function_calls_to_execute[0].arguments == '{"path": "a"}'

    def test_new_tool_step_after_completed_one(self):
        step = make_step()
        step.append_or_update_partial_response(assistant("", call("a")))
        step.tool_use_loop[-1].complete_with_responses([TaggedFunctionResponse.for_call(call("a"), "ok")])
        step.append_or_update_partial_response(assistant("", call("b")))

        assert len(step.tool_use_loop) == 2
        assert [c.name for c in step.pending_function_calls_to_execute] == ["b"]

    def test_no_pending_calls_when_last_step_complete(self):
        step = make_step()
        assert step.pending_function_calls_to_execute == []
        assert step.last_tool_use_step() is None

    def test_convert_final_message_to_tool_use(self):
        step = make_step()
        step.append_or_update_partial_response(assistant("%%%\n> Write a.txt\nhi\n%%%"))

        tool_step = step.convert_final_message_to_tool_use()

        assert step.assistant_message_for_user is None
        assert step.tool_use_loop == [tool_step]
        assert "Write a.txt" in tool_step.initial_response.as_plain_text()

    def test_convert_without_final_message_fails(self):
        with pytest.raises(ValueError):
            make_step().convert_final_message_to_tool_use()

    def test_as_tagged_messages_order(self):
        step = make_step("do it")
        step.append_or_update_partial_response(assistant("", call("a")))
        step.tool_use_loop[-1].complete_with_responses([TaggedFunctionResponse.for_call(call("a"), "result")])
        step.append_or_update_partial_response(assistant("done"))

        roles = [m.role for m in step.as_tagged_messages()]
        assert roles == ["user", "assistant", "function", "assistant"]

    def test_fix_if_incomplete_adds_final_message(self):
        step = make_step()
        step.append_or_update_partial_response(assistant("", call("a")))
        step.fix_if_incomplete()

        assert step.is_complete
        assert step.assistant_message_for_user.as_plain_text() == RESPONSE_INTERRUPTED


class TestThread:
    """Tests for the Thread aggregate."""

    def test_append_or_update_is_idempotent(self):
        thread = Thread()
        step = make_step()

        thread.append_or_update(step)
        thread.append_or_update(step)

        assert len(thread.steps) == 1

    def test_append_or_update_replaces_same_id(self):
        thread = Thread()
        step = make_step()
        thread.append_or_update(step)

        step.append_or_update_partial_response(assistant("answer"))
        thread.append_or_update(step)

        assert len(thread.steps) == 1
        assert thread.steps[0].assistant_message_for_user.as_plain_text() == "answer"

    def test_append_or_update_copies_step(self):
        thread = Thread()
        step = make_step()
        thread.append_or_update(step)

        step.append_or_update_partial_response(assistant("later"))
        assert thread.steps[0].assistant_message_for_user is None

    def test_different_ids_append(self):
        thread = Thread()
        thread.append_or_update(make_step("one"))
        thread.append_or_update(make_step("two"))
        assert len(thread.steps) == 2

    @given(st.lists(st.tuples(st.integers(min_value=0, max_value=3), st.booleans()), max_size=6))
    def test_fix_incomplete_steps_completes_every_step(self, shapes: list[tuple[int, bool]]):
        """Property test: after repair every step satisfies the completeness rule."""
        thread = Thread()
        for call_count, has_final in shapes:
            step = make_step()
            if call_count:
                calls = [call(f"fn{i}", call_id=f"id{i}") for i in range(call_count)]
                step.append_or_update_partial_response(assistant("", *calls))
            if has_final:
                step.append_or_update_partial_response(assistant("final"))
            thread.steps.append(step)

        thread.fix_incomplete_steps()

        assert all(step.is_complete for step in thread.steps)

    def test_json_round_trip(self):
        thread = Thread(id="t1", status=PausedStatus(run_id="r1"))
        step = make_step()
        step.append_or_update_partial_response(assistant("", call("read_file", '{"path": "x"}')))
        thread.append_or_update(step)

        restored = Thread.model_validate_json(thread.model_dump_json())

        assert restored == thread
        assert isinstance(restored.status, PausedStatus)


class TestStatus:
    """Tests for agent status helpers."""

    def test_is_live(self):
        assert is_live(RunningStatus(run_id="a"))
        assert is_live(PausedStatus(run_id="a"))
        assert not is_live(NoneStatus())
        assert not is_live(StoppedWithErrorStatus(message="boom"))

    def test_owned_by(self):
        assert owned_by(RunningStatus(run_id="a"), "a")
        assert not owned_by(RunningStatus(run_id="a"), "b")
        assert not owned_by(NoneStatus(), "a")


class TestContextItems:
    """Tests for context items and message conversion."""

    def test_file_snippet_from_file(self, tmp_path):
        path = tmp_path / "f.py"
        path.write_text("\n".join(f"line {i}" for i in range(10)))

        snippet = FileSnippet.from_file(path, "f.py", line_start=2, lines_count=3)

        assert snippet.line_start == 2
        assert snippet.lines_count == 3
        assert snippet.file_total_len == 10
        assert snippet.content == "line 2\nline 3\nline 4"

        rendered = snippet.as_string()
        assert rendered.startswith("%% BEGIN FILE SNIPPET [f.py] Lines 2-5 of 10 %%")
        assert "    3 line 3" in rendered
        assert rendered.endswith("there are 5 more lines available to read %%")

    def test_file_snippet_clamps_past_end(self, tmp_path):
        path = tmp_path / "f.py"
        path.write_text("a\nb")

        snippet = FileSnippet.from_file(path, "f.py", line_start=50)

        assert snippet.line_start == 1
        assert snippet.content == "b"

    def test_snippet_covers(self):
        wide = FileSnippet(path="/a", project_relative_path="a", line_start=0, lines_count=10,
                           file_total_len=10, content="")
        narrow = wide.model_copy(update={"line_start": 2, "lines_count": 3})
        other_file = narrow.model_copy(update={"path": "/b"})

        assert wide.covers(narrow)
        assert not narrow.covers(wide)
        assert not wide.covers(other_file)

    def test_chat_message_round_trip(self):
        message = ChatMessage(role="assistant", content="hi", function_calls=(call("a"),))
        tagged = TaggedMessage.from_chat_message(message)
        assert tagged.as_chat_message() == message

"""Step state machine.

A `Thread` is an ordered list of `Step`s. Every step starts with a user
request, continues through zero or more `ToolUseStep`s (the model calls
tools and the computer answers) and ends with a plaintext assistant
message that carries no function calls.

Hidden design decisions:
- How streamed partial responses fold into the tail of a step
- How interrupted steps are repaired before the next run
- How steps flatten into the message list sent to the model
"""

from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from ..config import RESPONSE_INTERRUPTED
from ..llm.models import ChatMessage, FunctionCall
from .models import (
    AgentStatus,
    ContextItem,
    NoneStatus,
    TaggedFunctionResponse,
    TaggedMessage,
    TextItem,
    UserVisibleLog,
)


class ToolUseStep(BaseModel):
    """One round of the model invoking tools and receiving their results.

    `initial_response` holds at least one function call, unless it is
    plaintext handled as a pseudo-function. Once complete, exactly one of
    `computer_response` or `pseudo_function_response` is populated.
    """

    initial_response: TaggedMessage
    computer_response: list[TaggedFunctionResponse] = Field(default_factory=list)
    pseudo_function_response: TaggedMessage | None = None
    user_visible_logs: list[UserVisibleLog] = Field(default_factory=list)
    logs_by_call_id: dict[str, list[UserVisibleLog]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _responses_are_exclusive(self) -> "ToolUseStep":
        if self.computer_response and self.pseudo_function_response is not None:
            raise ValueError("A tool use step cannot have both function and pseudo-function responses")
        return self

    @property
    def is_complete(self) -> bool:
        return bool(self.computer_response) or self.pseudo_function_response is not None

    @property
    def function_calls(self) -> list[FunctionCall]:
        return self.initial_response.function_calls

    def complete_with_responses(self, responses: list[TaggedFunctionResponse]) -> None:
        if self.pseudo_function_response is not None:
            raise ValueError("Tool use step already has a pseudo-function response")
        self.computer_response = responses

    def complete_with_pseudo_response(self, items: list[ContextItem]) -> None:
        if self.computer_response:
            raise ValueError("Tool use step already has function responses")
        self.pseudo_function_response = TaggedMessage(role="user", content=items)

    def add_log(self, log: UserVisibleLog, call_id: str | None = None) -> None:
        """Record a log for one structured call, or for the step as a whole."""
        if call_id is None:
            self.user_visible_logs.append(log)
        else:
            self.logs_by_call_id.setdefault(call_id, []).append(log)

    def fix_if_incomplete(self) -> None:
        if self.is_complete:
            return
        if self.function_calls:
            self.computer_response = [
                TaggedFunctionResponse.for_call(call, RESPONSE_INTERRUPTED)
                for call in self.function_calls
            ]
        else:
            self.complete_with_pseudo_response([TextItem(text=RESPONSE_INTERRUPTED)])


class Step(BaseModel):
    """One user-request-to-final-answer cycle.

    Complete iff a final assistant message exists and every tool use step
    is complete. Incomplete steps come from interrupted runs and must be
    repaired before they are sent to the model again.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    initial_request: TaggedMessage
    tool_use_loop: list[ToolUseStep] = Field(default_factory=list)
    assistant_message_for_user: TaggedMessage | None = None

    @property
    def is_complete(self) -> bool:
        return self.assistant_message_for_user is not None and all(
            tool_step.is_complete for tool_step in self.tool_use_loop
        )

    def last_tool_use_step(self) -> ToolUseStep | None:
        if not self.tool_use_loop:
            return None
        return self.tool_use_loop[-1]

    @property
    def pending_function_calls_to_execute(self) -> list[FunctionCall]:
        """Function calls of the last tool use step, if it is still open."""
        last = self.last_tool_use_step()
        if last is not None and not last.is_complete:
            return list(last.function_calls)
        return []

    def append_or_update_partial_response(self, message: ChatMessage) -> None:
        """Fold one cumulative streamed message into the tail of this step.

        A message with function calls replaces the open tool use step (or
        opens a new one) and clears any provisional final message; a
        message without calls becomes the provisional final message.
        """
        if not message.function_calls:
            self.assistant_message_for_user = TaggedMessage.from_chat_message(message)
            return

        self.assistant_message_for_user = None
        tool_step = ToolUseStep(initial_response=TaggedMessage.from_chat_message(message))
        last = self.last_tool_use_step()
        if last is not None and not last.is_complete:
            self.tool_use_loop[-1] = tool_step
        else:
            self.tool_use_loop.append(tool_step)

    def convert_final_message_to_tool_use(self) -> ToolUseStep:
        """Move the final assistant message into a new tool use step.

        Used when a tool claims the plaintext answer as a pseudo-function.

        Raises:
            ValueError: If the step has no final assistant message
        """
        if self.assistant_message_for_user is None:
            raise ValueError("Step has no final assistant message to convert")
        tool_step = ToolUseStep(initial_response=self.assistant_message_for_user)
        self.tool_use_loop.append(tool_step)
        self.assistant_message_for_user = None
        return tool_step

    def fix_if_incomplete(self) -> None:
        for tool_step in self.tool_use_loop:
            tool_step.fix_if_incomplete()
        if self.assistant_message_for_user is None:
            self.assistant_message_for_user = TaggedMessage.from_text("assistant", RESPONSE_INTERRUPTED)

    def as_tagged_messages(self) -> list[TaggedMessage]:
        messages = [self.initial_request]
        for tool_step in self.tool_use_loop:
            messages.append(tool_step.initial_response)
            if tool_step.computer_response:
                messages.append(TaggedMessage(
                    role="function",
                    function_responses=tool_step.computer_response
                ))
            if tool_step.pseudo_function_response is not None:
                messages.append(tool_step.pseudo_function_response)
        if self.assistant_message_for_user is not None:
            messages.append(self.assistant_message_for_user)
        return messages


class Thread(BaseModel):
    """The full conversation aggregate: ordered steps plus agent status."""

    id: str = "default"
    steps: list[Step] = Field(default_factory=list)
    status: AgentStatus = Field(default_factory=NoneStatus)

    def last_step(self) -> Step | None:
        if not self.steps:
            return None
        return self.steps[-1]

    def append_or_update(self, step: Step) -> None:
        """Replace the last step if it has the same id, else append.

        The step is copied, so later changes by the caller do not leak
        into the thread.
        """
        step = step.model_copy(deep=True)
        last = self.last_step()
        if last is not None and last.id == step.id:
            self.steps[-1] = step
        else:
            self.steps.append(step)

    def fix_incomplete_steps(self) -> None:
        """Repair interrupted steps so every step satisfies the completeness rule."""
        for step in self.steps:
            if not step.is_complete:
                step.fix_if_incomplete()

    def as_tagged_messages(self) -> list[TaggedMessage]:
        return [message for step in self.steps for message in step.as_tagged_messages()]

"""Tool dispatch for one model turn.

Hidden design decisions:
- Plaintext turns are offered to tools as pseudo-functions, first claim wins
- Structured calls run sequentially in the order the model emitted them
- A pseudo-function result that accompanies structured calls is attached
  to the first function response
- Logs are recorded on the tool use step they belong to
"""

from ..llm.models import FunctionCall
from ..thread import ContextItem, Step, ToolUseStep, UserVisibleLog
from ..thread.models import TaggedFunctionResponse
from ..tools import Tool, ToolContext
from .cancellation import CancellationToken
from .errors import UnknownToolNameError


class ToolDispatcher:
    """Routes function calls and pseudo-functions to registered tools."""

    def __init__(self, tools: list[Tool]):
        self._tools = list(tools)
        self._debug_callback = None

    @property
    def tools(self) -> list[Tool]:
        return list(self._tools)

    def set_debug_callback(self, callback) -> None:
        """Set debug callback for logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
        """
        self._debug_callback = callback
        for tool in self._tools:
            tool.set_debug_callback(callback)

    def _debug(self, level: str, component: str, message: str) -> None:
        if self._debug_callback:
            self._debug_callback(level, component, message)

    async def handle_pseudo_function(
        self,
        text: str,
        context: ToolContext,
        logs: list[UserVisibleLog]
    ) -> list[ContextItem] | None:
        """Offer plaintext to each tool in order; the first claim wins.

        Returns:
            The claiming tool's result items, or None if no tool claimed it
        """
        if not text:
            return None
        tool_context = context.with_log(logs.append)
        for tool in self._tools:
            if not tool.can_handle_pseudo_function(text):
                continue
            items = await tool.handle_pseudo_function(text, tool_context)
            if items is not None:
                self._debug("info", "ToolDispatcher", f"{tool.name} handled a pseudo-function")
                return items
        return None

    async def handle_call(self, call: FunctionCall, context: ToolContext) -> TaggedFunctionResponse:
        """Ask each tool in order to answer `call`.

        Raises:
            UnknownToolNameError: If no tool answers it
        """
        for tool in self._tools:
            response = await tool.handle_call(call, context)
            if response is not None:
                return response
        raise UnknownToolNameError(call.name)

    async def dispatch(self, step: Step, context: ToolContext, token: CancellationToken) -> bool:
        """Run the tools for the latest model turn of `step`.

        Returns:
            False when the turn was a genuine final answer that needs no
            further model call, True otherwise

        Raises:
            UnknownToolNameError: If a call matches no tool
            RunCancelledError: If the run is cancelled between calls
        """
        calls = step.pending_function_calls_to_execute
        if not calls:
            return await self._dispatch_plaintext(step, context, token)

        tool_step = step.last_tool_use_step()
        logs: list[UserVisibleLog] = []
        pseudo_items = await self.handle_pseudo_function(
            tool_step.initial_response.as_plain_text(), context, logs
        )
        for log in logs:
            tool_step.add_log(log)

        self._debug("info", "ToolDispatcher", f"Handling {len(calls)} function calls")
        responses: list[TaggedFunctionResponse] = []
        for call in calls:
            token.raise_if_cancelled()
            call_key = call.id or call.name
            self._debug("debug", "ToolDispatcher", f"Calling {call.name}({call.arguments})")
            call_context = context.with_log(lambda log, key=call_key: tool_step.add_log(log, key))
            responses.append(await self.handle_call(call, call_context))
        token.raise_if_cancelled()

        if pseudo_items:
            first = responses[0]
            responses[0] = first.model_copy(update={"content": [*first.content, *pseudo_items]})

        tool_step.complete_with_responses(responses)
        return True

    async def _dispatch_plaintext(self, step: Step, context: ToolContext, token: CancellationToken) -> bool:
        final = step.assistant_message_for_user
        if final is None:
            return False

        token.raise_if_cancelled()
        logs: list[UserVisibleLog] = []
        items = await self.handle_pseudo_function(final.as_plain_text(), context, logs)
        token.raise_if_cancelled()
        if items is None:
            return False

        tool_step: ToolUseStep = step.convert_final_message_to_tool_use()
        for log in logs:
            tool_step.add_log(log)
        tool_step.complete_with_pseudo_response(items)
        return True

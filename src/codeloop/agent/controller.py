"""Agent run controller.

Drives one run of the agent loop over a thread: claim the thread, stream
completions into the current step, dispatch tools and repeat until the
model gives a final answer, calls the finish function or runs out of
iterations.

Hidden design decisions:
- Single-flight: a run claims the thread by atomically moving its status
  to running(run_id); a second claim fails with AlreadyRunningError
- Every streamed chunk is written through to the store, gated by the
  cancellation token, the paused state and run-id ownership
- Status cleanup after errors or cancellation only touches the status
  of the run that is ending
"""

import asyncio
from pathlib import Path
from typing import Any
from uuid import uuid4

from ..config import AGENT_TIMED_OUT, CONTEXT_MARKER, DEFAULT_MAX_ITERATIONS
from ..llm import LLMProvider
from ..llm.fake_functions import extract_from_partial, to_fake_function_messages, tools_to_system_prompt
from ..llm.models import ChatMessage, FunctionCall, LLMFunction
from ..prompts import get_agent_prompt
from ..store import ThreadStore
from ..thread import (
    NoneStatus,
    PausedStatus,
    RunningStatus,
    Step,
    StoppedWithErrorStatus,
    TaggedMessage,
    Thread,
    UserVisibleLog,
    elide_redundant_context,
    is_live,
    omit_old_messages,
    owned_by,
)
from ..tools import EditReviewer, Tool, ToolContext
from .cancellation import CancellationToken
from .dispatch import ToolDispatcher
from .errors import AlreadyRunningError, RunCancelledError
from .usage import UsageSummary


class AgentRunController:
    """Runs the agent loop against one thread store.

    Usage:
        controller = AgentRunController(store, llm, default_tools(), active_directory=Path("."))
        await controller.send("Rename foo to bar in utils.py")
    """

    def __init__(
        self,
        store: ThreadStore,
        llm: LLMProvider,
        tools: list[Tool],
        system_prompt: str | None = None,
        active_directory: Path | None = None,
        review_edits: EditReviewer | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        use_fake_functions: bool = False,
        temperature: float = 0.7
    ):
        """Initialize the controller.

        Args:
            store: Thread store holding the conversation
            llm: Completion provider
            tools: Tools in dispatch order
            system_prompt: Template containing the [[CONTEXT]] marker
                (default: prompts/agent.txt)
            active_directory: Workspace folder the tools may touch
            review_edits: Asks the user to review file edits; None accepts them
            max_iterations: Default iteration budget per run
            use_fake_functions: Use XML function calls even if the provider
                supports structured ones
            temperature: Sampling temperature
        """
        self._store = store
        self._llm = llm
        self._dispatcher = ToolDispatcher(tools)
        self._system_prompt = system_prompt if system_prompt is not None else get_agent_prompt()
        self._active_directory = active_directory
        self._review_edits = review_edits
        self._max_iterations = max_iterations
        self._use_fake_functions = use_fake_functions
        self._temperature = temperature
        self._usage = UsageSummary()
        self._tokens: dict[str, CancellationToken] = {}
        self._debug_callback: Any | None = None

    def set_debug_callback(self, callback: Any) -> None:
        """Set the debug callback for detailed execution logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
                      level: 'debug', 'info', 'warning', 'error'
                      component: Source component name
                      message: Log message
        """
        self._debug_callback = callback

        # Propagate callback to the dispatcher and its tools
        self._dispatcher.set_debug_callback(callback)

    def _debug(self, level: str, component: str, message: str) -> None:
        """Send a debug log message if callback is set."""
        if self._debug_callback:
            self._debug_callback(level, component, message)

    @property
    def usage(self) -> UsageSummary:
        """Token usage accumulated over every run of this controller."""
        return self._usage

    @property
    def fake_functions(self) -> bool:
        return self._use_fake_functions or not self._llm.supports_function_calling

    async def send(
        self,
        message: str | TaggedMessage,
        finish_function: LLMFunction | None = None,
        max_iterations: int | None = None
    ) -> FunctionCall | None:
        """Run the agent on a new user message.

        Args:
            message: The user's request
            finish_function: If given, calling it ends the run and its call
                is returned; on the last iteration it is the only function
                offered
            max_iterations: Iteration budget (default: the controller's)

        Returns:
            The finish function call, or None if the run ended otherwise

        Raises:
            AlreadyRunningError: If the thread already has a live run
            UnknownToolNameError: If the model called a function no tool handles
            ValueError: If the system prompt lacks the [[CONTEXT]] marker
        """
        if CONTEXT_MARKER not in self._system_prompt:
            raise ValueError(f"System prompt must contain the {CONTEXT_MARKER} marker")

        run_id = str(uuid4())

        # Raising inside the callback leaves the stored thread untouched
        def claim(thread: Thread) -> None:
            if is_live(thread.status):
                raise AlreadyRunningError(self._store.thread_id, thread.status.run_id)
            thread.status = RunningStatus(run_id=run_id)
            thread.fix_incomplete_steps()

        await self._store.modify(claim)

        token = CancellationToken(run_id)
        self._tokens[run_id] = token
        self._debug("info", "Agent", f"Run {run_id} started on thread '{self._store.thread_id}'")

        try:
            result = await self._run(message, finish_function, max_iterations or self._max_iterations, token)
        except RunCancelledError:
            self._debug("info", "Agent", f"Run {run_id} cancelled")
            await self._reset_status(run_id)
            return None
        except asyncio.CancelledError:
            self._debug("info", "Agent", f"Run {run_id} task cancelled")
            await self._reset_status(run_id)
            raise
        except Exception as e:
            self._debug("error", "Agent", f"Run {run_id} failed: {e}")
            await self._fail(run_id, f"Error: {e}")
            raise
        finally:
            self._tokens.pop(run_id, None)

        await self._reset_status(run_id)
        self._debug("info", "Agent", f"Run {run_id} finished")
        return result

    async def _run(
        self,
        message: str | TaggedMessage,
        finish_function: LLMFunction | None,
        max_iterations: int,
        token: CancellationToken
    ) -> FunctionCall | None:
        context = ToolContext(active_directory=self._active_directory, review_edits=self._review_edits)
        all_functions = [fn for tool in self._dispatcher.tools for fn in tool.functions()]
        if finish_function is not None:
            all_functions.append(finish_function)
        system_message = ChatMessage(role="system", content=await self._build_system_prompt(context, all_functions))

        request = message if isinstance(message, TaggedMessage) else TaggedMessage.from_text("user", message)
        step = Step(initial_request=request)
        await self._save(step, token)

        for iteration in range(max_iterations):
            token.raise_if_cancelled()
            self._debug("debug", "Agent", f"Iteration {iteration + 1}/{max_iterations}")

            # On the last iteration only the finish function may be called
            last_iteration = iteration > 0 and iteration + 1 == max_iterations
            functions = [finish_function] if last_iteration and finish_function else all_functions

            rounds_before = len(step.tool_use_loop)
            usage_log = await self._complete(step, system_message, functions, token)

            pending = step.pending_function_calls_to_execute
            self._debug("info", "Agent", f"Got response with {len(pending)} function calls")
            if finish_function is not None:
                finish_call = next((c for c in pending if c.name == finish_function.name), None)
                if finish_call is not None:
                    self._debug("info", "Agent", f"Finish function {finish_call.name} called")
                    self._attach_log(step, usage_log, rounds_before)
                    await self._save(step, token)
                    return finish_call

            token.raise_if_cancelled()
            should_continue = await self._dispatcher.dispatch(step, context, token)
            self._attach_log(step, usage_log, rounds_before)
            await self._save(step, token)
            if not should_continue:
                self._debug("info", "Agent", "Received final response (no function calls)")
                return None

        self._debug("warning", "Agent", f"Ran too many iterations ({max_iterations}) and timed out")
        if step.assistant_message_for_user is None:
            step.assistant_message_for_user = TaggedMessage.from_text("assistant", AGENT_TIMED_OUT)
        await self._save(step, token)
        return None

    async def _build_system_prompt(self, context: ToolContext, functions: list[LLMFunction]) -> str:
        contexts = await asyncio.gather(*(
            tool.context_to_insert_at_beginning_of_thread(context) for tool in self._dispatcher.tools
        ))
        sections = [text for text in contexts if text]
        if self._active_directory is not None:
            sections.append(
                f"# Workspace\nThe workspace folder is {self._active_directory.resolve()}. "
                "Only read and edit files inside it; paths you write are relative to it."
            )
        prompt = self._system_prompt.replace(CONTEXT_MARKER, "\n\n".join(sections))
        if self.fake_functions and functions:
            prompt = f"{tools_to_system_prompt(functions)}\n\n{prompt}"
        return prompt

    async def _prompt_messages(self, system_message: ChatMessage) -> list[ChatMessage]:
        thread = await self._store.read()
        tagged = elide_redundant_context(omit_old_messages(thread.as_tagged_messages()))
        messages = [system_message] + [m.as_chat_message() for m in tagged]
        if self.fake_functions:
            messages = to_fake_function_messages(messages)
        return messages

    async def _complete(
        self,
        step: Step,
        system_message: ChatMessage,
        functions: list[LLMFunction],
        token: CancellationToken
    ) -> UserVisibleLog | None:
        """Stream one completion into `step`, saving after every chunk.

        Returns:
            A token usage log if the provider reported usage
        """
        messages = await self._prompt_messages(system_message)
        self._debug("debug", "Agent", f"Sending {len(messages)} messages")

        stream = await self._llm.stream_completion(
            messages,
            functions=None if self.fake_functions else functions,
            temperature=self._temperature,
        )
        async for partial in stream:
            if self.fake_functions:
                partial = extract_from_partial(partial)
            step.append_or_update_partial_response(partial)
            await self._save(step, token)

        counts = self._usage.add_stream_usage(self._llm.model, stream.usage)
        if counts is None:
            return None
        prompt_tokens, completion_tokens = counts
        self._debug(
            "info", "Usage",
            f"{prompt_tokens} prompt, {completion_tokens} completion for model {self._llm.model}"
        )
        return UserVisibleLog.token_usage(prompt_tokens, completion_tokens, self._llm.model)

    def _attach_log(self, step: Step, log: UserVisibleLog | None, rounds_before: int) -> None:
        # Only a tool use step opened by this turn carries its usage
        if log is not None and len(step.tool_use_loop) > rounds_before:
            step.tool_use_loop[-1].add_log(log)

    async def _save(self, step: Step, token: CancellationToken) -> None:
        """Write the step through to the store.

        Raises:
            RunCancelledError: If the run was cancelled or no longer owns the thread
        """
        token.raise_if_cancelled()
        await self._wait_while_paused(token)

        def write(thread: Thread) -> bool:
            if not owned_by(thread.status, token.run_id):
                return False
            thread.append_or_update(step)
            return True

        if not await self._store.modify(write):
            raise RunCancelledError(token.run_id)

    async def _wait_while_paused(self, token: CancellationToken) -> None:
        with self._store.subscribe() as changes:
            thread = await self._store.read()
            while isinstance(thread.status, PausedStatus) and thread.status.run_id == token.run_id:
                self._debug("debug", "Agent", f"Run {token.run_id} paused")
                next_change = asyncio.ensure_future(changes.next())
                cancelled = asyncio.ensure_future(token.wait())
                try:
                    await asyncio.wait({next_change, cancelled}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    next_change.cancel()
                    cancelled.cancel()
                token.raise_if_cancelled()
                thread = next_change.result()

    async def _reset_status(self, run_id: str) -> None:
        def reset(thread: Thread) -> None:
            if owned_by(thread.status, run_id):
                thread.status = NoneStatus()

        await self._store.modify(reset)

    async def _fail(self, run_id: str, message: str) -> None:
        def fail(thread: Thread) -> None:
            if owned_by(thread.status, run_id):
                thread.status = StoppedWithErrorStatus(message=message)

        await self._store.modify(fail)

    async def pause(self) -> bool:
        """Pause the live run at its next save; returns False if nothing was running."""
        def set_paused(thread: Thread) -> bool:
            if isinstance(thread.status, RunningStatus):
                thread.status = PausedStatus(run_id=thread.status.run_id)
                return True
            return False

        return await self._store.modify(set_paused)

    async def resume(self) -> bool:
        """Resume a paused run; returns False if nothing was paused."""
        def set_running(thread: Thread) -> bool:
            if isinstance(thread.status, PausedStatus):
                thread.status = RunningStatus(run_id=thread.status.run_id)
                return True
            return False

        return await self._store.modify(set_running)

    def cancel(self) -> bool:
        """Cancel every run started by this controller that is still going."""
        for token in self._tokens.values():
            token.cancel()
        return bool(self._tokens)

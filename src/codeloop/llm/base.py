from abc import ABC, abstractmethod
from typing import Any

from .models import ChatMessage, LLMFunction, StreamingResponse


class LLMProvider(ABC):
    """Completion transport used by the agent loop.

    Hidden design decisions:
    - Which vendor SDK serves the request and how its client is configured
    - How function calls and function responses are spelled on the wire
    - How streamed deltas are folded into cumulative assistant messages
    - Where token usage comes from (reported on the StreamingResponse)

    Providers own network clients, so use them as async context managers
    or call `close()` when done::

        async with create_llm_provider("openai", api_key=key) as llm:
            stream = await llm.stream_completion(messages, functions)
            async for partial in stream:
                ...
    """

    @property
    def supports_function_calling(self) -> bool:
        """False when the model needs the XML fake-function convention."""
        return True

    @property
    @abstractmethod
    def model(self) -> str:
        """Model used when a call does not name one."""

    @abstractmethod
    async def stream_completion(
        self,
        messages: list[ChatMessage],
        functions: list[LLMFunction] | None = None,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Start a streamed completion over the conversation so far.

        Args:
            messages: Conversation history, oldest first
            functions: Functions offered to the model; None or [] offers none
            model: Overrides the provider's default model
            temperature: Sampling temperature
            max_tokens: Output token cap
            **kwargs: Passed through to the vendor SDK

        Returns:
            StreamingResponse yielding the assistant message accumulated so
            far, one per delta. `usage` is filled once the stream ends.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP client."""

    async def __aenter__(self) -> "LLMProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        # httpx may complain about a closed loop while shutting down; see
        # https://github.com/encode/httpx/issues/914
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise

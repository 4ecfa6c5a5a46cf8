import json
from collections.abc import AsyncIterator
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant", "function"]


class FunctionCall(BaseModel):
    """A structured function call emitted by the model.

    `arguments` is kept as the raw JSON string the model produced; it may
    be incomplete while a response is still streaming.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Call id assigned by the transport")
    name: str = Field(description="Name of the function being called")
    arguments: str = Field(default="{}", description="Arguments as a JSON string")

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the JSON arguments, returning {} for empty or invalid JSON."""
        if not self.arguments.strip():
            return {}
        try:
            value = json.loads(self.arguments)
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}


class FunctionResponse(BaseModel):
    """Plain-text response to a single function call, as sent to the transport."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str
    text: str = ""


class LLMFunction(BaseModel):
    """Schema for a callable function offered to the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []},
        description="JSON schema of the arguments object"
    )


class ChatMessage(BaseModel):
    """Represents a chat message in a conversation.

    Function-calling turns carry `function_calls` (role=assistant) and the
    answers to them travel back as a role=function message holding
    `function_responses`.
    """

    model_config = ConfigDict(frozen=True)

    role: Role = Field(description="Role of the message sender")
    content: str = Field(default="", description="Text content of the message")
    images: tuple[str, ...] = Field(default=(), description="Images as data URLs")
    function_calls: tuple[FunctionCall, ...] = ()
    function_responses: tuple[FunctionResponse, ...] = ()


class StreamingResponse:
    """Wrapper for streaming LLM responses that captures usage info.

    Acts as an async iterator of *cumulative* partial assistant messages:
    every yielded `ChatMessage` contains all text and function calls
    received so far, so consumers can simply keep the latest one.

    Usage:
        stream = await provider.stream_completion(messages, functions)
        async for partial in stream:
            render(partial.content)
        print(stream.usage)  # {"prompt_tokens": 100, "completion_tokens": 50, ...}
    """

    def __init__(self, async_iter: AsyncIterator[ChatMessage]):
        """Initialize with an async iterator of partial messages.

        Args:
            async_iter: Async iterator yielding cumulative partial messages
        """
        self._iter = async_iter
        self._usage: dict[str, Any] | None = None

    @property
    def usage(self) -> dict[str, Any] | None:
        """Get token usage info (available after iteration completes)."""
        return self._usage

    def set_usage(self, usage: dict[str, Any]) -> None:
        """Set token usage info (called by provider at end of stream)."""
        self._usage = usage

    def __aiter__(self) -> "StreamingResponse":
        """Return self as async iterator."""
        return self

    async def __anext__(self) -> ChatMessage:
        """Get next partial message from the underlying iterator."""
        return await self._iter.__anext__()

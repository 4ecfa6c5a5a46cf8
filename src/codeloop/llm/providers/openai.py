from collections.abc import AsyncIterator, Callable
from typing import Any

from openai import AsyncOpenAI

from ..base import LLMProvider
from ..models import ChatMessage, FunctionCall, LLMFunction, StreamingResponse


def _content_with_images(message: ChatMessage) -> str | list[dict[str, Any]]:
    """Build OpenAI content, switching to content parts when images are attached."""
    if not message.images:
        return message.content
    parts: list[dict[str, Any]] = []
    if message.content:
        parts.append({"type": "text", "text": message.content})
    for url in message.images:
        parts.append({"type": "image_url", "image_url": {"url": url}})
    return parts


def _messages_to_openai_format(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Convert chat messages to the Chat Completions wire format.

    - assistant messages with function calls carry `tool_calls`
    - a role=function message expands into one role=tool message per response
    """
    openai_messages: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "function":
            for resp in msg.function_responses:
                openai_messages.append({
                    "role": "tool",
                    "tool_call_id": resp.id or resp.name,
                    "content": resp.text,
                })
            if msg.content:
                openai_messages.append({"role": "user", "content": msg.content})
        elif msg.role == "assistant" and msg.function_calls:
            openai_messages.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": call.id or call.name,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments or "{}"},
                    }
                    for call in msg.function_calls
                ],
            })
        else:
            openai_messages.append({"role": msg.role, "content": _content_with_images(msg)})

    return openai_messages


def _functions_to_tools(functions: list[LLMFunction]) -> list[dict[str, Any]]:
    """Convert function schemas to the OpenAI `tools` parameter."""
    return [
        {
            "type": "function",
            "function": {
                "name": fn.name,
                "description": fn.description,
                "parameters": fn.parameters,
            },
        }
        for fn in functions
    ]


class OpenAIProvider(LLMProvider):
    """OpenAI LLM provider implementation.

    Hidden design decisions:
    - OpenAI API client initialization
    - Message format conversion (tool calls, tool results, image parts)
    - Accumulation of streamed tool-call deltas by index
    - Authentication mechanism

    Also usable with OpenAI-compatible servers through `base_url`; pass
    `function_calling=False` for models served without tool support.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        organization: str | None = None,
        function_calling: bool = True,
        **client_kwargs: Any
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Default model to use
            base_url: Optional custom API base URL
            organization: Optional organization ID
            function_calling: Whether the model supports native tool calls
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        self._model = model
        self._function_calling = function_calling
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            **client_kwargs
        )

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    @property
    def supports_function_calling(self) -> bool:
        return self._function_calling

    async def stream_completion(
        self,
        messages: list[ChatMessage],
        functions: list[LLMFunction] | None = None,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Generate a streaming chat completion using OpenAI.

        Args:
            messages: Conversation history
            functions: Functions offered as tools
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional OpenAI-specific parameters

        Returns:
            StreamingResponse that yields cumulative partial messages
        """
        request_params: dict[str, Any] = {
            "model": model or self._model,
            "messages": _messages_to_openai_format(messages),
            "temperature": temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
            **kwargs,
        }
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens
        if functions and self._function_calling:
            request_params["tools"] = _functions_to_tools(functions)

        # Usage goes to this call's response even when streams overlap
        def report_usage(usage: dict[str, Any]) -> None:
            response.set_usage(usage)

        response = StreamingResponse(self._stream_generator(request_params, report_usage))
        return response

    async def _stream_generator(
        self,
        request_params: dict[str, Any],
        report_usage: Callable[[dict[str, Any]], None],
    ) -> AsyncIterator[ChatMessage]:
        """Internal generator that accumulates deltas and captures usage."""
        stream = await self._client.chat.completions.create(**request_params)

        text_parts: list[str] = []
        # index -> {"id", "name", "arguments"}
        pending_calls: dict[int, dict[str, str]] = {}

        async for chunk in stream:
            if chunk.usage is not None:
                report_usage({
                    "prompt_tokens": chunk.usage.prompt_tokens,
                    "completion_tokens": chunk.usage.completion_tokens,
                    "total_tokens": chunk.usage.total_tokens,
                })
            if not chunk.choices:
                continue

            delta = chunk.choices[0].delta
            changed = False
            if delta.content:
                text_parts.append(delta.content)
                changed = True
            for tool_delta in delta.tool_calls or []:
                entry = pending_calls.setdefault(
                    tool_delta.index, {"id": "", "name": "", "arguments": ""}
                )
                if tool_delta.id:
                    entry["id"] = tool_delta.id
                if tool_delta.function is not None:
                    if tool_delta.function.name:
                        entry["name"] += tool_delta.function.name
                    if tool_delta.function.arguments:
                        entry["arguments"] += tool_delta.function.arguments
                changed = True

            if changed:
                yield ChatMessage(
                    role="assistant",
                    content="".join(text_parts),
                    function_calls=tuple(
                        FunctionCall(
                            id=entry["id"] or None,
                            name=entry["name"],
                            arguments=entry["arguments"] or "{}",
                        )
                        for _, entry in sorted(pending_calls.items())
                    ),
                )

    async def close(self) -> None:
        """Close the OpenAI client.

        Note: Uses the OpenAI SDK's async context manager for proper cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()

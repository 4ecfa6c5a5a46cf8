"""Anthropic Claude LLM provider implementation.

Uses the official Anthropic Python SDK for async streaming completions.
Reference: https://github.com/anthropics/anthropic-sdk-python
"""

import json
import re
from collections.abc import AsyncIterator, Callable
from typing import Any

from anthropic import AsyncAnthropic

from ..base import LLMProvider
from ..models import ChatMessage, FunctionCall, LLMFunction, StreamingResponse

_DATA_URL = re.compile(r"^data:(?P<media>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)


def _image_block(url: str) -> dict[str, Any]:
    match = _DATA_URL.match(url)
    if match:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": match["media"], "data": match["data"]},
        }
    return {"type": "image", "source": {"type": "url", "url": url}}


def _decode_arguments(arguments: str) -> dict[str, Any]:
    try:
        value = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def _messages_to_anthropic_format(
    messages: list[ChatMessage],
) -> tuple[str | None, list[dict[str, Any]]]:
    """Split out the system prompt and convert the rest to content blocks.

    Anthropic only accepts a leading system prompt, so system messages that
    appear mid-conversation (e.g. omission markers) are sent as user text.
    Consecutive messages with the same role are merged, since tool results
    and follow-up text must share one user turn.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for index, msg in enumerate(messages):
        if msg.role == "system" and not converted:
            system_parts.append(msg.content)
            continue

        blocks: list[dict[str, Any]] = []
        if msg.role == "function":
            role = "user"
            for resp in msg.function_responses:
                blocks.append({
                    "type": "tool_result",
                    "tool_use_id": resp.id or resp.name,
                    "content": resp.text or "(empty)",
                })
        else:
            role = "assistant" if msg.role == "assistant" else "user"

        if msg.content:
            blocks.append({"type": "text", "text": msg.content})
        for url in msg.images:
            blocks.append(_image_block(url))
        for call in msg.function_calls:
            blocks.append({
                "type": "tool_use",
                "id": call.id or f"{call.name}_{index}",
                "name": call.name,
                "input": _decode_arguments(call.arguments),
            })
        if not blocks:
            continue

        if converted and converted[-1]["role"] == role:
            converted[-1]["content"].extend(blocks)
        else:
            converted.append({"role": role, "content": blocks})

    system = "\n\n".join(part for part in system_parts if part) or None
    return system, converted


class AnthropicProvider(LLMProvider):
    """Anthropic Claude LLM provider implementation.

    Hidden design decisions:
    - Anthropic API client initialization
    - Message format conversion (system message handling, tool_use/tool_result)
    - Accumulation of streamed text and input_json deltas
    - Authentication mechanism
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        **client_kwargs: Any
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Default model to use (default: claude-sonnet-4-20250514)
            base_url: Optional custom API base URL
            **client_kwargs: Additional kwargs for AsyncAnthropic client
        """
        self._model = model
        self._client = AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            **client_kwargs
        )

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    async def stream_completion(
        self,
        messages: list[ChatMessage],
        functions: list[LLMFunction] | None = None,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Generate a streaming completion using Anthropic Claude.

        Args:
            messages: Conversation history
            functions: Functions offered as tools
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate (default: 4096)
            **kwargs: Additional Anthropic-specific parameters

        Returns:
            StreamingResponse that yields cumulative partial messages
        """
        system_message, anthropic_messages = _messages_to_anthropic_format(messages)

        request_params: dict[str, Any] = {
            "model": model or self._model,
            "messages": anthropic_messages,
            "temperature": temperature,
            "max_tokens": max_tokens or 4096,  # Anthropic requires max_tokens
            **kwargs
        }
        if system_message:
            request_params["system"] = system_message
        if functions:
            request_params["tools"] = [
                {
                    "name": fn.name,
                    "description": fn.description,
                    "input_schema": fn.parameters,
                }
                for fn in functions
            ]

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
        """Internal generator that accumulates blocks and captures usage from events."""
        input_tokens = 0
        output_tokens = 0
        text_parts: list[str] = []
        # content block index -> {"id", "name", "arguments"}
        tool_blocks: dict[int, dict[str, str]] = {}

        def snapshot() -> ChatMessage:
            return ChatMessage(
                role="assistant",
                content="".join(text_parts),
                function_calls=tuple(
                    FunctionCall(
                        id=block["id"],
                        name=block["name"],
                        arguments=block["arguments"] or "{}",
                    )
                    for _, block in sorted(tool_blocks.items())
                ),
            )

        async with self._client.messages.stream(**request_params) as stream:
            async for event in stream:
                event_type = getattr(event, "type", None)
                if event_type == "message_start":
                    usage = getattr(event.message, "usage", None)
                    if usage is not None:
                        input_tokens = usage.input_tokens
                elif event_type == "message_delta":
                    usage = getattr(event, "usage", None)
                    if usage is not None and hasattr(usage, "output_tokens"):
                        output_tokens = usage.output_tokens
                elif event_type == "content_block_start":
                    block = event.content_block
                    if getattr(block, "type", None) == "tool_use":
                        tool_blocks[event.index] = {
                            "id": block.id,
                            "name": block.name,
                            "arguments": "",
                        }
                        yield snapshot()
                elif event_type == "content_block_delta":
                    delta = event.delta
                    delta_type = getattr(delta, "type", None)
                    if delta_type == "text_delta":
                        text_parts.append(delta.text)
                        yield snapshot()
                    elif delta_type == "input_json_delta" and event.index in tool_blocks:
                        tool_blocks[event.index]["arguments"] += delta.partial_json
                        yield snapshot()

            report_usage({
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            })

    async def close(self) -> None:
        """Close the Anthropic client."""
        await self._client.close()

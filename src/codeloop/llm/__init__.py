"""LLM transport layer.

Hides which completion provider is used and how streamed deltas, function
calls and function responses map onto each provider's wire format.
"""

from .base import LLMProvider
from .factory import create_llm_provider
from .models import ChatMessage, FunctionCall, FunctionResponse, LLMFunction, StreamingResponse
from .providers import AnthropicProvider, OpenAIProvider

__all__ = [
    "LLMProvider",
    "create_llm_provider",
    "ChatMessage",
    "FunctionCall",
    "FunctionResponse",
    "LLMFunction",
    "StreamingResponse",
    "AnthropicProvider",
    "OpenAIProvider",
]

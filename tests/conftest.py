"""Pytest configuration and shared fixtures."""
import inspect
import os
from pathlib import Path
from typing import Any

import pytest

from codeloop.llm import LLMProvider
from codeloop.llm.models import ChatMessage, FunctionCall, LLMFunction, StreamingResponse
from codeloop.store import InMemoryThreadStore


def assistant(text: str = "", *calls: FunctionCall) -> ChatMessage:
    """Build an assistant message with optional function calls."""
    return ChatMessage(role="assistant", content=text, function_calls=tuple(calls))


def call(name: str, arguments: str = "{}", call_id: str | None = None) -> FunctionCall:
    return FunctionCall(id=call_id or f"call_{name}", name=name, arguments=arguments)


class ScriptedLLM(LLMProvider):
    """LLM provider that replays scripted turns.

    Each turn is a ChatMessage, a list of cumulative partial ChatMessages,
    an exception to raise, or a (sync or async) callable receiving the
    request messages and returning one of those. When the script runs out
    every turn is a plain "done" answer.
    """

    def __init__(
        self,
        turns: list[Any] | None = None,
        function_calling: bool = True,
        usage: dict[str, int] | None = None
    ):
        self.turns = list(turns or [])
        self.function_calling = function_calling
        self.usage = usage
        self.requests: list[tuple[list[ChatMessage], list[LLMFunction] | None]] = []
        self.closed = False

    @property
    def supports_function_calling(self) -> bool:
        return self.function_calling

    @property
    def model(self) -> str:
        return "scripted-model"

    async def stream_completion(
        self,
        messages: list[ChatMessage],
        functions: list[LLMFunction] | None = None,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        self.requests.append((list(messages), list(functions) if functions is not None else None))
        turn = self.turns.pop(0) if self.turns else assistant("done")
        if callable(turn):
            turn = turn(messages)
            if inspect.isawaitable(turn):
                turn = await turn
        if isinstance(turn, Exception):
            raise turn
        partials = turn if isinstance(turn, list) else [turn]

        async def _generate():
            for partial in partials:
                yield partial

        stream = StreamingResponse(_generate())
        if self.usage:
            stream.set_usage(self.usage)
        return stream

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(scope="session")
def api_keys():
    """Return API keys from environment."""
    return {
        "openai": os.getenv("OPENAI_API_KEY"),
        "anthropic": os.getenv("ANTHROPIC_API_KEY")
    }


@pytest.fixture
def store():
    """Fresh in-memory thread store."""
    return InMemoryThreadStore()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A small project folder."""
    root = tmp_path / "project"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "utils.py").write_text(
        "def add(a, b):\n"
        "    return a + b\n"
        "\n"
        "def subtract(a, b):\n"
        "    return a - b\n"
    )
    (root / "README.md").write_text("# Demo\n\nCall add() to add numbers.\n")
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("add = ignored\n")
    return root

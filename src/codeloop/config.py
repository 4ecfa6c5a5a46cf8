"""Configuration constants and runtime settings.

Centralizes sentinel texts, protocol delimiters and tuning values, plus
the environment-driven `AgentSettings` used by the CLI.
"""

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LogLevel:
    """Log level constants with numeric values for comparison.

    Standard logging hierarchy: DEBUG < INFO < WARNING < ERROR
    Lower numeric value = more verbose (shows more messages).
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40

    _names = {
        DEBUG: "DEBUG",
        INFO: "INFO",
        WARNING: "WARNING",
        ERROR: "ERROR",
    }

    _from_string = {
        "debug": DEBUG,
        "info": INFO,
        "warning": WARNING,
        "error": ERROR,
    }

    @classmethod
    def name(cls, level: int) -> str:
        """Get the name for a log level."""
        return cls._names.get(level, "UNKNOWN")

    @classmethod
    def from_string(cls, level_str: str) -> int:
        """Convert string to log level. Returns DEBUG if invalid."""
        return cls._from_string.get(level_str.lower(), cls.DEBUG)


# System prompt substitution marker for tool-provided context
CONTEXT_MARKER = "[[CONTEXT]]"

# Sentinel texts written into the thread
RESPONSE_INTERRUPTED = "[Response was interrupted]"
AGENT_TIMED_OUT = "[Agent timed out]"
OLD_MESSAGES_OMITTED = "[Old messages omitted]"
OMITTED = "[Omitted]"
SUPERSEDED_SNIPPET = "[Snippet of {path} omitted; a newer copy appears later in the conversation]"

# Code-edit fence protocol
CODE_FENCE = "%%%"
ESCAPED_CODE_FENCE = "\\%%%"
FIND_REPLACE_DIVIDER = "===WITH==="

# Old-message truncation defaults
KEEP_FIRST_N = 2
KEEP_LAST_N = 10
ROUND_TO = 7

# Diff display
DIFF_COLLAPSE_MIN_RUN = 20  # Runs of identical lines at least this long are collapsed
DIFF_COLLAPSE_KEEP = 5  # Lines kept visible at each end of a collapsed run

# File reading
READ_FILE_MAX_LINES = 2000
SNIPPET_MAX_LINE_CHARS = 400
FILE_TREE_MAX_FILES = 1000

# Agent loop
DEFAULT_MAX_ITERATIONS = 20


class AgentSettings(BaseModel):
    """Runtime settings resolved from the environment.

    Attributes:
        llm_provider: Completion provider ('openai' or 'anthropic')
        openai_api_key: OpenAI API key
        openai_model: OpenAI chat model
        openai_base_url: Optional OpenAI-compatible endpoint
        anthropic_api_key: Anthropic API key
        anthropic_model: Anthropic model
        max_iterations: Iteration budget per run
        thread_db: SQLite thread database path (None keeps threads in memory)
        fake_functions: Force the XML fake-function convention
        log_level: Minimum level shown by the CLI
        auto_approve: Apply edits without interactive review
    """

    llm_provider: Literal["openai", "anthropic"] = "openai"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    openai_base_url: str | None = None
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)
    thread_db: Path | None = None
    fake_functions: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    auto_approve: bool = False

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "AgentSettings":
        """Build settings from environment variables (after loading .env).

        Environment variables:
            LLM_PROVIDER: openai | anthropic (default: openai)
            OPENAI_API_KEY, OPENAI_CHAT_MODEL, OPENAI_BASE_URL
            ANTHROPIC_API_KEY, ANTHROPIC_MODEL
            CODELOOP_MAX_ITERATIONS: default 20
            CODELOOP_THREAD_DB: SQLite path; unset keeps threads in memory
            CODELOOP_FAKE_FUNCTIONS: 1/true to force XML function calls
            CODELOOP_LOG_LEVEL: debug | info | warning | error (default: info)
            CODELOOP_AUTO_APPROVE: 1/true to skip edit review

        Raises:
            pydantic.ValidationError: If a value is out of range
        """
        load_dotenv(env_file)
        thread_db = os.getenv("CODELOOP_THREAD_DB")
        provider = os.getenv("LLM_PROVIDER", "openai").lower()
        return cls(
            llm_provider="anthropic" if provider == "claude" else provider,
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4o"),
            openai_base_url=os.getenv("OPENAI_BASE_URL"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
            max_iterations=int(os.getenv("CODELOOP_MAX_ITERATIONS", str(DEFAULT_MAX_ITERATIONS))),
            thread_db=Path(thread_db) if thread_db else None,
            fake_functions=_env_flag("CODELOOP_FAKE_FUNCTIONS"),
            log_level=os.getenv("CODELOOP_LOG_LEVEL", "info").lower(),
            auto_approve=_env_flag("CODELOOP_AUTO_APPROVE"),
        )


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")

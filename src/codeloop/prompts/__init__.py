"""Prompt text for the coding agent.

Prompts live in `.txt` files next to this module. A `prompts/` folder in
the working directory takes precedence, so a project can ship its own
wording without touching the package.
"""

from functools import lru_cache
from pathlib import Path

from ..config import CODE_FENCE, FIND_REPLACE_DIVIDER

_PROMPTS_DIR = Path(__file__).parent


@lru_cache(maxsize=16)
def load_prompt(name: str) -> str:
    """Return the text of prompt `name` (file name without `.txt`).

    Raises:
        FileNotFoundError: If neither ./prompts nor the package has it
    """
    candidates = [
        Path.cwd() / "prompts" / f"{name}.txt",
        _PROMPTS_DIR / f"{name}.txt",
    ]
    for path in candidates:
        if path.is_file():
            return path.read_text(encoding="utf-8")

    searched = "\n".join(f"  - {path}" for path in candidates)
    raise FileNotFoundError(f"Prompt '{name}' not found. Searched:\n{searched}")


def get_agent_prompt() -> str:
    """System prompt template for the coding agent; contains the [[CONTEXT]] marker."""
    return load_prompt("agent")


def get_file_editor_prompt() -> str:
    """Edit grammar instructions, with the fence and divider filled in."""
    return (
        load_prompt("file_editor")
        .replace("{fence}", CODE_FENCE)
        .replace("{divider}", FIND_REPLACE_DIVIDER)
    )


def clear_cache() -> None:
    """Forget loaded prompts so edited files are read again."""
    load_prompt.cache_clear()


__all__ = [
    "load_prompt",
    "get_agent_prompt",
    "get_file_editor_prompt",
    "clear_cache",
]

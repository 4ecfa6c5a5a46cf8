"""Provider factory functions for CLI.

Centralizes creation of the LLM provider and thread store from
`AgentSettings`. Hides configuration details from command implementations.
"""

from rich.console import Console

from ..config import AgentSettings
from ..llm import LLMProvider, create_llm_provider
from ..store import ThreadStore, create_thread_store

# Default console for output
_console = Console()


def get_llm(settings: AgentSettings, console: Console | None = None) -> LLMProvider | None:
    """Create LLM provider from settings.

    Args:
        settings: Resolved settings
        console: Optional Rich console for output

    Returns:
        LLM provider instance, or None if not configured
    """
    con = console or _console

    if settings.llm_provider == "openai":
        if not settings.openai_api_key:
            con.print("[yellow]Warning: OPENAI_API_KEY not set[/yellow]")
            return None
        return create_llm_provider(
            "openai",
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            function_calling=not settings.fake_functions,
        )

    if not settings.anthropic_api_key:
        con.print("[yellow]Warning: ANTHROPIC_API_KEY not set[/yellow]")
        return None
    return create_llm_provider(
        "anthropic",
        api_key=settings.anthropic_api_key,
        model=settings.anthropic_model,
    )


def require_llm(settings: AgentSettings, console: Console | None = None) -> LLMProvider:
    """Get LLM provider, raising error if not configured.

    Raises:
        SystemExit: If LLM provider is not configured
    """
    import typer

    con = console or _console
    llm = get_llm(settings, con)
    if not llm:
        con.print(f"[red]Error: LLM provider '{settings.llm_provider}' not configured[/red]")
        raise typer.Exit(code=1)
    return llm


def get_thread_store(settings: AgentSettings, thread_id: str = "default") -> ThreadStore:
    """Create the thread store: SQLite when CODELOOP_THREAD_DB is set, else in-memory."""
    if settings.thread_db is not None:
        return create_thread_store("sqlite", path=settings.thread_db, thread_id=thread_id)
    return create_thread_store("memory", thread_id=thread_id)

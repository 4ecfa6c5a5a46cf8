"""Main CLI application using Typer."""
import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..agent import AgentRunController, AlreadyRunningError
from ..config import AgentSettings, LogLevel
from ..edits import Diff, EditError, EditPart, FileEdit, TextPart, parse
from ..thread import Step, Thread
from ..tools import ReviewDecision, ToolContext, default_tools
from .providers import get_thread_store, require_llm

# Create Typer app
app = typer.Typer(
    name="codeloop",
    help="Tool-using coding agent that edits files through reviewed code fences",
    no_args_is_help=True,
    add_completion=True,
)
thread_app = typer.Typer(help="Inspect or reset a stored conversation thread", no_args_is_help=True)
app.add_typer(thread_app, name="thread")

# Console for rich output
console = Console()

_LEVEL_STYLES = {
    "debug": "dim",
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
}


def make_debug_printer(min_level: str):
    """Debug callback that prints messages at or above `min_level`."""
    threshold = LogLevel.from_string(min_level)

    def _print(level: str, component: str, message: str) -> None:
        if LogLevel.from_string(level) < threshold:
            return
        style = _LEVEL_STYLES.get(level, "white")
        console.print(Text.assemble((f"[{component}] ", style), message))

    return _print


def render_diff(diff: Diff) -> Text:
    text = Text()
    for line in diff.lines:
        if line.op == "insert":
            text.append(f"+ {line.text}\n", style="green")
        elif line.op == "delete":
            text.append(f"- {line.text}\n", style="red")
        elif line.op == "collapsed":
            text.append(f"  ... {len(line.children)} unchanged lines ...\n", style="dim")
        else:
            text.append(f"  {line.text}\n")
    return text


def show_file_edits(file_edits: list[FileEdit], context: ToolContext) -> None:
    for file_edit in file_edits:
        title = f"{file_edit.description} ({context.relative_path(file_edit.path)})"
        try:
            body = render_diff(file_edit.as_diff())
        except EditError as e:
            body = Text(f"Cannot apply: {e}", style="red")
        console.print(Panel(body, title=title, border_style="cyan"))


def make_reviewer(context: ToolContext):
    """Interactive edit review: show diffs, then ask for a decision."""
    async def _review(file_edits: list[FileEdit]) -> ReviewDecision:
        show_file_edits(file_edits, context)
        choice = await asyncio.to_thread(
            typer.prompt,
            "Apply edits? [a]ccept / [c]omment and accept / [r]eject / request [ch]anges",
            default="a",
        )
        choice = choice.strip().lower()
        if choice == "r":
            return ReviewDecision(kind="reject")
        if choice in ("c", "ch"):
            comment = await asyncio.to_thread(typer.prompt, "Comment")
            kind = "accept_with_comment" if choice == "c" else "request_changes"
            return ReviewDecision(kind=kind, comment=comment)
        return ReviewDecision.accept()

    return _review


def print_step(step: Step) -> None:
    for tool_step in step.tool_use_loop:
        for call in tool_step.function_calls:
            console.print(f"[dim]-> {escape(call.name)}({escape(call.arguments)})[/dim]")
        for log in tool_step.user_visible_logs:
            console.print(f"[dim]   {escape(str(log))}[/dim]")
        for logs in tool_step.logs_by_call_id.values():
            for log in logs:
                console.print(f"[dim]   {escape(str(log))}[/dim]")
    if step.assistant_message_for_user is not None:
        console.print(f"[bold green]Agent:[/bold green] {escape(step.assistant_message_for_user.as_plain_text())}\n")


@app.command()
def run(
    message: str = typer.Argument(..., help="What the agent should do"),
    directory: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        exists=True,
        file_okay=False,
        dir_okay=True,
        help="Workspace folder the agent may read and edit"
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Apply edits without asking"
    ),
    max_iterations: int | None = typer.Option(
        None,
        "--max-iterations",
        "-n",
        help="Iteration budget (default: CODELOOP_MAX_ITERATIONS)"
    ),
    thread_id: str = typer.Option(
        "default",
        "--thread",
        "-t",
        help="Thread id in the thread database"
    ),
):
    """Run the agent once on MESSAGE in a workspace folder."""
    async def _run():
        settings = AgentSettings.from_env()
        llm = require_llm(settings, console)
        store = get_thread_store(settings, thread_id)
        workspace = directory.resolve()
        review_context = ToolContext(active_directory=workspace)
        auto_approve = yes or settings.auto_approve

        try:
            await store.connect()
            controller = AgentRunController(
                store,
                llm,
                default_tools(),
                active_directory=workspace,
                review_edits=None if auto_approve else make_reviewer(review_context),
                max_iterations=max_iterations or settings.max_iterations,
                use_fake_functions=settings.fake_functions,
            )
            controller.set_debug_callback(make_debug_printer(settings.log_level))

            console.print(f"[dim]Workspace: {workspace}[/dim]")
            await controller.send(message)

            step = (await store.read()).last_step()
            if step is not None:
                print_step(step)

            usage = controller.usage
            console.print(
                f"[dim]Tokens: {usage.total_input_tokens} in, "
                f"{usage.total_output_tokens} out over {usage.total_calls} calls[/dim]"
            )

        except AlreadyRunningError as e:
            console.print(f"[yellow]{escape(str(e))}[/yellow]")
            raise typer.Exit(code=1)
        except Exception as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()
            await llm.close()

    asyncio.run(_run())


@app.command()
def preview(
    response_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="File holding a model response with code edits"
    ),
    directory: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        exists=True,
        file_okay=False,
        dir_okay=True,
        help="Workspace folder the edit paths are relative to"
    ),
    partial: bool = typer.Option(
        False,
        "--partial",
        "-p",
        help="Parse as a still-streaming response"
    ),
):
    """Parse a model response and show its narrative, edits and diffs."""
    context = ToolContext(active_directory=directory.resolve())
    result = parse(response_file.read_text(encoding="utf-8"), resolve_path=context.resolve_path, partial=partial)

    for part in result.parts:
        if isinstance(part, TextPart):
            if part.text.strip():
                console.print(part.text, markup=False, highlight=False)
        elif isinstance(part, EditPart):
            console.print(f"[bold cyan]> {escape(part.edit.description)}[/bold cyan]")

    if result.issues:
        table = Table(show_header=True, header_style="bold red")
        table.add_column("Line", style="dim", width=6)
        table.add_column("Issue")
        for issue in result.issues:
            table.add_row(str(issue.line_number), escape(issue.message))
        console.print(table)

    if not result.edits:
        console.print("[yellow]No edits found[/yellow]")
        raise typer.Exit(code=1 if result.issues else 0)

    try:
        file_edits = FileEdit.from_code_edits(result.edits)
    except EditError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    show_file_edits(file_edits, context)
    if result.issues:
        raise typer.Exit(code=1)


def _open_store(db: Path | None, thread_id: str):
    settings = AgentSettings.from_env()
    if db is not None:
        settings = settings.model_copy(update={"thread_db": db})
    if settings.thread_db is None:
        console.print("[red]Error: no thread database; pass --db or set CODELOOP_THREAD_DB[/red]")
        raise typer.Exit(code=1)
    return get_thread_store(settings, thread_id)


def print_thread(thread: Thread) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Request")
    table.add_column("Tool rounds", width=11)
    table.add_column("Complete", width=8)
    table.add_column("Answer")

    for i, step in enumerate(thread.steps, 1):
        answer = step.assistant_message_for_user.as_plain_text() if step.assistant_message_for_user else ""
        table.add_row(
            str(i),
            step.initial_request.as_plain_text()[:80],
            str(len(step.tool_use_loop)),
            "yes" if step.is_complete else "no",
            answer[:80],
        )

    console.print(f"[bold]Thread[/bold] {thread.id}  [dim]status: {thread.status.kind}[/dim]")
    console.print(table)


@thread_app.command("show")
def thread_show(
    thread_id: str = typer.Option("default", "--thread", "-t", help="Thread id"),
    db: Path | None = typer.Option(None, "--db", help="SQLite thread database"),
):
    """Show the steps of a stored thread."""
    async def _show():
        store = _open_store(db, thread_id)
        try:
            await store.connect()
            print_thread(await store.read())
        finally:
            await store.disconnect()

    asyncio.run(_show())


@thread_app.command("list")
def thread_list(
    db: Path | None = typer.Option(None, "--db", help="SQLite thread database"),
):
    """List the threads stored in the thread database."""
    async def _list():
        store = _open_store(db, "default")
        try:
            await store.connect()
            threads = await store.list_threads()
        finally:
            await store.disconnect()

        if not threads:
            console.print("[yellow]No threads stored[/yellow]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Thread")
        table.add_column("Updated", style="dim")
        for thread_id, updated_at in threads:
            table.add_row(thread_id, updated_at)
        console.print(table)

    asyncio.run(_list())


@thread_app.command("clear")
def thread_clear(
    thread_id: str = typer.Option("default", "--thread", "-t", help="Thread id"),
    db: Path | None = typer.Option(None, "--db", help="SQLite thread database"),
):
    """Delete every step of a stored thread and reset its status."""
    async def _clear():
        store = _open_store(db, thread_id)
        try:
            await store.connect()
            await store.clear()
            console.print(f"[green]Cleared thread '{thread_id}'[/green]")
        finally:
            await store.disconnect()

    asyncio.run(_clear())


@thread_app.command("stop")
def thread_stop(
    thread_id: str = typer.Option("default", "--thread", "-t", help="Thread id"),
    db: Path | None = typer.Option(None, "--db", help="SQLite thread database"),
):
    """Release a thread left running by a process that died; steps are kept."""
    async def _stop():
        store = _open_store(db, thread_id)
        try:
            await store.connect()
            run_id = await store.force_stop()
        finally:
            await store.disconnect()

        if run_id is None:
            console.print(f"[yellow]Thread '{thread_id}' has no live run[/yellow]")
        else:
            console.print(f"[green]Stopped run {run_id} on thread '{thread_id}'[/green]")

    asyncio.run(_stop())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

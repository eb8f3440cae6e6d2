"""
CLI interface for Support Chat.

Typer application with rich output:
- ``serve``: run the HTTP API with uvicorn
- ``chat``: talk to the support bot from the terminal
- ``history``: print a session's stored history
- ``init-db``: create the message log tables
"""

import asyncio
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from support_chat.config.settings import AppSettings, load_config
from support_chat.database.store import MessageLog, StorageError
from support_chat.orchestration.orchestrator import build_orchestrator
from support_chat.orchestration.types import OutcomeStatus
from support_chat.utils.logging import configure_logging
from support_chat.utils.sanitization import ValidationError

app = typer.Typer(
    name="support-chat",
    help="Customer support chat backend with cached conversation history",
    no_args_is_help=True,
)
console = Console()

EXIT_COMMANDS = {"exit", "quit", ":q"}


class CLIError(Exception):
    """User-friendly CLI error."""

    def __init__(self, message: str, exit_code: int = 1):
        self.message = message
        self.exit_code = exit_code
        super().__init__(message)


def _load_settings(config: Path | None) -> AppSettings:
    try:
        settings = load_config(config)
    except ValueError as e:
        raise CLIError(f"Invalid configuration: {e}") from e
    configure_logging(settings.log_level)
    return settings


def _fail(error: CLIError) -> None:
    console.print(f"[red]Error:[/red] {error.message}")
    raise typer.Exit(error.exit_code)


ConfigOption = typer.Option(
    None, "--config", "-c", help="YAML configuration file"
)


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Bind host (default from settings)"),
    port: int | None = typer.Option(None, help="Bind port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
    config: Path | None = ConfigOption,
):
    """Run the HTTP API."""
    try:
        if reload and config:
            # The reloader re-imports the app factory, which only sees env settings
            raise CLIError("--reload cannot be combined with --config")
        settings = _load_settings(config)
    except CLIError as e:
        _fail(e)

    from support_chat.api.app import create_app

    bind_host = host or settings.server.host
    bind_port = port or settings.server.port
    console.print(
        f"[green]Serving {settings.app_name}[/green] on http://{bind_host}:{bind_port}"
    )
    if reload:
        uvicorn.run(
            "support_chat.api.app:create_app",
            factory=True,
            reload=True,
            host=bind_host,
            port=bind_port,
            log_config=None,
        )
        return
    uvicorn.run(create_app(settings), host=bind_host, port=bind_port, log_config=None)


@app.command("init-db")
def init_db(config: Path | None = ConfigOption):
    """Create the message log tables."""
    try:
        settings = _load_settings(config)
        asyncio.run(_init_db(settings))
    except CLIError as e:
        _fail(e)
    console.print(f"[green]Database ready:[/green] {settings.database.url}")


async def _init_db(settings: AppSettings) -> None:
    message_log = MessageLog.from_settings(settings)
    try:
        await message_log.initialize()
    except StorageError as e:
        raise CLIError(str(e)) from e
    finally:
        await message_log.close()


@app.command()
def history(
    session_id: str = typer.Argument(..., help="Session identifier"),
    config: Path | None = ConfigOption,
):
    """Print a session's history."""
    try:
        settings = _load_settings(config)
        asyncio.run(_show_history(settings, session_id))
    except CLIError as e:
        _fail(e)


async def _show_history(settings: AppSettings, session_id: str) -> None:
    orchestrator = build_orchestrator(settings)
    try:
        await orchestrator.initialize()
        result = await orchestrator.get_history(session_id)
    except (StorageError, ValidationError) as e:
        raise CLIError(str(e)) from e
    finally:
        await orchestrator.aclose()

    if not result.messages:
        console.print(f"[yellow]No messages for session {session_id}[/yellow]")
        return

    table = Table(title=f"Session {session_id} ({result.source})")
    table.add_column("#", justify="right")
    table.add_column("Sender")
    table.add_column("Text")
    table.add_column("Created", style="dim")
    for message in result.messages:
        table.add_row(
            str(message.id),
            message.sender.value,
            message.text,
            message.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


@app.command()
def chat(
    session_id: str | None = typer.Option(
        None, "--session-id", "-s", help="Continue an existing session"
    ),
    config: Path | None = ConfigOption,
):
    """Chat with the support bot in the terminal."""
    try:
        settings = _load_settings(config)
        asyncio.run(_chat_loop(settings, session_id))
    except CLIError as e:
        _fail(e)


async def _chat_loop(settings: AppSettings, session_id: str | None) -> None:
    orchestrator = build_orchestrator(settings)
    try:
        await orchestrator.initialize()
        console.print(
            Panel("Type a message, or 'exit' to quit.", title=settings.app_name)
        )
        while True:
            text = await asyncio.to_thread(console.input, "[bold cyan]You:[/bold cyan] ")
            if text.strip().lower() in EXIT_COMMANDS:
                break
            try:
                result = await orchestrator.post_message(text, session_id)
            except ValidationError as e:
                console.print(f"[yellow]{e}[/yellow]")
                continue
            session_id = result.session_id
            style = "red" if result.generation.status is OutcomeStatus.DEGRADED else "green"
            console.print(Panel(result.reply, title="Support Bot", border_style=style))
    except StorageError as e:
        raise CLIError(f"Storage failure: {e}") from e
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await orchestrator.aclose()

    if session_id:
        console.print(f"[dim]Session id: {session_id}[/dim]")


def main() -> None:
    app()

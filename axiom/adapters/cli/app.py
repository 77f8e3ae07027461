"""
Main CLI application
"""
import typer
from pathlib import Path
from typing import Optional

from rich.markup import escape

from ...core.events import EventLog, LogEntry, Severity
from ...core.exceptions import ConfigError
from ...core.logging import setup_logging, get_logger, get_stdout_console, get_stderr_console
from ..config.loader import ConfigLoader
from .context import CliContext
from .profile import register_profile_commands
from .tunnel import register_tunnel_commands

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()

SEVERITY_STYLES = {
    Severity.INFO: "white",
    Severity.WARN: "yellow",
    Severity.ERROR: "red",
    Severity.SYSTEM: "blue",
}

# Create main app
app = typer.Typer(
    name="axiom",
    add_completion=False,
    help="VLESS + Reality tunnel manager for the Xray engine",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

register_profile_commands(app)
register_tunnel_commands(app)


def print_entry(entry: LogEntry) -> None:
    """Render an event log entry"""
    style = SEVERITY_STYLES[entry.severity]
    stdout_console.print(
        f"[dim]\\[{entry.time}][/dim] [{style}]{entry.severity.value:<6}[/{style}] {escape(entry.message)}"
    )


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file path (TOML)",
    ),
    state_dir: Optional[Path] = typer.Option(
        None,
        "--state-dir",
        help="Directory for profile, session and engine files",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log file path",
    ),
):
    """
    Axiom - VLESS + Reality tunnel manager
    
    Use subcommands to perform different operations:
    - import / set / show / render: Manage the connection profile
    - connect / disconnect / status: Control the tunnel
    """
    try:
        settings = ConfigLoader().load_settings(
            toml_path=config_file,
            cli_overrides={
                "state_dir": str(state_dir) if state_dir else None,
                "log": {"level": log_level},
            },
        )
    except ConfigError as e:
        stderr_console.print(f"[red]Config Error:[/red] {e}")
        raise typer.Exit(1)
    
    # Setup logging
    setup_logging(level=settings.log_level, log_file=log_file)
    
    # The CLI renders events itself instead of mirroring them to the log
    event_log = EventLog(mirror_to_logger=False)
    event_log.subscribe(print_entry)
    ctx.obj = CliContext(settings, event_log)


def run():
    """CLI entry point"""
    app()


if __name__ == "__main__":
    run()

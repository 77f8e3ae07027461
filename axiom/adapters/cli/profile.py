"""
Profile CLI commands
"""
import typer
from pathlib import Path
from typing import Optional

from rich.table import Table

from ...core.constants import DEFAULT_VLESS_PORT
from ...core.exceptions import ConfigError, ParseError, ProfileError
from ...core.logging import get_logger, get_stdout_console, get_stderr_console
from ...domain.profile import ConnectionProfile
from .context import CliContext

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()


def register_profile_commands(app: typer.Typer) -> None:
    """Register profile commands"""
    app.command(name="import")(profile_import)
    app.command(name="set")(profile_set)
    app.command(name="show")(profile_show)
    app.command(name="render")(profile_render)


def profile_table(profile: ConnectionProfile, title: str = "Connection Profile") -> Table:
    """Profile as a table, secrets abbreviated"""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    
    table.add_row("UUID", profile.masked("identity") or "[dim]Not Set[/dim]")
    table.add_row("Address", f"{profile.address or '-'}:{profile.port}")
    table.add_row("SNI (Camouflage)", profile.sni or "[dim]Not Set[/dim]")
    table.add_row("Public Key (PBK)", profile.masked("pbk") or "[dim]Not Set[/dim]")
    table.add_row("Short ID (SID)", profile.sid or "[dim]Not Set[/dim]")
    table.add_row("Flow", profile.flow or "[dim]default[/dim]")
    return table


def profile_import(
    ctx: typer.Context,
    link: str = typer.Argument(..., help="vless:// connection link"),
):
    """
    Import a vless:// link as the current profile
    
    Examples:
        axiom import "vless://uuid@host:443?sni=learn.microsoft.com&pbk=KEY&sid=ab12"
    """
    cli: CliContext = ctx.obj
    try:
        profile = cli.profiles.import_link(link)
    except ParseError as e:
        stderr_console.print(f"[red]Parse Error:[/red] {e}")
        raise typer.Exit(1)
    
    stdout_console.print(profile_table(profile))
    if not profile.is_usable():
        stderr_console.print("[yellow]Profile has no credentials and was not saved[/yellow]")
        raise typer.Exit(1)


def profile_set(
    ctx: typer.Context,
    identity: str = typer.Option(..., "--identity", "--uuid", help="User UUID"),
    pbk: str = typer.Option(..., "--pbk", help="Reality public key"),
    sni: str = typer.Option("", "--sni", help="Camouflage domain"),
    sid: str = typer.Option("", "--sid", help="Reality short ID"),
    address: Optional[str] = typer.Option(None, "--address", help="Server host (default: keep current)"),
    port: Optional[int] = typer.Option(None, "--port", min=1, max=65535, help="Server port (default: keep current)"),
    flow: Optional[str] = typer.Option(None, "--flow", help="Flow (default: keep current)"),
):
    """
    Enter the profile manually
    
    Examples:
        axiom set --uuid abc --pbk KEY --sni learn.microsoft.com --sid ab12
    """
    cli: CliContext = ctx.obj
    current = cli.profiles.current()
    profile = ConnectionProfile(
        identity=identity,
        address=address if address is not None else (current.address if current else ""),
        port=port or (current.port if current else DEFAULT_VLESS_PORT),
        sni=sni,
        pbk=pbk,
        sid=sid,
        flow=flow if flow is not None else (current.flow if current else ""),
    )
    try:
        cli.profiles.replace(profile)
    except ProfileError as e:
        stderr_console.print(f"[red]Profile Error:[/red] {e}")
        raise typer.Exit(1)
    
    stdout_console.print(profile_table(profile))


def profile_show(ctx: typer.Context):
    """Show the current profile"""
    cli: CliContext = ctx.obj
    profile = cli.profiles.current()
    if profile is None:
        stdout_console.print("[yellow]No profile configured. Use 'axiom import <link>'[/yellow]")
        return
    stdout_console.print(profile_table(profile))


def profile_render(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(
        None, "--output", "-o",
        help="Write the engine config to this file instead of stdout"
    ),
):
    """
    Print the engine config generated from the current profile
    
    Examples:
        axiom render
        axiom render -o /etc/xray/config.json
    """
    cli: CliContext = ctx.obj
    profile = cli.profiles.current()
    if profile is None:
        stderr_console.print("[red]Error:[/red] No profile configured. Use 'axiom import <link>'")
        raise typer.Exit(1)
    
    try:
        config = cli.synthesizer.synthesize(profile)
    except ConfigError as e:
        stderr_console.print(f"[red]Config Error:[/red] {e}")
        raise typer.Exit(1)
    
    if output:
        output = output.expanduser()
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(config.to_json(), encoding="utf-8")
        stdout_console.print(f"[green]✓[/green] Engine config written to [cyan]{output}[/cyan]")
    else:
        typer.echo(config.to_json())

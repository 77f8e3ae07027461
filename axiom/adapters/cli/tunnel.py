"""
Tunnel CLI commands
"""
import os
import signal
import threading
import time
import typer
from datetime import datetime
from typing import Optional, Dict, Any

from rich.table import Table

from ...core.constants import SESSION_STATE_KEY, STATUS_CONNECTED, STATUS_DISCONNECTED
from ...core.exceptions import ConfigError, ConfigurationMissing, TunnelError
from ...core.logging import get_logger, get_stdout_console, get_stderr_console
from ...domain.profile import ConnectionProfile
from ...domain.tunnel import CaptureHandle, TunnelState
from ...infrastructure.capture import LinuxTunInterface
from ...infrastructure.state.file_store import is_process_alive
from .context import CliContext

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()

LIVE_STATES = (TunnelState.STARTING.value, TunnelState.ACTIVE.value, TunnelState.STOPPING.value)


def register_tunnel_commands(app: typer.Typer) -> None:
    """Register tunnel commands"""
    app.command(name="connect")(tunnel_connect)
    app.command(name="disconnect")(tunnel_disconnect)
    app.command(name="status")(tunnel_status)


def load_live_session(cli: CliContext) -> Optional[Dict[str, Any]]:
    """Session record of a running `connect`, None if there is none"""
    record = cli.state_store.load(SESSION_STATE_KEY)
    if not record:
        return None
    if record.get("state") not in LIVE_STATES or not is_process_alive(record.get("pid")):
        return None
    return record


def reclaim_resources(record: Dict[str, Any]) -> None:
    """Kill the engine and delete the TUN device of a `connect` that died without cleaning up"""
    engine_pid = record.get("engine_pid")
    if is_process_alive(engine_pid):
        try:
            # The engine leads its own process group
            if os.getpgid(engine_pid) == engine_pid:
                os.killpg(engine_pid, signal.SIGKILL)
                stderr_console.print(f"[yellow]Killed orphaned engine pid {engine_pid}[/yellow]")
        except ProcessLookupError:
            pass

    capture = record.get("capture") or {}
    if capture.get("managed") and capture.get("device"):
        handle = CaptureHandle(device=capture["device"], managed=True)
        LinuxTunInterface(device=handle.device).release(handle)


def tunnel_connect(
    ctx: typer.Context,
    simulate: Optional[bool] = typer.Option(
        None, "--simulate/--no-simulate",
        help="Use the simulated engine (no Xray process, no capture interface)"
    ),
    capture: Optional[bool] = typer.Option(
        None, "--capture/--no-capture",
        help="Create the TUN capture interface (needs CAP_NET_ADMIN)"
    ),
    engine_binary: Optional[str] = typer.Option(
        None, "--engine-binary", "-e",
        help="Path to the xray executable"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t",
        help="Seconds to wait for the engine to become ready"
    ),
):
    """
    Start the tunnel and supervise it in the foreground

    Stops on Ctrl-C, SIGTERM (see 'axiom disconnect') or when the engine dies.

    Examples:
        sudo axiom connect
        axiom connect --simulate
        axiom connect --no-capture -e /usr/local/bin/xray
    """
    cli: CliContext = ctx.obj
    try:
        cli.override(
            simulate=simulate,
            capture_enabled=capture,
            engine_binary=engine_binary,
            start_timeout=timeout,
        )
    except ConfigError as e:
        stderr_console.print(f"[red]Config Error:[/red] {e}")
        raise typer.Exit(1)

    running = load_live_session(cli)
    if running:
        stderr_console.print(
            f"[red]Tunnel Error:[/red] Tunnel already {running['state'].lower()} (pid {running['pid']})"
        )
        raise typer.Exit(1)

    profile = cli.profiles.current() or ConnectionProfile(identity="")
    supervisor = cli.build_supervisor()
    stop_requested = threading.Event()

    def signal_handler(sig, frame):
        stop_requested.set()

    previous_handlers = {
        sig: signal.signal(sig, signal_handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    failed = False
    try:
        try:
            state = supervisor.start(profile).result()
        except ConfigurationMissing as e:
            stderr_console.print(f"[red]Configuration Missing:[/red] {e}")
            stderr_console.print("  Use [cyan]axiom import <link>[/cyan] or [cyan]axiom set[/cyan] first")
            raise typer.Exit(1)
        except TunnelError as e:
            stderr_console.print(f"[red]Tunnel Error:[/red] {e}")
            raise typer.Exit(1)

        if state is TunnelState.FAILED:
            failed = True
        else:
            stdout_console.print(
                f"[green]✓[/green] Tunnel {STATUS_CONNECTED} (pid {os.getpid()}), "
                f"press Ctrl-C or run [cyan]axiom disconnect[/cyan] to stop"
            )
            # Keep alive
            while not stop_requested.wait(0.5):
                if supervisor.state is TunnelState.FAILED:
                    failed = True
                    break
    finally:
        supervisor.shutdown()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    if failed:
        last_error = supervisor.session.last_error
        stderr_console.print(f"[red]Tunnel Failed:[/red] {last_error or 'unknown error'}")
        if not cli.settings.simulate:
            stderr_console.print(f"  Engine log: [cyan]{cli.state_store.engine_log_path}[/cyan]")
        raise typer.Exit(1)

    stdout_console.print(f"[yellow]Tunnel {STATUS_DISCONNECTED}[/yellow]")


def tunnel_disconnect(
    ctx: typer.Context,
    timeout: float = typer.Option(
        10.0, "--timeout", "-t",
        help="Seconds to wait for a graceful stop before killing"
    ),
):
    """
    Stop the tunnel started by 'axiom connect'

    Examples:
        axiom disconnect
    """
    cli: CliContext = ctx.obj
    record = load_live_session(cli)
    if record is None:
        stdout_console.print("[yellow]No running tunnel[/yellow]")
        return

    pid = record["pid"]
    try:
        # Try graceful shutdown first
        os.kill(pid, signal.SIGTERM)
        deadline = time.monotonic() + timeout
        while is_process_alive(pid) and time.monotonic() < deadline:
            time.sleep(0.2)

        if is_process_alive(pid):
            # Still running, force kill
            stderr_console.print(f"[yellow]Tunnel pid {pid} did not stop in {timeout:g}s, killing[/yellow]")
            os.kill(pid, signal.SIGKILL)
            # Last record the killed process published
            latest = cli.state_store.load(SESSION_STATE_KEY) or record
            reclaim_resources(latest)
            cli.state_store.save(
                SESSION_STATE_KEY,
                {**latest, "state": TunnelState.IDLE.value, "engine_pid": None, "capture": None},
            )
    except ProcessLookupError:
        # Process already gone
        pass
    except PermissionError:
        stderr_console.print(f"[red]Error:[/red] Not permitted to signal pid {pid} (try sudo)")
        raise typer.Exit(1)

    stdout_console.print(f"[green]✓[/green] Tunnel stopped (pid {pid})")


def tunnel_status(ctx: typer.Context):
    """
    Show tunnel status

    Prints CONNECTED or DISCONNECTED, followed by session details.
    """
    cli: CliContext = ctx.obj
    record = cli.state_store.load(SESSION_STATE_KEY) or {}
    live = load_live_session(cli)

    connected = bool(live) and live.get("state") == TunnelState.ACTIVE.value
    if connected:
        stdout_console.print(f"[green]{STATUS_CONNECTED}[/green]")
    else:
        stdout_console.print(f"[yellow]{STATUS_DISCONNECTED}[/yellow]")

    table = Table(title="Tunnel Status", show_header=True, header_style="bold cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    state = live.get("state") if live else TunnelState.IDLE.value
    table.add_row("State", state)
    if live:
        table.add_row("PID", str(live.get("pid", "N/A")))
        table.add_row("Engine PID", str(live.get("engine_pid") or "N/A"))
        table.add_row("Endpoint", live.get("endpoint") or "N/A")
        table.add_row("Camouflage", live.get("sni") or "N/A")
        capture = live.get("capture") or {}
        table.add_row("Capture Device", capture.get("device", "N/A"))
        if live.get("started_at"):
            started = datetime.fromtimestamp(live["started_at"])
            table.add_row("Started At", started.strftime("%Y-%m-%d %H:%M:%S"))
    elif record.get("last_error"):
        table.add_row("Last Error", record["last_error"])

    for key, value in cli.describe().items():
        table.add_row(key.replace("_", " ").title(), value)

    stdout_console.print(table)

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from statussentinel.config import settings
from statussentinel.core.exceptions import ConfigError, IdentifierError, StorageError
from statussentinel.core.logging import configure_logging

console = Console()
cli_app = typer.Typer(name="sentinel", help="Status Sentinel uptime monitor")


def _run_async(coro):
    """Run async code from sync CLI context."""
    return asyncio.run(coro)


async def _ensure_db():
    from statussentinel.core.database import init_db
    await init_db()


def _store():
    from statussentinel.core.database import async_session
    from statussentinel.services.history import HistoryStore
    return HistoryStore(async_session, capacity=settings.sentinel_history_capacity)


@cli_app.callback()
def _configure(
    log_level: str = typer.Option(settings.sentinel_log_level, "--log-level", help="Log level"),
    log_format: str = typer.Option(settings.sentinel_log_format, "--log-format", help="'json' or 'console'"),
):
    configure_logging(log_level, log_format)


@cli_app.command("run")
def run():
    """Register services from the services file and probe them forever."""
    from statussentinel.main import run_daemon

    console.print("[bold]Status Sentinel[/bold]: uptime and incident monitor\n")
    try:
        _run_async(run_daemon(settings))
    except (ConfigError, StorageError) as e:
        console.print(f"[bold red]Startup failed:[/bold red] {e.message}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("\n*  Stopped.")


@cli_app.command("add-service")
def add_service(
    name: str = typer.Argument(help="Display name, e.g. 'My Website'"),
    target: str = typer.Argument(help="URL, or mc://host:port for a handshake probe"),
):
    """Add or update a monitored service."""
    async def _add():
        await _ensure_db()
        return await _store().upsert_service(name, target)

    try:
        service = _run_async(_add())
    except IdentifierError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[bold green]Service saved:[/bold green] {service.id} → {service.target}")


@cli_app.command("list-services")
def list_services():
    """List monitored services with their latest status."""
    async def _list():
        await _ensure_db()
        store = _store()
        services = await store.list_services()
        latest = {s.id: await store.get_response_history(s.id, limit=1) for s in services}
        return services, latest

    services, latest = _run_async(_list())

    if not services:
        console.print("[dim]No services registered.[/dim]")
        return

    table = Table(title="Services")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Last latency", justify="right")

    for service in services:
        status = "[green]online[/green]" if service.is_online else "[red]offline[/red]"
        samples = latest[service.id]
        last = f"{samples[-1]} ms" if samples and samples[-1] > 0 else "—"
        table.add_row(service.id, service.name, service.target, status, last)

    console.print(table)


@cli_app.command("history")
def history(
    name: str = typer.Argument(help="Service name or ID"),
    limit: int = typer.Option(20, "--limit", min=1, help="Number of recent samples"),
):
    """Show recent response samples for one service."""
    from statussentinel.core.identifiers import normalize_service_id

    async def _history():
        await _ensure_db()
        store = _store()
        service = await store.get_service(normalize_service_id(name))
        if service is None:
            return None, []
        return service, await store.get_response_history(service.id, limit=limit)

    try:
        service, samples = _run_async(_history())
    except IdentifierError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        raise typer.Exit(code=1)

    if service is None:
        console.print(f"[yellow]Unknown service: {name}[/yellow]")
        raise typer.Exit(code=1)

    status = "[green]online[/green]" if service.is_online else "[red]offline[/red]"
    console.print(f"[bold]{service.name}[/bold] ({service.id}) {service.target} {status}")
    if not samples:
        console.print("[dim]No samples recorded.[/dim]")
        return

    successes = [s for s in samples if s > 0]
    failures = len(samples) - len(successes)
    line = " ".join(f"{s}" if s > 0 else "[red]x[/red]" for s in samples)
    console.print(f"Last {len(samples)} sample(s), oldest first (ms): {line}")
    if successes:
        console.print(f"Average latency: {sum(successes) // len(successes)} ms, failures: {failures}")
    else:
        console.print(f"Failures: {failures}")


@cli_app.command("list-incidents")
def list_incidents(
    show_all: bool = typer.Option(False, "--all", help="Include closed incidents"),
):
    """List open (or all) incidents."""
    async def _list():
        await _ensure_db()
        return await _store().list_incidents(include_closed=show_all)

    incidents = _run_async(_list())

    if not incidents:
        console.print("[dim]No incidents found.[/dim]")
        return

    table = Table(title="Incidents")
    table.add_column("ID", justify="right")
    table.add_column("Service", style="cyan")
    table.add_column("Started")
    table.add_column("Ended")
    table.add_column("Description")

    for incident in incidents:
        started = incident.start_time.strftime("%Y-%m-%d %H:%M") if incident.start_time else "—"
        ended = incident.end_time.strftime("%Y-%m-%d %H:%M") if incident.end_time else "[red]open[/red]"
        table.add_row(str(incident.id), incident.service_name, started, ended, incident.description)

    console.print(table)


@cli_app.command("probe")
def probe(
    target: str = typer.Argument(help="URL, or mc://host:port"),
    timeout: float = typer.Option(settings.sentinel_probe_timeout, "--timeout", help="Seconds"),
):
    """Probe a target once without recording anything."""
    from statussentinel.schemas.probes import parse_target
    from statussentinel.services.probes import ProbeRegistry

    async def _probe():
        registry = ProbeRegistry()
        try:
            parsed = parse_target(target)
            return parsed, await registry.select(parsed).probe(parsed, timeout)
        finally:
            await registry.aclose()

    try:
        parsed, outcome = _run_async(_probe())
    except ConfigError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        raise typer.Exit(code=1)

    if outcome.ok:
        console.print(f"[bold green]up[/bold green] {parsed.address} ({parsed.kind.value}) {outcome.latency_ms} ms")
    else:
        console.print(f"[bold red]down[/bold red] {parsed.address} ({parsed.kind.value}) {outcome.error or ''}")
        raise typer.Exit(code=1)


def main():
    cli_app()


if __name__ == "__main__":
    main()

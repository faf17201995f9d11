"""Daemon entry point: provisions storage, registers services, runs the probe loop."""

import httpx
import structlog
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from statussentinel.config import Settings, settings as default_settings
from statussentinel.core.exceptions import StorageError
from statussentinel.services.bootstrap import (
    check_database_settings,
    load_services_file,
    register_services,
)
from statussentinel.services.history import HistoryStore
from statussentinel.services.incidents import IncidentTracker
from statussentinel.services.orchestrator import ProbeOrchestrator
from statussentinel.services.probes import ProbeRegistry, ReachabilityProbe
from statussentinel.services.probes.reachability import MAX_REDIRECTS

logger = structlog.get_logger()
console = Console()


def build_orchestrator(store: HistoryStore, settings: Settings) -> ProbeOrchestrator:
    """Wire tracker and probes around ``store`` from settings."""
    tracker = IncidentTracker(store, threshold=settings.sentinel_failure_threshold)
    http_client = httpx.AsyncClient(
        verify=False,
        timeout=settings.sentinel_probe_timeout,
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
    )
    probes = ProbeRegistry(reachability=ReachabilityProbe(http_client=http_client))
    return ProbeOrchestrator(
        store,
        tracker,
        probes=probes,
        poll_interval=settings.sentinel_poll_interval,
        probe_timeout=settings.sentinel_probe_timeout,
    )


async def run_daemon(settings: Settings = default_settings) -> None:
    """Bootstrap and probe forever.

    Raises ``ConfigError`` or ``StorageError`` when startup cannot proceed.
    """
    check_database_settings(settings)
    services = load_services_file(settings.sentinel_services_file)

    from statussentinel.core import database

    try:
        await database.init_db()
    except (SQLAlchemyError, OSError) as e:
        raise StorageError(f"Database unavailable: {e}") from e
    console.print("*  Database connection established successfully!")

    store = HistoryStore(database.async_session, capacity=settings.sentinel_history_capacity)
    added = await register_services(store, services)
    if added:
        console.print(f"*  {added} service(s) registered.")
    logger.info("services_registered", count=added, total=len(services))

    orchestrator = build_orchestrator(store, settings)
    console.print("*  Starting status monitoring...")
    console.print("*  Press Ctrl+C to stop.")
    try:
        await orchestrator.run_forever()
    finally:
        await orchestrator.aclose()
        await database.close_db()
        logger.info("daemon_stopped", cycles=orchestrator.cycles)
        console.print(f"*  Stopped after {orchestrator.cycles} probe cycle(s).")

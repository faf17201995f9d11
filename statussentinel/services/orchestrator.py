"""Background probe orchestrator: probes every service once per cycle."""

import asyncio
from dataclasses import dataclass

import structlog

from statussentinel.core.database import Service
from statussentinel.core.exceptions import SentinelError, StorageError
from statussentinel.schemas.probes import parse_target
from statussentinel.services.history import HistoryStore
from statussentinel.services.incidents import IncidentTracker, IncidentTransition
from statussentinel.services.probes import ProbeRegistry
from statussentinel.services.probes.base import DEFAULT_TIMEOUT

logger = structlog.get_logger()

POLL_INTERVAL = 60.0  # seconds


@dataclass
class CycleReport:
    probed: int = 0
    failed: int = 0
    errored: int = 0
    opened: int = 0
    closed: int = 0


class ProbeOrchestrator:
    """Runs probe cycles: list services, probe all concurrently, evaluate, sleep.

    Probes within a cycle are independent tasks; an error in one service's
    task is logged and never affects the others. The cycle waits for every
    task before sleeping, so a slow target delays it by at most the probe
    timeout.
    """

    def __init__(
        self,
        store: HistoryStore,
        tracker: IncidentTracker,
        probes: ProbeRegistry | None = None,
        poll_interval: float = POLL_INTERVAL,
        probe_timeout: float = DEFAULT_TIMEOUT,
    ):
        self._store = store
        self._tracker = tracker
        self._probes = probes or ProbeRegistry()
        self._poll_interval = poll_interval
        self._probe_timeout = probe_timeout
        self._task: asyncio.Task | None = None
        self._running = False
        self._cycles = 0

    @property
    def cycles(self) -> int:
        return self._cycles

    async def start(self) -> None:
        """Start the background probing task."""
        self._running = True
        await self._sync_incident_state()
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("probe_orchestrator_started", interval=self._poll_interval)

    async def stop(self) -> None:
        """Stop the background probing task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("probe_orchestrator_stopped", cycles=self._cycles)

    async def aclose(self) -> None:
        """Stop probing and release probe resources."""
        await self.stop()
        await self._probes.aclose()

    async def run_forever(self) -> None:
        """Run cycles in the current task until cancelled."""
        self._running = True
        await self._sync_incident_state()
        await self._poll_loop()

    async def _sync_incident_state(self) -> None:
        try:
            await self._tracker.sync_from_storage()
        except StorageError:
            logger.warning("incident_state_sync_skipped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("probe_cycle_error")
            try:
                await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                break

    async def run_cycle(self) -> CycleReport:
        """Probe every known service once and evaluate the outcomes."""
        report = CycleReport()
        try:
            services = await self._store.list_services()
        except StorageError:
            logger.warning("probe_cycle_skipped", reason="service list unavailable")
            return report

        await self._tracker.ensure_states(services)

        results = await asyncio.gather(
            *(self._probe_service(service) for service in services),
            return_exceptions=True,
        )

        for service, result in zip(services, results):
            report.probed += 1
            if isinstance(result, BaseException):
                report.errored += 1
                self._log_task_error(service, result)
                continue
            ok, transition = result
            if not ok:
                report.failed += 1
            if transition is IncidentTransition.OPENED:
                report.opened += 1
            elif transition is IncidentTransition.CLOSED:
                report.closed += 1

        self._cycles += 1
        logger.info(
            "probe_cycle_complete",
            cycle=self._cycles,
            probed=report.probed,
            failed=report.failed,
            errored=report.errored,
            opened=report.opened,
            closed=report.closed,
        )
        return report

    async def _probe_service(self, service: Service) -> tuple[bool, IncidentTransition]:
        target = parse_target(service.target)
        strategy = self._probes.select(target)
        outcome = await strategy.probe(target, self._probe_timeout)
        transition = await self._tracker.evaluate(service, outcome)
        logger.debug(
            "probe_completed",
            service=service.id,
            kind=target.kind.value,
            ok=outcome.ok,
            latency_ms=outcome.latency_ms,
            error=outcome.error,
            incident_open=self._tracker.has_open_incident(service.id),
        )
        return outcome.ok, transition

    @staticmethod
    def _log_task_error(service: Service, error: BaseException) -> None:
        if isinstance(error, SentinelError):
            logger.warning(
                "probe_task_failed",
                service=service.id,
                code=error.code,
                error=error.message,
            )
        else:
            logger.error(
                "probe_task_failed",
                service=service.id,
                error=repr(error),
                exc_info=error,
            )

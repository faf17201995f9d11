"""Incident detection: turns probe outcomes into incident open/close actions.

The per-service ``has_open_incident`` flag is a cache of storage truth. It
saves a storage round trip on the common path (healthy service, or a failing
service already under an incident). Whenever the flag says a transition may
be needed, the open incidents are re-read from storage under the state lock
before acting, so a stale flag never produces a duplicate incident.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

import structlog

from statussentinel.core.database import Service
from statussentinel.schemas.probes import ProbeOutcome
from statussentinel.services.history import HistoryStore

logger = structlog.get_logger()

FAILURE_THRESHOLD = 5


class IncidentTransition(str, Enum):
    NONE = "none"
    OPENED = "opened"
    CLOSED = "closed"
    RESYNCED = "resynced"  # flag was stale, storage already had an open incident


@dataclass
class ServiceRuntimeState:
    has_open_incident: bool = False


class IncidentTracker:
    """Per-service debounce state machine backed by a ``HistoryStore``.

    An incident opens once the trailing ``threshold`` samples are all
    failures, and closes on the next successful probe.
    """

    def __init__(self, store: HistoryStore, threshold: int = FAILURE_THRESHOLD):
        if threshold < 1:
            raise ValueError("failure threshold must be at least 1")
        self._store = store
        self._threshold = threshold
        self._lock = asyncio.Lock()
        self._states: dict[str, ServiceRuntimeState] = {}

    @property
    def threshold(self) -> int:
        return self._threshold

    def has_open_incident(self, service_id: str) -> bool:
        state = self._states.get(service_id)
        return state is not None and state.has_open_incident

    async def ensure_states(self, services: Iterable[Service]) -> None:
        """Create runtime state for services seen for the first time."""
        async with self._lock:
            for service in services:
                self._states.setdefault(service.id, ServiceRuntimeState())

    async def sync_from_storage(self) -> int:
        """Rebuild the open-incident flags from storage. Returns flags set."""
        incidents = await self._store.list_open_incidents()
        open_ids = {incident.service_id for incident in incidents}
        async with self._lock:
            for service_id, state in self._states.items():
                state.has_open_incident = service_id in open_ids
            for service_id in open_ids:
                self._states.setdefault(service_id, ServiceRuntimeState()).has_open_incident = True
        logger.info("incident_state_synced", open_incidents=len(open_ids))
        return len(open_ids)

    async def evaluate(self, service: Service, outcome: ProbeOutcome) -> IncidentTransition:
        """Record ``outcome`` for ``service`` and apply any incident transition.

        The sample is persisted first; a ``StorageError`` there propagates and
        skips incident evaluation for this service.
        """
        await self._store.append_response_sample(service.id, outcome.latency_ms)

        if outcome.ok:
            return await self._on_success(service)
        return await self._on_failure(service, outcome)

    async def _on_failure(self, service: Service, outcome: ProbeOutcome) -> IncidentTransition:
        failures = await self._store.count_recent_failures(service.id, self._threshold)
        if failures < self._threshold:
            return IncidentTransition.NONE

        async with self._lock:
            state = self._states.setdefault(service.id, ServiceRuntimeState())
            if state.has_open_incident:
                return IncidentTransition.NONE

            open_incidents = await self._store.list_open_incidents()
            if any(incident.service_id == service.id for incident in open_incidents):
                state.has_open_incident = True
                logger.info("incident_flag_resynced", service=service.id)
                return IncidentTransition.RESYNCED

            incident = await self._store.create_incident(
                service.id, self._describe(service, outcome, failures)
            )
            state.has_open_incident = True

        logger.warning(
            "incident_opened",
            service=service.id,
            incident_id=incident.id,
            description=incident.description,
        )
        return IncidentTransition.OPENED

    async def _on_success(self, service: Service) -> IncidentTransition:
        async with self._lock:
            state = self._states.setdefault(service.id, ServiceRuntimeState())
            if not state.has_open_incident:
                return IncidentTransition.NONE

            open_incidents = await self._store.list_open_incidents()
            # Close every match, duplicates included
            closed = []
            for incident in open_incidents:
                if incident.service_id == service.id:
                    await self._store.close_incident(incident.id)
                    closed.append(incident.id)
            state.has_open_incident = False

        logger.info("incident_closed", service=service.id, incident_ids=closed)
        return IncidentTransition.CLOSED

    @staticmethod
    def _describe(service: Service, outcome: ProbeOutcome, failures: int) -> str:
        if outcome.status:
            return f"Service {service.name} is down: HTTP {outcome.status} error"
        return f"Service {service.name} is down after {failures} consecutive failures"

"""SQLAlchemy-backed storage for services, response history and incidents."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from statussentinel.config import HISTORY_CAPACITY
from statussentinel.core.database import Incident, ResponseSample, Service
from statussentinel.core.exceptions import StorageError
from statussentinel.core.identifiers import normalize_service_id

logger = structlog.get_logger()


class HistoryStore:
    """Durable service registry, bounded latency history and incident records.

    Each service keeps at most ``capacity`` samples; appending beyond that
    evicts the oldest ones first. A latency of 0 marks a failed probe.
    """

    def __init__(self, session_factory: async_sessionmaker, capacity: int = HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError("history capacity must be at least 1")
        self._session_factory = session_factory
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.warning("storage_operation_failed", operation=operation, error=str(e))
            raise StorageError(f"{operation} failed: {e}", details={"operation": operation}) from e

    # ── Services ─────────────────────────────────────────────────────────────

    async def list_services(self) -> list[Service]:
        async with self._session("list_services") as session:
            result = await session.execute(select(Service).order_by(Service.id))
            return list(result.scalars().all())

    async def get_service(self, service_id: str) -> Service | None:
        async with self._session("get_service") as session:
            return await session.get(Service, service_id)

    async def upsert_service(self, name: str, target: str) -> Service:
        """Insert a service, or update name and target if its id exists."""
        service_id = normalize_service_id(name)
        async with self._session("upsert_service") as session:
            service = await session.get(Service, service_id)
            if service is None:
                service = Service(id=service_id, name=name, target=target, is_online=False)
                session.add(service)
            else:
                service.name = name
                service.target = target
            await session.commit()
            return service

    # ── Response history ─────────────────────────────────────────────────────

    async def append_response_sample(self, service_id: str, latency_ms: int) -> None:
        """Append one sample, evict past capacity and set the online flag.

        Runs as a single transaction.
        """
        async with self._session("append_response_sample") as session:
            async with session.begin():
                updated = await session.execute(
                    update(Service)
                    .where(Service.id == service_id)
                    .values(is_online=latency_ms > 0)
                    .execution_options(synchronize_session=False)
                )
                if updated.rowcount == 0:
                    raise StorageError(
                        f"Unknown service {service_id!r}.",
                        details={"service_id": service_id},
                    )

                count = await session.scalar(
                    select(func.count())
                    .select_from(ResponseSample)
                    .where(ResponseSample.service_id == service_id)
                ) or 0
                excess = count - self._capacity + 1
                if excess > 0:
                    oldest = await session.scalars(
                        select(ResponseSample.id)
                        .where(ResponseSample.service_id == service_id)
                        .order_by(ResponseSample.id)
                        .limit(excess)
                    )
                    await session.execute(
                        delete(ResponseSample).where(ResponseSample.id.in_(list(oldest)))
                    )

                session.add(ResponseSample(service_id=service_id, latency_ms=latency_ms))

    async def count_recent_failures(self, service_id: str, window_size: int) -> int:
        """Count zero-latency samples among the trailing ``window_size`` ones."""
        async with self._session("count_recent_failures") as session:
            recent = (
                select(ResponseSample.latency_ms)
                .where(ResponseSample.service_id == service_id)
                .order_by(ResponseSample.id.desc())
                .limit(window_size)
                .subquery()
            )
            count = await session.scalar(
                select(func.count()).select_from(recent).where(recent.c.latency_ms == 0)
            )
            return count or 0

    async def get_response_history(self, service_id: str, limit: int | None = None) -> list[int]:
        """Return latencies oldest first; ``limit`` keeps only the newest ones."""
        async with self._session("get_response_history") as session:
            query = (
                select(ResponseSample.latency_ms)
                .where(ResponseSample.service_id == service_id)
                .order_by(ResponseSample.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            result = await session.scalars(query)
            return list(reversed(result.all()))

    # ── Incidents ────────────────────────────────────────────────────────────

    async def list_open_incidents(self) -> list[Incident]:
        async with self._session("list_open_incidents") as session:
            result = await session.execute(
                select(Incident).where(Incident.end_time.is_(None)).order_by(Incident.id)
            )
            return list(result.scalars().all())

    async def list_incidents(self, include_closed: bool = True) -> list[Incident]:
        async with self._session("list_incidents") as session:
            query = select(Incident)
            if not include_closed:
                query = query.where(Incident.end_time.is_(None))
            result = await session.execute(query.order_by(Incident.id.desc()))
            return list(result.scalars().all())

    async def create_incident(self, service_id: str, description: str) -> Incident:
        async with self._session("create_incident") as session:
            service = await session.get(Service, service_id)
            if service is None:
                raise StorageError(
                    f"Unknown service {service_id!r}.",
                    details={"service_id": service_id},
                )
            incident = Incident(
                service_id=service_id,
                service_name=service.name,
                description=description,
            )
            session.add(incident)
            await session.commit()
            await session.refresh(incident)
            return incident

    async def close_incident(self, incident_id: int) -> None:
        """Set the end time of an open incident. No-op when already closed."""
        async with self._session("close_incident") as session:
            await session.execute(
                update(Incident)
                .where(Incident.id == incident_id, Incident.end_time.is_(None))
                .values(end_time=func.now())
                .execution_options(synchronize_session=False)
            )
            await session.commit()

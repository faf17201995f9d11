"""Unit tests for the SQLAlchemy history store."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.exc import OperationalError

from statussentinel.config import HISTORY_CAPACITY
from statussentinel.core.database import ResponseSample
from statussentinel.core.exceptions import IdentifierError, StorageError
from statussentinel.services.history import HistoryStore


@pytest.mark.asyncio
class TestServices:
    async def test_upsert_creates_service(self, store):
        service = await store.upsert_service("My Service!", "https://example.test")
        assert service.id == "my_service"
        assert service.name == "My Service!"
        assert service.is_online is False

    async def test_upsert_updates_existing(self, store):
        await store.upsert_service("Web Site", "https://old.test")
        await store.upsert_service("web site", "https://new.test")

        services = await store.list_services()
        assert len(services) == 1
        assert services[0].name == "web site"
        assert services[0].target == "https://new.test"

    async def test_upsert_rejects_empty_identifier(self, store):
        with pytest.raises(IdentifierError):
            await store.upsert_service("!!!", "https://example.test")
        assert await store.list_services() == []

    async def test_get_service(self, store, web_service):
        found = await store.get_service(web_service.id)
        assert found is not None
        assert found.target == web_service.target
        assert await store.get_service("missing") is None


@pytest.mark.asyncio
class TestResponseHistory:
    async def test_append_sets_online_flag(self, store, web_service):
        await store.append_response_sample(web_service.id, 120)
        assert (await store.get_service(web_service.id)).is_online is True

        await store.append_response_sample(web_service.id, 0)
        assert (await store.get_service(web_service.id)).is_online is False

    async def test_history_is_ordered(self, store, web_service):
        for latency in (10, 0, 30):
            await store.append_response_sample(web_service.id, latency)
        assert await store.get_response_history(web_service.id) == [10, 0, 30]
        assert await store.get_response_history(web_service.id, limit=2) == [0, 30]

    async def test_append_unknown_service_fails(self, store):
        with pytest.raises(StorageError):
            await store.append_response_sample("ghost", 10)

    async def test_eviction_keeps_newest(self, small_store):
        service = await small_store.upsert_service("Web Site", "https://example.test")
        for latency in (1, 2, 3, 4, 5):
            await small_store.append_response_sample(service.id, latency)
        assert await small_store.get_response_history(service.id) == [3, 4, 5]

    async def test_default_capacity_is_ninety_days(self, store):
        assert store.capacity == HISTORY_CAPACITY == 129_600

    async def test_full_history_evicts_exactly_oldest(self, store, web_service, session_factory):
        # Fill to capacity in bulk: samples 1..capacity, oldest first
        async with session_factory() as session:
            await session.execute(
                insert(ResponseSample),
                [
                    {"service_id": web_service.id, "latency_ms": i}
                    for i in range(1, HISTORY_CAPACITY + 1)
                ],
            )
            await session.commit()

        await store.append_response_sample(web_service.id, 999_999)

        async with session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(ResponseSample)
                .where(ResponseSample.service_id == web_service.id)
            )
            first = await session.scalar(
                select(ResponseSample.latency_ms)
                .where(ResponseSample.service_id == web_service.id)
                .order_by(ResponseSample.id)
                .limit(1)
            )
        last = await store.get_response_history(web_service.id, limit=1)

        assert count == HISTORY_CAPACITY
        assert first == 2
        assert last == [999_999]

    async def test_histories_are_per_service(self, small_store):
        a = await small_store.upsert_service("A", "https://a.test")
        b = await small_store.upsert_service("B", "https://b.test")
        for latency in (1, 2, 3):
            await small_store.append_response_sample(a.id, latency)
        await small_store.append_response_sample(b.id, 7)
        assert await small_store.get_response_history(a.id) == [1, 2, 3]
        assert await small_store.get_response_history(b.id) == [7]

    async def test_count_recent_failures_uses_trailing_window(self, store, web_service):
        for latency in (0, 0, 0, 10, 0, 0):
            await store.append_response_sample(web_service.id, latency)
        assert await store.count_recent_failures(web_service.id, 5) == 4
        assert await store.count_recent_failures(web_service.id, 2) == 2
        assert await store.count_recent_failures(web_service.id, 3) == 2

    async def test_count_recent_failures_short_history(self, store, web_service):
        await store.append_response_sample(web_service.id, 0)
        assert await store.count_recent_failures(web_service.id, 5) == 1
        assert await store.count_recent_failures("nobody", 5) == 0


@pytest.mark.asyncio
class TestIncidents:
    async def test_create_snapshots_service_name(self, store, web_service):
        incident = await store.create_incident(web_service.id, "down")
        await store.upsert_service("Web Site", "https://renamed.test")

        assert incident.id is not None
        assert incident.service_name == "Web Site"
        assert incident.start_time is not None
        assert incident.end_time is None

    async def test_create_for_unknown_service(self, store):
        with pytest.raises(StorageError):
            await store.create_incident("ghost", "down")

    async def test_list_open_excludes_closed(self, store, web_service):
        first = await store.create_incident(web_service.id, "one")
        second = await store.create_incident(web_service.id, "two")
        await store.close_incident(first.id)

        open_ids = [i.id for i in await store.list_open_incidents()]
        all_ids = [i.id for i in await store.list_incidents()]
        assert open_ids == [second.id]
        assert sorted(all_ids) == sorted([first.id, second.id])
        assert [i.id for i in await store.list_incidents(include_closed=False)] == [second.id]

    async def test_close_is_idempotent(self, store, web_service):
        incident = await store.create_incident(web_service.id, "down")
        await store.close_incident(incident.id)
        closed = (await store.list_incidents())[0]
        await store.close_incident(incident.id)
        again = (await store.list_incidents())[0]

        assert closed.end_time is not None
        assert again.end_time == closed.end_time

    async def test_close_missing_incident_is_noop(self, store):
        await store.close_incident(12345)


@pytest.mark.asyncio
class TestStorageErrors:
    async def test_database_errors_become_storage_errors(self):
        def broken_factory():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        store = HistoryStore(broken_factory)
        with pytest.raises(StorageError) as exc_info:
            await store.list_services()
        assert exc_info.value.details["operation"] == "list_services"

    async def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            HistoryStore(MagicMock(), capacity=0)

"""Unit tests for the incident debounce state machine."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from statussentinel.core.exceptions import StorageError
from statussentinel.schemas.probes import ProbeOutcome
from statussentinel.services.incidents import IncidentTracker, IncidentTransition

FAIL = ProbeOutcome.failure()
OK = ProbeOutcome.success(80)


@pytest_asyncio.fixture
async def tracker(store, web_service):
    t = IncidentTracker(store)
    await t.ensure_states([web_service])
    return t


async def _feed(tracker, service, outcome, times):
    return [await tracker.evaluate(service, outcome) for _ in range(times)]


@pytest.mark.asyncio
class TestDebounce:
    async def test_four_failures_open_nothing(self, tracker, store, web_service):
        transitions = await _feed(tracker, web_service, FAIL, 4)
        assert set(transitions) == {IncidentTransition.NONE}
        assert await store.list_open_incidents() == []
        assert tracker.has_open_incident(web_service.id) is False

    async def test_fifth_failure_opens_exactly_one(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 4)
        assert await tracker.evaluate(web_service, FAIL) is IncidentTransition.OPENED

        incidents = await store.list_open_incidents()
        assert len(incidents) == 1
        assert incidents[0].service_id == web_service.id
        assert tracker.has_open_incident(web_service.id) is True

    async def test_sixth_failure_does_not_duplicate(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 5)
        assert await tracker.evaluate(web_service, FAIL) is IncidentTransition.NONE
        assert len(await store.list_incidents()) == 1

    async def test_success_breaks_the_streak(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 4)
        await tracker.evaluate(web_service, OK)
        await _feed(tracker, web_service, FAIL, 4)
        assert await store.list_incidents() == []

    async def test_every_outcome_is_recorded(self, tracker, store, web_service):
        await tracker.evaluate(web_service, OK)
        await tracker.evaluate(web_service, FAIL)
        assert await store.get_response_history(web_service.id) == [80, 0]

    async def test_custom_threshold(self, store, web_service):
        tracker = IncidentTracker(store, threshold=2)
        await tracker.evaluate(web_service, FAIL)
        assert await tracker.evaluate(web_service, FAIL) is IncidentTransition.OPENED

    async def test_threshold_must_be_positive(self, store):
        with pytest.raises(ValueError):
            IncidentTracker(store, threshold=0)


@pytest.mark.asyncio
class TestDescriptions:
    async def test_generic_description(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 5)
        incident = (await store.list_open_incidents())[0]
        assert incident.description == "Service Web Site is down after 5 consecutive failures"

    async def test_http_status_description(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 4)
        await tracker.evaluate(web_service, ProbeOutcome.failure(status="502"))
        incident = (await store.list_open_incidents())[0]
        assert incident.description == "Service Web Site is down: HTTP 502 error"


@pytest.mark.asyncio
class TestClose:
    async def test_success_closes_open_incident(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 5)
        assert await tracker.evaluate(web_service, OK) is IncidentTransition.CLOSED

        incidents = await store.list_incidents()
        assert len(incidents) == 1
        assert incidents[0].end_time is not None
        assert tracker.has_open_incident(web_service.id) is False

    async def test_success_without_incident_is_cheap(self, tracker, store, web_service):
        with patch.object(store, "list_open_incidents", AsyncMock()) as listed:
            assert await tracker.evaluate(web_service, OK) is IncidentTransition.NONE
        listed.assert_not_called()

    async def test_duplicate_open_incidents_all_closed(self, tracker, store, web_service):
        # Simulate duplicates left behind by an earlier race
        await store.create_incident(web_service.id, "first")
        await store.create_incident(web_service.id, "second")
        await tracker.sync_from_storage()

        assert await tracker.evaluate(web_service, OK) is IncidentTransition.CLOSED
        assert await store.list_open_incidents() == []
        assert tracker.has_open_incident(web_service.id) is False

    async def test_close_leaves_other_services_alone(self, tracker, store, web_service):
        other = await store.upsert_service("Other", "https://other.test")
        await store.create_incident(other.id, "other down")
        await _feed(tracker, web_service, FAIL, 5)

        await tracker.evaluate(web_service, OK)

        open_incidents = await store.list_open_incidents()
        assert [i.service_id for i in open_incidents] == [other.id]

    async def test_failed_close_keeps_flag_for_retry(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 5)
        with patch.object(store, "close_incident", AsyncMock(side_effect=StorageError("down"))):
            with pytest.raises(StorageError):
                await tracker.evaluate(web_service, OK)
        assert tracker.has_open_incident(web_service.id) is True

        assert await tracker.evaluate(web_service, OK) is IncidentTransition.CLOSED
        assert await store.list_open_incidents() == []


@pytest.mark.asyncio
class TestStaleFlag:
    async def test_storage_truth_prevents_duplicate(self, store, web_service):
        # A previous process opened an incident; this tracker starts cold
        await store.create_incident(web_service.id, "from previous run")
        tracker = IncidentTracker(store)

        results = await _feed(tracker, web_service, FAIL, 5)

        assert results[-1] is IncidentTransition.RESYNCED
        assert len(await store.list_incidents()) == 1
        assert tracker.has_open_incident(web_service.id) is True

    async def test_sync_from_storage_enables_close_after_restart(self, store, web_service):
        await store.create_incident(web_service.id, "from previous run")
        tracker = IncidentTracker(store)
        assert await tracker.sync_from_storage() == 1

        assert await tracker.evaluate(web_service, OK) is IncidentTransition.CLOSED
        assert await store.list_open_incidents() == []

    async def test_sync_clears_flags_without_incidents(self, tracker, store, web_service):
        await _feed(tracker, web_service, FAIL, 5)
        incident = (await store.list_open_incidents())[0]
        await store.close_incident(incident.id)

        await tracker.sync_from_storage()
        assert tracker.has_open_incident(web_service.id) is False


@pytest.mark.asyncio
class TestConcurrency:
    async def test_concurrent_failures_open_once(self, file_store):
        store = file_store
        web_service = await store.upsert_service("Web Site", "https://example.invalid")
        tracker = IncidentTracker(store)
        await _feed(tracker, web_service, FAIL, 5)
        await store.close_incident((await store.list_open_incidents())[0].id)
        await tracker.sync_from_storage()

        # Several evaluations past the threshold race for the same flag
        results = await asyncio.gather(
            *(tracker.evaluate(web_service, FAIL) for _ in range(4))
        )

        assert results.count(IncidentTransition.OPENED) == 1
        assert len(await store.list_open_incidents()) == 1

    async def test_append_failure_skips_evaluation(self, tracker, store, web_service):
        with patch.object(
            store, "append_response_sample", AsyncMock(side_effect=StorageError("down"))
        ), patch.object(store, "count_recent_failures", AsyncMock()) as counted:
            with pytest.raises(StorageError):
                await tracker.evaluate(web_service, FAIL)
        counted.assert_not_called()

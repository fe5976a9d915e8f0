"""Unit tests for the batch coordinator.

Run with: pytest tests/unit/batch/test_coordinator.py -v
"""

import asyncio

import pytest
from unittest.mock import AsyncMock
from uuid import uuid4

from territoires.batch import (
    BatchCoordinator,
    BatchItemInput,
    BatchNotReady,
    BatchQueueFullError,
    BatchResultsResponse,
    BatchScheduler,
    BatchStatus,
    BatchValidationError,
    ItemStatus,
    deduplication_key,
)
from territoires.matching import MatchHints, MatchSource, MatchSuccess


def make_items(*queries: str) -> list[BatchItemInput]:
    return [BatchItemInput(query=query) for query in queries]


class TestDeduplicationKey:
    """Tests for deduplication_key."""

    def test_case_and_whitespace_insensitive(self):
        assert deduplication_key("  Lyon ") == deduplication_key("lyon")

    def test_hints_are_part_of_the_key(self):
        plain = deduplication_key("Saint-Denis")
        with_hint = deduplication_key("Saint-Denis", MatchHints(departement="93"))
        other_hint = deduplication_key("Saint-Denis", MatchHints(departement="974"))

        assert len({plain, with_hint, other_hint}) == 3

    def test_same_hints_same_key(self):
        assert deduplication_key("Lyon", MatchHints(region="84")) == deduplication_key(
            "LYON", MatchHints(region="84")
        )


class TestSubmit:
    """Tests for BatchCoordinator.submit."""

    @pytest.mark.asyncio
    async def test_rejects_oversized_batch_without_persisting(self, matcher):
        repository = AsyncMock()
        coordinator = BatchCoordinator(repository, matcher)

        with pytest.raises(BatchValidationError, match="Maximum 1000 items per batch"):
            await coordinator.submit(make_items(*["Lyon"] * 1001))

        repository.create_request.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejects_empty_and_missing_items(self, coordinator):
        with pytest.raises(BatchValidationError, match="cannot be empty"):
            await coordinator.submit([])
        with pytest.raises(BatchValidationError, match="is required"):
            await coordinator.submit(None)

    @pytest.mark.asyncio
    async def test_accepts_exactly_the_maximum(self, coordinator):
        response = await coordinator.submit(make_items(*["Lyon"] * 1000))

        assert response.total_items == 1000
        assert response.estimated_duration == 20

    @pytest.mark.asyncio
    async def test_response(self, coordinator):
        response = await coordinator.submit(
            make_items(*["Lyon"] * 120), base_url="https://api.example.org/"
        )

        assert response.status == BatchStatus.PENDING
        assert response.total_items == 120
        assert response.estimated_duration == 3
        assert response.status_url == (
            f"https://api.example.org/api/v1/territoires/batch/{response.request_id}"
        )
        assert response.results_url.endswith(f"/batch/{response.request_id}/results")

    @pytest.mark.asyncio
    async def test_persists_pending_items(self, coordinator, batch_repository):
        response = await coordinator.submit(
            [
                BatchItemInput(query="  Lyon  "),
                BatchItemInput(query="x" * 250, hints=MatchHints(departement=" 69 ", type="")),
            ],
            client_id="c" * 150,
        )

        request = await batch_repository.get_request(response.request_id)
        items = await batch_repository.list_items(response.request_id)

        assert request.status == BatchStatus.PENDING
        assert len(request.client_id) == 100
        assert (request.expires_at - request.created_at).total_seconds() == 24 * 3600
        assert [item.status for item in items] == [ItemStatus.PENDING, ItemStatus.PENDING]
        assert items[0].query == "Lyon"
        assert len(items[1].query) == 200
        assert items[1].hints == MatchHints(departement="69")

    @pytest.mark.asyncio
    async def test_enqueues_on_scheduler(self, batch_repository, matcher):
        scheduler = AsyncMock()
        scheduler.full = False
        coordinator = BatchCoordinator(batch_repository, matcher, scheduler=scheduler)

        response = await coordinator.submit(make_items("Lyon"))

        scheduler.enqueue.assert_awaited_once_with(response.request_id, coordinator.process_batch)

    @pytest.mark.asyncio
    async def test_full_queue_rejects_without_persisting(self, batch_repository, matcher):
        scheduler = BatchScheduler(workers=1, queue_size=1)
        coordinator = BatchCoordinator(batch_repository, matcher, scheduler=scheduler)

        await coordinator.submit(make_items("Lyon"))

        with pytest.raises(BatchQueueFullError):
            await asyncio.wait_for(coordinator.submit(make_items("Paris")), timeout=2)

        assert len(batch_repository._requests) == 1
        assert scheduler.pending == 1

    @pytest.mark.asyncio
    async def test_queue_filled_while_storing_fails_request(self, batch_repository, matcher):
        scheduler = AsyncMock()
        scheduler.full = False
        scheduler.enqueue.side_effect = BatchQueueFullError("Batch queue is full")
        coordinator = BatchCoordinator(batch_repository, matcher, scheduler=scheduler)

        with pytest.raises(BatchQueueFullError):
            await coordinator.submit(make_items("Lyon"))

        (request,) = batch_repository._requests.values()
        assert request.status == BatchStatus.FAILED
        assert request.completed_at is not None


class TestProcessBatch:
    """Tests for BatchCoordinator.process_batch."""

    @pytest.mark.asyncio
    async def test_duplicates_resolved_once(self, batch_repository, notifier, clock):
        matcher = AsyncMock()
        matcher.match.return_value = MatchSuccess(
            code="69123",
            nom="Lyon",
            type="commune",
            confidence=1.0,
            match_source=MatchSource.DATABASE,
        )
        coordinator = BatchCoordinator(batch_repository, matcher, notifier=notifier, clock=clock)

        response = await coordinator.submit(make_items("Lyon", " LYON", "lyon "))
        await coordinator.process_batch(response.request_id)

        assert matcher.match.await_count == 1

        results = await coordinator.get_results(response.request_id)
        assert isinstance(results, BatchResultsResponse)
        assert [r.code for r in results.results] == ["69123"] * 3
        assert [r.query for r in results.results] == ["Lyon", "LYON", "lyon"]

        items = await batch_repository.list_items(response.request_id)
        assert len({item.id for item in items}) == 3
        assert all(item.status == ItemStatus.MATCHED for item in items)

    @pytest.mark.asyncio
    async def test_different_hints_resolved_separately(self, batch_repository, clock):
        matcher = AsyncMock()
        matcher.match.return_value = MatchSuccess(
            code="93066",
            nom="Saint-Denis",
            type="commune",
            confidence=1.0,
            match_source=MatchSource.DATABASE,
        )
        coordinator = BatchCoordinator(batch_repository, matcher, clock=clock)

        response = await coordinator.submit(
            [
                BatchItemInput(query="Saint-Denis", hints=MatchHints(departement="93")),
                BatchItemInput(query="Saint-Denis", hints=MatchHints(departement="974")),
            ]
        )
        await coordinator.process_batch(response.request_id)

        assert matcher.match.await_count == 2

    @pytest.mark.asyncio
    async def test_results_ordered_by_input_index(self, coordinator):
        queries = ["84", "Atlantide", "Grand Lyon", "Par", "Lyon", "69123", "Brieuc"] * 5
        response = await coordinator.submit(make_items(*queries))

        await coordinator.process_batch(response.request_id)
        results = await coordinator.get_results(response.request_id)

        assert [r.index for r in results.results] == list(range(len(queries)))
        assert [r.query for r in results.results] == queries

    @pytest.mark.asyncio
    async def test_outcomes_and_summary(self, coordinator):
        response = await coordinator.submit(make_items("84", "Par", "Atlantide", "Grand Lyon"))

        await coordinator.process_batch(response.request_id)
        results = await coordinator.get_results(response.request_id)

        assert results.status == BatchStatus.COMPLETED
        statuses = [r.status for r in results.results]
        assert statuses == [
            ItemStatus.MATCHED,
            ItemStatus.SUGGESTIONS,
            ItemStatus.FAILED,
            ItemStatus.MATCHED,
        ]
        assert results.results[0].match_source == "direct"
        assert len(results.results[1].alternatives) >= 2
        assert results.results[2].error == 'No territoire found matching "Atlantide"'
        assert results.summary.total == 4
        assert results.summary.matched == 2
        assert results.summary.suggestions == 1
        assert results.summary.failed == 1
        assert results.summary.success_rate == 50

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, batch_repository, matcher, clock):
        coordinator = BatchCoordinator(batch_repository, matcher, concurrency=2, clock=clock)
        response = await coordinator.submit(make_items("84", "53", "11", "75", "69", "22", "2A"))

        observed = []
        increment = batch_repository.increment_counters

        async def record_progress(request_id, **counts):
            await increment(request_id, **counts)
            status = await coordinator.get_status(request_id)
            observed.append(status.progress)

        batch_repository.increment_counters = record_progress

        await coordinator.process_batch(response.request_id)

        # 7 unique queries in chunks of 2
        assert observed == [29, 57, 86, 100]
        assert observed == sorted(observed)

    @pytest.mark.asyncio
    async def test_group_failure_is_isolated(self, batch_repository, matcher, clock):
        real_match = matcher.match

        async def flaky_match(request):
            if request.query == "boom":
                raise RuntimeError("store timeout")
            return await real_match(request)

        matcher.match = flaky_match
        coordinator = BatchCoordinator(batch_repository, matcher, clock=clock)

        response = await coordinator.submit(make_items("84", "boom", "BOOM", "69123"))
        await coordinator.process_batch(response.request_id)

        results = await coordinator.get_results(response.request_id)
        assert results.status == BatchStatus.COMPLETED
        assert [r.status for r in results.results] == [
            ItemStatus.MATCHED,
            ItemStatus.FAILED,
            ItemStatus.FAILED,
            ItemStatus.MATCHED,
        ]
        assert results.results[1].error == "store timeout"
        assert results.summary.failed == 2

    @pytest.mark.asyncio
    async def test_coordination_failure_marks_batch_failed(self, batch_repository, matcher, clock):
        coordinator = BatchCoordinator(batch_repository, matcher, clock=clock)
        response = await coordinator.submit(make_items("84"))

        batch_repository.list_items = AsyncMock(side_effect=RuntimeError("connection lost"))
        await coordinator.process_batch(response.request_id)

        status = await coordinator.get_status(response.request_id)
        assert status.status == BatchStatus.FAILED
        assert status.completed_at is not None

    @pytest.mark.asyncio
    async def test_webhook_fired_on_completion(self, coordinator, notifier):
        response = await coordinator.submit(
            make_items("84"), webhook_url="https://client.example.org/hook"
        )

        await coordinator.process_batch(response.request_id)

        notifier.notify.assert_awaited_once()
        url, payload = notifier.notify.await_args.args
        assert url == "https://client.example.org/hook"
        assert payload["requestId"] == str(response.request_id)
        assert payload["status"] == "completed"
        assert payload["progress"] == 100

    @pytest.mark.asyncio
    async def test_no_webhook_without_url(self, coordinator, notifier):
        response = await coordinator.submit(make_items("84"))

        await coordinator.process_batch(response.request_id)

        notifier.notify.assert_not_called()


class TestRetrieval:
    """Tests for status, results and expiry."""

    @pytest.mark.asyncio
    async def test_results_not_ready_while_pending(self, coordinator):
        response = await coordinator.submit(make_items("84", "69"))

        results = await coordinator.get_results(response.request_id)

        assert isinstance(results, BatchNotReady)
        assert results.retry_after == 5
        assert results.results == []
        assert results.status == BatchStatus.PENDING

    @pytest.mark.asyncio
    async def test_status_counters(self, coordinator, clock):
        response = await coordinator.submit(make_items("84", "Par", "Atlantide"))

        pending = await coordinator.get_status(response.request_id)
        assert pending.progress == 0
        assert pending.started_at is None

        clock.advance(2)
        await coordinator.process_batch(response.request_id)

        done = await coordinator.get_status(response.request_id)
        assert done.status == BatchStatus.COMPLETED
        assert (done.processed, done.matched, done.suggestions, done.failed) == (3, 1, 1, 1)
        assert done.progress == 100
        assert done.started_at == clock.now

    @pytest.mark.asyncio
    async def test_unknown_request(self, coordinator):
        assert await coordinator.get_status(uuid4()) is None
        assert await coordinator.get_results(uuid4()) is None

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, coordinator, batch_repository, clock):
        old = await coordinator.submit(make_items("84"))
        clock.advance(12 * 3600)
        recent = await coordinator.submit(make_items("69"))

        clock.advance(12 * 3600 + 1)
        deleted = await coordinator.cleanup_expired()

        assert deleted == 1
        assert await coordinator.get_status(old.request_id) is None
        assert await batch_repository.list_items(old.request_id) == []
        assert await coordinator.get_status(recent.request_id) is not None

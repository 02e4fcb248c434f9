"""
Unit tests for the debounced request batcher.
"""

import asyncio

import pytest

from service_content.app.caching.batcher import RequestBatcher
from shared.metrics import MetricsCollector


def returning(value, calls=None):
    async def query():
        if calls is not None:
            calls.append(value)
        return value
    return query


def failing(error):
    async def query():
        raise error
    return query


class TestRequestBatcher:
    """Test cases for RequestBatcher."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("test-content")

    @pytest.fixture
    def batcher(self, metrics):
        return RequestBatcher(0.05, metrics=metrics)

    @pytest.mark.asyncio
    async def test_calls_in_window_run_as_one_batch(self, batcher, metrics):
        """Five calls inside the window execute together, results by position."""
        calls = []

        results = await asyncio.gather(*(
            batcher.batch_query("translation", returning(i, calls)) for i in range(5)
        ))

        assert results == [0, 1, 2, 3, 4]
        assert sorted(calls) == [0, 1, 2, 3, 4]
        assert batcher.stats == {"batches": 1, "members": 5}
        assert metrics.sample("batch_executions_total", batch_key="translation") == 1.0
        assert metrics.sample("batch_size_sum") == 5.0

    @pytest.mark.asyncio
    async def test_nothing_runs_before_window_elapses(self, batcher):
        calls = []
        tasks = [asyncio.create_task(batcher.batch_query("k", returning(i, calls))) for i in range(3)]
        await asyncio.sleep(0)

        assert batcher.get_pending_count("k") == 3
        assert calls == []

        await asyncio.gather(*tasks)
        assert batcher.get_pending_count("k") == 0

    @pytest.mark.asyncio
    async def test_each_call_rearms_the_timer(self):
        batcher = RequestBatcher(0.1)
        tasks = []
        for i in range(3):
            tasks.append(asyncio.create_task(batcher.batch_query("k", returning(i))))
            await asyncio.sleep(0.03)

        assert await asyncio.gather(*tasks) == [0, 1, 2]
        assert batcher.stats["batches"] == 1

    @pytest.mark.asyncio
    async def test_separated_calls_form_separate_batches(self, batcher):
        assert await batcher.batch_query("k", returning("a")) == "a"
        assert await batcher.batch_query("k", returning("b")) == "b"

        assert batcher.stats["batches"] == 2

    @pytest.mark.asyncio
    async def test_keys_are_batched_independently(self, batcher):
        results = await asyncio.gather(
            batcher.batch_query("a", returning(1)),
            batcher.batch_query("b", returning(2)),
        )

        assert results == [1, 2]
        assert batcher.stats["batches"] == 2

    @pytest.mark.asyncio
    async def test_failure_only_affects_its_caller(self, batcher):
        boom = ValueError("member failed")

        results = await asyncio.gather(
            batcher.batch_query("k", returning("ok")),
            batcher.batch_query("k", failing(boom)),
            batcher.batch_query("k", returning("also ok")),
            return_exceptions=True,
        )

        assert results == ["ok", boom, "also ok"]

    @pytest.mark.asyncio
    async def test_all_or_nothing_fails_every_caller(self):
        batcher = RequestBatcher(0.05, all_or_nothing=True)
        boom = ValueError("member failed")

        results = await asyncio.gather(
            batcher.batch_query("k", returning("ok")),
            batcher.batch_query("k", failing(boom)),
            return_exceptions=True,
        )

        assert results == [boom, boom]

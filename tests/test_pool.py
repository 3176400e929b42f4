"""Tests for siteaudit.crawler.pool: the bounded-concurrency runner."""

from __future__ import annotations

import asyncio

import pytest

from siteaudit.crawler.pool import run_pool


class TestRunPool:
    async def test_results_follow_input_order(self):
        async def op(x: int) -> int:
            # Later items finish first.
            await asyncio.sleep(0.002 * (5 - x))
            return x * 2

        assert await run_pool([1, 2, 3, 4], op, limit=4) == [2, 4, 6, 8]

    async def test_failure_recorded_as_none_without_stopping_siblings(self):
        async def op(x: int) -> int:
            if x == 2:
                raise RuntimeError("boom")
            await asyncio.sleep(0)
            return x

        assert await run_pool([1, 2, 3], op, limit=2) == [1, None, 3]

    async def test_concurrency_never_exceeds_limit(self):
        in_flight = 0
        peak = 0

        async def op(x: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return x

        results = await run_pool(list(range(20)), op, limit=3)
        assert results == list(range(20))
        assert peak == 3

    async def test_each_item_processed_exactly_once(self):
        seen: list[int] = []

        async def op(x: int) -> int:
            seen.append(x)
            await asyncio.sleep(0)
            return x

        await run_pool(list(range(10)), op, limit=4)
        assert sorted(seen) == list(range(10))

    async def test_progress_reported_after_every_item(self):
        calls: list[tuple[int, int]] = []

        async def op(x: int) -> int:
            await asyncio.sleep(0)
            return x

        await run_pool([1, 2, 3], op, limit=2, on_progress=lambda c, t: calls.append((c, t)))
        assert calls == [(1, 3), (2, 3), (3, 3)]

    async def test_progress_counts_failures(self):
        calls: list[tuple[int, int]] = []

        async def op(x: int) -> int:
            raise ValueError("nope")

        results = await run_pool([1, 2], op, limit=5, on_progress=lambda c, t: calls.append((c, t)))
        assert results == [None, None]
        assert calls[-1] == (2, 2)

    async def test_empty_input_never_calls_operation(self):
        called = False

        async def op(x: int) -> int:
            nonlocal called
            called = True
            return x

        assert await run_pool([], op, limit=3) == []
        assert called is False

    @pytest.mark.parametrize("limit", [0, -1])
    async def test_non_positive_limit_still_makes_progress(self, limit):
        async def op(x: int) -> int:
            return x + 1

        assert await run_pool([1, 2], op, limit=limit) == [2, 3]

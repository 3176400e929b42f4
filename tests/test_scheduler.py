"""Tests for siteaudit.audit.scheduler and the worker state machine.

The scheduler is driven with a stand-in operation so every outcome (success,
rate limit, failure) is scripted per job and per worker.  Cooldowns are a few
milliseconds long.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict

import pytest

from siteaudit.audit.models import (
    AnalysisResult,
    AuditResult,
    ClusterPage,
    Job,
    SiteContext,
    TopicLabel,
    Worker,
    WorkerStatus,
)
from siteaudit.audit.providers import AIProvider, ProviderConfig
from siteaudit.audit.scheduler import JobScheduler
from siteaudit.crawler.models import PageRecord
from siteaudit.errors import IllegalTransitionError, RateLimitError


class StubProvider(AIProvider):
    vendor = "stub"

    def __init__(self, provider_id: str) -> None:
        super().__init__(ProviderConfig(provider="openai", api_key="k", id=provider_id))

    async def _complete(self, system: str, prompt: str) -> str:
        raise AssertionError("not used")


def _page(i: int) -> PageRecord:
    return PageRecord(url=f"https://ex.com/{i}", title=f"Page {i}", description="", content="")


def _jobs(n: int) -> list[Job]:
    return [Job(page=_page(i)) for i in range(n)]


def _result(url: str) -> AuditResult:
    analysis = AnalysisResult(
        topic="t", title_grade=80, title_feedback="", description_grade=80, description_feedback=""
    )
    return AuditResult(url=url, analysis=analysis, suggestions=[])


class Recorder:
    """Operation stand-in that records calls and follows a per-URL script."""

    def __init__(self, script: dict | None = None, delay: float = 0.001) -> None:
        self.script = defaultdict(list, script or {})
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.contexts: dict = {}
        self.running: set[str] = set()
        self.peak = 0
        self.overlap = False

    async def __call__(self, job, provider, context):
        if job.url in self.running:
            self.overlap = True
        self.running.add(job.url)
        self.peak = max(self.peak, len(self.running))
        self.calls.append((job.url, provider.id))
        self.contexts[job.url] = context
        try:
            await asyncio.sleep(self.delay)
            steps = self.script[job.url]
            if steps:
                step = steps.pop(0)
                if isinstance(step, BaseException):
                    raise step
                if callable(step):
                    step(provider)
            return _result(job.url)
        finally:
            self.running.discard(job.url)


def _rate_limit_on(provider_id: str):
    def step(provider):
        if provider.id == provider_id:
            raise RateLimitError(f"{provider_id} throttled")
    return step


# ===========================================================================
# Worker state machine
# ===========================================================================

class TestWorker:
    def test_legal_cycle(self):
        worker = Worker(provider=StubProvider("w"))
        worker.transition(WorkerStatus.BUSY)
        worker.start_cooldown(30)
        assert worker.status is WorkerStatus.COOLING_DOWN
        assert 29 < worker.cooldown_remaining() <= 30
        worker.finish_cooldown()
        assert worker.status is WorkerStatus.READY
        assert worker.cooldown_until is None

    @pytest.mark.parametrize(
        "start, target",
        [
            (WorkerStatus.READY, WorkerStatus.COOLING_DOWN),
            (WorkerStatus.READY, WorkerStatus.READY),
            (WorkerStatus.COOLING_DOWN, WorkerStatus.BUSY),
            (WorkerStatus.BUSY, WorkerStatus.BUSY),
        ],
    )
    def test_illegal_transitions(self, start, target):
        worker = Worker(provider=StubProvider("w"), status=start)
        with pytest.raises(IllegalTransitionError):
            worker.transition(target)


# ===========================================================================
# Scheduler
# ===========================================================================

class TestJobScheduler:
    def test_requires_a_provider(self):
        with pytest.raises(ValueError):
            JobScheduler([])

    async def test_empty_queue_completes_immediately(self):
        scheduler = JobScheduler([StubProvider("a")], Recorder())
        summary = await scheduler.process_queue([])
        assert summary.total == 0 and summary.completed == 0

    async def test_all_jobs_succeed_across_workers(self):
        op = Recorder()
        results: list[AuditResult] = []
        progress: list[tuple[int, int]] = []
        scheduler = JobScheduler(
            [StubProvider("a"), StubProvider("b"), StubProvider("c")],
            op,
            on_result=results.append,
            on_progress=lambda c, t: progress.append((c, t)),
        )

        summary = await scheduler.process_queue(_jobs(10))

        assert summary.succeeded == 10 and summary.failed == 0
        assert sorted(r.url for r in results) == sorted(j.url for j in _jobs(10))
        assert progress[-1] == (10, 10)
        assert [c for c, _ in progress] == sorted(c for c, _ in progress)
        assert {pid for _, pid in op.calls} == {"a", "b", "c"}
        assert op.peak <= 3
        assert all(w.status is WorkerStatus.READY for w in scheduler.workers)

    async def test_duplicate_urls_rejected(self):
        scheduler = JobScheduler([StubProvider("a")], Recorder())
        with pytest.raises(ValueError, match="Duplicate"):
            await scheduler.process_queue([Job(page=_page(1)), Job(page=_page(1))])

    async def test_rate_limit_cools_worker_and_requeues_at_front(self):
        jobs = _jobs(3)
        op = Recorder({jobs[0].url: [RateLimitError("429")]})
        scheduler = JobScheduler([StubProvider("a")], op, cooldown=0.03)

        started = time.monotonic()
        summary = await scheduler.process_queue(jobs)

        assert time.monotonic() - started >= 0.025
        assert summary.succeeded == 3
        assert summary.cooldowns == 1
        assert summary.retries == 0
        assert jobs[0].retries == 0
        assert [url for url, _ in op.calls] == [jobs[0].url, jobs[0].url, jobs[1].url, jobs[2].url]
        assert scheduler.workers[0].status is WorkerStatus.READY

    async def test_five_jobs_two_workers_one_rate_limit(self):
        jobs = _jobs(5)
        op = Recorder({jobs[1].url: [RateLimitError("429")]})
        progress: list[tuple[int, int]] = []
        scheduler = JobScheduler(
            [StubProvider("a"), StubProvider("b")],
            op,
            cooldown=0.02,
            on_progress=lambda c, t: progress.append((c, t)),
        )

        summary = await scheduler.process_queue(jobs)

        assert summary.cooldowns == 1
        assert summary.completed == 5
        assert summary.succeeded == 5 and summary.failed == 0
        assert progress[-1] == (5, 5)
        assert [url for url, _ in op.calls].count(jobs[1].url) == 2
        assert not op.overlap

    async def test_other_worker_picks_up_throttled_job(self):
        jobs = _jobs(3)
        op = Recorder({jobs[0].url: [_rate_limit_on("a")]})
        scheduler = JobScheduler([StubProvider("a"), StubProvider("b")], op, cooldown=60)

        summary = await scheduler.process_queue(jobs)

        assert summary.succeeded == 3
        assert (jobs[0].url, "b") in op.calls
        assert scheduler.active_workers == 1

    async def test_failures_retried_then_reported_once(self):
        jobs = _jobs(2)
        boom = RuntimeError("model exploded")
        op = Recorder({jobs[0].url: [boom, boom, boom, boom]})
        errors: list[tuple[str, BaseException]] = []
        scheduler = JobScheduler(
            [StubProvider("a")], op, max_retries=2, on_error=lambda url, e: errors.append((url, e))
        )

        summary = await scheduler.process_queue(jobs)

        assert errors == [(jobs[0].url, boom)]
        assert jobs[0].retries == 2
        assert summary.failed == 1 and summary.succeeded == 1 and summary.retries == 2
        assert [url for url, _ in op.calls].count(jobs[0].url) == 3

    async def test_failed_job_goes_to_back_of_queue(self):
        jobs = _jobs(3)
        op = Recorder({jobs[0].url: [RuntimeError("flaky")]})
        scheduler = JobScheduler([StubProvider("a")], op, max_retries=1)

        summary = await scheduler.process_queue(jobs)

        assert summary.succeeded == 3 and summary.retries == 1
        assert [url for url, _ in op.calls] == [jobs[0].url, jobs[1].url, jobs[2].url, jobs[0].url]

    async def test_job_never_owned_twice(self):
        jobs = _jobs(12)
        script = {j.url: [_rate_limit_on("a"), RuntimeError("x")] for j in jobs[:6]}
        op = Recorder(script)
        scheduler = JobScheduler(
            [StubProvider("a"), StubProvider("b"), StubProvider("c")], op, cooldown=0.005, max_retries=3
        )

        summary = await scheduler.process_queue(jobs)

        assert summary.completed == 12
        assert op.overlap is False

    async def test_topic_cluster_from_index(self):
        pages = [_page(i) for i in range(4)]
        topics = {
            pages[0].url: TopicLabel("shoes"),
            pages[1].url: TopicLabel("shoes"),
            pages[2].url: TopicLabel("shoes"),
        }
        fallback_cluster = [ClusterPage("https://ex.com/manual", "Manual")]
        jobs = [Job(page=pages[0]), Job(page=pages[3], topic_cluster=fallback_cluster)]
        op = Recorder()
        scheduler = JobScheduler([StubProvider("a")], op, cluster_limit=1)

        await scheduler.process_queue(jobs, SiteContext(pages=pages, topics=topics, target_location="Oslo"))

        first = op.contexts[pages[0].url]
        assert [c.url for c in first.topic_cluster] == [pages[1].url]
        assert first.target_location == "Oslo"
        assert len(first.all_pages) == 4
        # No siblings in its (default) cluster beyond itself -> job's own cluster.
        assert op.contexts[pages[3].url].topic_cluster == fallback_cluster

    async def test_cooldown_survives_between_runs(self):
        first_jobs = _jobs(2)
        op = Recorder({first_jobs[0].url: [_rate_limit_on("a")]})
        scheduler = JobScheduler([StubProvider("a"), StubProvider("b")], op, cooldown=60)

        await scheduler.process_queue(first_jobs)
        worker_a = scheduler.workers[0]
        assert worker_a.status is WorkerStatus.COOLING_DOWN
        assert scheduler.active_workers == 1

        op.calls.clear()
        second_jobs = [Job(page=_page(i)) for i in range(10, 13)]
        await scheduler.process_queue(second_jobs)
        assert {pid for _, pid in op.calls} == {"b"}

        worker_a.cooldown_until = time.monotonic() - 1
        op.calls.clear()
        third_jobs = [Job(page=_page(i)) for i in range(20, 26)]
        await scheduler.process_queue(third_jobs)
        assert "a" in {pid for _, pid in op.calls}
        assert scheduler.active_workers == 2

    async def test_callback_error_leaves_workers_reusable(self):
        def on_result(result):
            raise KeyError("consumer bug")

        scheduler = JobScheduler([StubProvider("a"), StubProvider("b")], Recorder(delay=0.01), on_result=on_result)
        with pytest.raises(KeyError):
            await scheduler.process_queue(_jobs(4))
        assert all(w.status is WorkerStatus.READY for w in scheduler.workers)

        scheduler.on_result = None
        summary = await scheduler.process_queue(_jobs(2))
        assert summary.succeeded == 2

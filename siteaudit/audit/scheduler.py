"""Load-balancing job scheduler across AI provider credentials.

A single control loop owns all mutable state (the job queue, worker
statuses and counters).  Each dispatched job runs as its own task whose only
side effect is posting a tagged outcome to an internal event queue; cooldown
expiry is posted to the same queue by a ``loop.call_later`` timer.  The loop
waits on that queue, so the run ends exactly when the last job settles.

    Success      → on_result, worker ready
    RateLimited  → worker cooling down, job back to the FRONT, retries kept
    Failed       → retried at the BACK up to ``max_retries``, then on_error
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Union

from siteaudit.audit.models import (
    AuditResult,
    Failed,
    Job,
    JobContext,
    JobOutcome,
    RateLimited,
    SchedulerSummary,
    SiteContext,
    Success,
    TopicLabel,
    Worker,
    WorkerStatus,
)
from siteaudit.audit.pipeline import run_full_analysis
from siteaudit.audit.providers import AIProvider
from siteaudit.audit.topics import TopicIndex
from siteaudit.config import settings
from siteaudit.errors import RateLimitError

logger = logging.getLogger(__name__)

Operation = Callable[[Job, AIProvider, JobContext], Awaitable[AuditResult]]
ProgressCallback = Callable[[int, int], None]
ResultCallback = Callable[[AuditResult], None]
ErrorCallback = Callable[[str, BaseException], None]


@dataclass(frozen=True)
class _JobSettled:
    job: Job
    worker: Worker
    outcome: JobOutcome


@dataclass(frozen=True)
class _CooldownExpired:
    worker: Worker


_Event = Union[_JobSettled, _CooldownExpired]


class JobScheduler:
    """Distributes jobs over one worker per provider credential.

    The scheduler is owned by its caller; workers (and any cooldown still in
    force) survive between ``process_queue`` runs on the same instance.
    """

    def __init__(
        self,
        providers: Sequence[AIProvider],
        operation: Operation = run_full_analysis,
        *,
        max_retries: Optional[int] = None,
        cooldown: Optional[float] = None,
        cluster_limit: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        if not providers:
            raise ValueError("JobScheduler needs at least one provider")
        self.workers = [Worker(provider=p) for p in providers]
        self.operation = operation
        self.max_retries = settings.scheduler_max_retries if max_retries is None else max_retries
        self.cooldown = settings.scheduler_cooldown if cooldown is None else cooldown
        self.cluster_limit = settings.topic_cluster_limit if cluster_limit is None else cluster_limit
        self.on_progress = on_progress
        self.on_result = on_result
        self.on_error = on_error
        self._running = False

    @property
    def active_workers(self) -> int:
        """Workers not currently cooling down."""
        return sum(1 for w in self.workers if w.status is not WorkerStatus.COOLING_DOWN)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def process_queue(
        self,
        jobs: Iterable[Job],
        context: Optional[SiteContext] = None,
    ) -> SchedulerSummary:
        """Run every job to a terminal outcome and return the run's counters.

        Raises:
            ValueError: If two jobs share a URL.
            RuntimeError: If this scheduler is already running.
        """
        jobs = list(jobs)
        duplicates = [url for url, n in Counter(j.url for j in jobs).items() if n > 1]
        if duplicates:
            raise ValueError(f"Duplicate job URLs: {', '.join(duplicates)}")
        if self._running:
            raise RuntimeError("process_queue is already running on this scheduler")

        context = context or SiteContext()
        pages = context.pages or [j.page for j in jobs]
        index = TopicIndex.build(pages, context.topics)

        summary = SchedulerSummary(total=len(jobs))
        queue: deque[Job] = deque(jobs)
        in_flight: dict[str, asyncio.Task] = {}
        timers: dict[str, asyncio.TimerHandle] = {}
        events: asyncio.Queue[_Event] = asyncio.Queue()
        loop = asyncio.get_running_loop()

        logger.info(
            "[scheduler] %d job(s) across %d worker(s), %d topic cluster(s)",
            summary.total, len(self.workers), len(index),
        )
        self._running = True
        try:
            self._resume_cooldowns(loop, events, timers)
            while summary.completed < summary.total:
                self._dispatch(queue, in_flight, events, index, context, pages)
                event = await events.get()

                if isinstance(event, _CooldownExpired):
                    timers.pop(event.worker.id, None)
                    event.worker.finish_cooldown()
                    logger.info("[scheduler] worker %s is ready again", event.worker.id)
                    continue

                in_flight.pop(event.job.url, None)
                self._settle(event, queue, summary, loop, events, timers)
                if self.on_progress:
                    self.on_progress(summary.completed, summary.total)
        finally:
            for task in in_flight.values():
                task.cancel()
            if in_flight:
                await asyncio.gather(*in_flight.values(), return_exceptions=True)
            for handle in timers.values():
                handle.cancel()
            for worker in self.workers:
                if worker.status is WorkerStatus.BUSY:
                    worker.transition(WorkerStatus.READY)
            self._running = False

        logger.info(
            "[scheduler] done: %d succeeded, %d failed, %d retries, %d cooldowns",
            summary.succeeded, summary.failed, summary.retries, summary.cooldowns,
        )
        return summary

    # ------------------------------------------------------------------
    # Control-loop helpers (the only code that mutates scheduler state)
    # ------------------------------------------------------------------

    def _resume_cooldowns(self, loop, events, timers) -> None:
        for worker in self.workers:
            if worker.status is not WorkerStatus.COOLING_DOWN:
                continue
            remaining = worker.cooldown_remaining()
            if remaining <= 0:
                worker.finish_cooldown()
            else:
                timers[worker.id] = loop.call_later(
                    remaining, events.put_nowait, _CooldownExpired(worker)
                )

    def _job_context(self, job: Job, index: TopicIndex, context: SiteContext, pages) -> JobContext:
        label = context.topics.get(job.url, TopicLabel())
        cluster = index.siblings(label.topic, job.url, self.cluster_limit)
        return JobContext(
            all_pages=pages,
            topic_cluster=cluster or list(job.topic_cluster),
            target_location=context.target_location,
        )

    def _dispatch(self, queue, in_flight, events, index, context, pages) -> None:
        for worker in self.workers:
            if not queue:
                return
            if worker.status is not WorkerStatus.READY:
                continue
            job = queue.popleft()
            if job.url in in_flight:
                raise RuntimeError(f"Job {job.url} is already owned by another worker")
            worker.transition(WorkerStatus.BUSY)
            job_context = self._job_context(job, index, context, pages)
            in_flight[job.url] = asyncio.create_task(
                self._run_job(job, worker, job_context, events),
                name=f"audit:{job.url}",
            )

    async def _run_job(self, job: Job, worker: Worker, job_context: JobContext, events) -> None:
        outcome: JobOutcome
        try:
            result = await self.operation(job, worker.provider, job_context)
        except RateLimitError as exc:
            outcome = RateLimited(reason=str(exc))
        except Exception as exc:
            outcome = Failed(reason=str(exc) or type(exc).__name__, error=exc)
        else:
            outcome = Success(result=result)
        events.put_nowait(_JobSettled(job=job, worker=worker, outcome=outcome))

    def _settle(self, event: _JobSettled, queue, summary, loop, events, timers) -> None:
        job, worker, outcome = event.job, event.worker, event.outcome

        if isinstance(outcome, Success):
            worker.transition(WorkerStatus.READY)
            summary.succeeded += 1
            if self.on_result:
                self.on_result(outcome.result)

        elif isinstance(outcome, RateLimited):
            logger.warning("[scheduler] worker %s rate-limited; cooling down %.0fs", worker.id, self.cooldown)
            worker.start_cooldown(self.cooldown)
            timers[worker.id] = loop.call_later(
                self.cooldown, events.put_nowait, _CooldownExpired(worker)
            )
            summary.cooldowns += 1
            queue.appendleft(job)

        else:
            worker.transition(WorkerStatus.READY)
            if job.retries < self.max_retries:
                job.retries += 1
                summary.retries += 1
                logger.warning(
                    "[scheduler] %s failed (retry %d/%d): %s",
                    job.url, job.retries, self.max_retries, outcome.reason,
                )
                queue.append(job)
            else:
                summary.failed += 1
                logger.error("[scheduler] %s failed permanently: %s", job.url, outcome.reason)
                if self.on_error:
                    self.on_error(job.url, outcome.error or RuntimeError(outcome.reason))

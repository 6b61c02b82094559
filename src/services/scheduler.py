"""
Interval scheduler for import jobs.
Schedule state lives here and is only mutated under the scheduler's lock.
"""
import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from core.entities import ImportRunResult, JobState, JobStatus
from core.errors import JobAlreadyRunning, UnknownCategory, UnknownJob
from services.config import JobConfig
from workflows.base import ImportWorkflow

logger = logging.getLogger(__name__)

ScheduleState = Dict[str, JobState]

MANUAL_JOB = "manual"


def next_run_time(interval: timedelta, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + interval


class Scheduler:
    """
    One timer task per job. A run is refused while the same job, or any job
    importing one of its categories, is still running.
    Stopping is cooperative: timers are cancelled, in-flight runs finish.
    """

    def __init__(
        self,
        workflow: ImportWorkflow,
        jobs: List[JobConfig],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.workflow = workflow
        self.jobs: Dict[str, JobConfig] = {job.name: job for job in jobs}
        self._sleep = sleep

        self._state: ScheduleState = {name: JobState() for name in self.jobs}
        self._lock = asyncio.Lock()
        self._timers: Dict[str, asyncio.Task] = {}
        self._runs: Set[asyncio.Task] = set()
        # categories held by each running job
        self._active: Dict[str, Set[str]] = {}

    def _job(self, name: str) -> JobConfig:
        if name not in self.jobs:
            raise UnknownJob(name, list(self.jobs))
        return self.jobs[name]

    def _validate_categories(self, categories: List[str]) -> None:
        available = self.workflow.categories
        for category in categories:
            if category not in available:
                raise UnknownCategory(category, available)

    async def _claim(self, name: str, categories: List[str]) -> Optional[str]:
        """
        Mark the job running. Returns the name of the blocking job instead
        when this job or one sharing a category is in flight.
        """
        wanted = set(categories)
        async with self._lock:
            state = self._state.setdefault(name, JobState())
            if state.is_running:
                return name
            for other, held in self._active.items():
                if held & wanted:
                    return other
            state.is_running = True
            state.last_status = JobStatus.RUNNING
            self._active[name] = wanted
            return None

    async def _release(
        self, name: str, started_at: datetime, results: List[ImportRunResult], failed: bool
    ) -> None:
        async with self._lock:
            state = self._state[name]
            state.is_running = False
            state.last_status = JobStatus.FAILED if failed else JobStatus.COMPLETED
            state.last_run_at = started_at
            state.last_duration = (datetime.now(timezone.utc) - started_at).total_seconds()
            state.last_results = list(results)
            self._active.pop(name, None)

    async def _execute(self, name: str, categories: List[str], max_articles: int) -> List[ImportRunResult]:
        """
        Run every category in sequence. Must be called with the job claimed.
        """
        started_at = datetime.now(timezone.utc)
        results: List[ImportRunResult] = []
        finished = False
        logger.info(f"Starting job {name} for {len(categories)} categories", extra={"job": name})

        try:
            for category in categories:
                try:
                    results.append(await self.workflow.run(category, max_articles))
                except Exception as e:
                    logger.exception(f"[{category}] Import run failed: {e}", extra={"job": name, "category": category})
                    results.append(ImportRunResult(
                        category=category,
                        errors=1,
                        started_at=started_at,
                        finished_at=datetime.now(timezone.utc),
                        run_error=str(e),
                    ))
            finished = True
        finally:
            failed = not finished or any(r.run_error for r in results)
            await self._release(name, started_at, results, failed)

        imported = sum(r.imported for r in results)
        skipped = sum(r.skipped for r in results)
        errors = sum(r.errors for r in results)
        duration = (datetime.now(timezone.utc) - started_at).total_seconds()
        logger.info(
            f"Job {name} finished in {duration:.1f}s: imported={imported} skipped={skipped} errors={errors}",
            extra={"job": name},
        )
        return results

    async def tick(self, name: str) -> Optional[List[ImportRunResult]]:
        """
        Scheduled execution of a job. Returns None when skipped because it
        or an overlapping job is still running.
        """
        job = self._job(name)
        blocker = await self._claim(name, job.categories)
        if blocker is not None:
            logger.warning(f"Job {blocker} is still running, skipping this tick of {name}", extra={"job": name})
            return None
        return await self._execute(name, job.categories, job.max_articles_per_category)

    async def trigger_job(self, name: str) -> List[ImportRunResult]:
        """Run a configured job now. Raises JobAlreadyRunning if it would overlap a run in flight."""
        job = self._job(name)
        blocker = await self._claim(name, job.categories)
        if blocker is not None:
            raise JobAlreadyRunning(blocker)
        return await self._execute(name, job.categories, job.max_articles_per_category)

    async def trigger_import(
        self,
        categories: List[str],
        max_articles_per_category: int,
        job_name: str = MANUAL_JOB,
    ) -> List[ImportRunResult]:
        """
        Manual import of the given categories under the same overlap guard.
        Unknown categories are rejected before anything runs.
        """
        self._validate_categories(categories)
        blocker = await self._claim(job_name, categories)
        if blocker is not None:
            raise JobAlreadyRunning(blocker)
        return await self._execute(job_name, list(categories), max_articles_per_category)

    async def _timer(self, name: str) -> None:
        job = self.jobs[name]
        interval = timedelta(minutes=job.interval_minutes)

        while True:
            async with self._lock:
                self._state[name].next_run_at = next_run_time(interval)
            await self._sleep(interval.total_seconds())
            self.spawn_tick(name)

    def spawn_tick(self, name: str) -> asyncio.Task:
        """Start a tick in the background; the timer does not wait for the run."""
        self._job(name)
        task = asyncio.create_task(self.tick(name), name=f"job:{name}")
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def start_job(self, name: str) -> bool:
        """
        Schedule one job. Returns False when it is disabled or already scheduled.
        """
        job = self._job(name)
        if not job.enabled:
            logger.info(f"Job '{name}' is disabled, not scheduling")
            return False
        if name in self.running_timers:
            return False
        self._timers[name] = asyncio.create_task(self._timer(name), name=f"timer:{name}")
        logger.info(f"Scheduled job {name} every {job.interval_minutes} minutes", extra={"job": name})
        return True

    async def stop_job(self, name: str) -> bool:
        """
        Cancel future ticks of one job. A run already in flight is left to finish.
        Returns False when the job was not scheduled.
        """
        self._job(name)
        task = self._timers.pop(name, None)
        if task is None:
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        async with self._lock:
            self._state[name].next_run_at = None
        logger.info(f"Stopped job {name}", extra={"job": name})
        return True

    async def update_job(self, name: str, **changes: Any) -> JobConfig:
        """
        Change a job's settings, then reschedule it under them: an enabled job
        is (re)started, a disabled one is stopped. Runs in flight keep the old settings.
        """
        job = self._job(name)
        unknown = set(changes) - set(JobConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown job settings: {', '.join(sorted(unknown))}")
        if changes.get("name", name) != name:
            raise ValueError("A job cannot be renamed")

        updated = JobConfig.model_validate({**job.model_dump(), **changes})
        self._validate_categories(updated.categories)

        await self.stop_job(name)
        self.jobs[name] = updated
        if updated.enabled:
            await self.start_job(name)
        logger.info(f"Updated configuration for job {name}: {', '.join(sorted(changes))}", extra={"job": name})
        return updated

    async def start_all(self) -> List[str]:
        """Start timers for every enabled job. Returns the names started."""
        return [name for name in list(self.jobs) if await self.start_job(name)]

    async def stop_all(self) -> None:
        """Cancel future ticks. Runs already in flight are left to finish."""
        timers = list(self._timers)
        for name in timers:
            await self.stop_job(name)
        logger.info(f"Stopped {len(timers)} job timers ({len(self._runs)} runs still in flight)")

    async def get_status(self) -> ScheduleState:
        """Snapshot of the schedule state."""
        async with self._lock:
            return {
                name: replace(state, last_results=list(state.last_results))
                for name, state in self._state.items()
            }

    @property
    def running_timers(self) -> List[str]:
        return [name for name, task in self._timers.items() if not task.done()]

    async def shutdown(self, wait: bool = True) -> None:
        await self.stop_all()
        runs = list(self._runs)
        if not runs:
            return
        if not wait:
            for task in runs:
                task.cancel()
        await asyncio.gather(*runs, return_exceptions=True)

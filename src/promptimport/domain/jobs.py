"""
jobs.py
=======

Import job lifecycle.

Responsibilities
----------------
- Create ImportJobs and hand each one to a background worker.
- Run parse -> resolve for a job, publishing progress after every dependency.
- Keep every job in a shared registry that observers can read concurrently.
- Stream job snapshots to subscribers until the job is terminal.

Concurrency
-----------
One worker task per job, drawn from a bounded thread pool. A job is only
ever mutated by its own worker; observers read via ImportJob.snapshot(),
which takes the job's lock. Tier evaluation (the only part that may block
on the network) runs outside that lock.

Limitations
-----------
- Jobs cannot be cancelled once started. A subscriber going away does not
  stop resolution.
- Jobs are never evicted here; retention belongs to the host application.
"""

import asyncio
import json
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from .errors import JobNotFound, PermissionDenied
from .models import TERMINAL_JOB_STATUSES, DependencyStatus, ImportJob, JobStatus, Session
from .parser import parse_dependencies
from .resolver import TieredResolver

JOB_NOT_FOUND = "Job not found."
PERMISSION_DENIED = "Permission denied."

ResolverFactory = Callable[[Session], TieredResolver]


class JobRegistry:
    """Lock-guarded map of job id -> ImportJob."""

    def __init__(self) -> None:
        self._jobs: Dict[str, ImportJob] = {}
        self._lock = threading.Lock()

    def add(self, job: ImportJob) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Duplicate import job id {job.id}")
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[ImportJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class JobOrchestrator:
    def __init__(
        self,
        resolver_factory: ResolverFactory,
        registry: Optional[JobRegistry] = None,
        executor: Optional[Executor] = None,
        max_workers: int = 4,
    ) -> None:
        self.resolver_factory = resolver_factory
        self.registry = registry or JobRegistry()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="import-job"
        )
        self._futures: Dict[str, Future] = {}

    # ----- creation -----

    def import_prompt(
        self, session: Session, payload: Any, format_hint: str = "auto"
    ) -> Dict[str, Any]:
        """
        Accept a prompt payload and start resolving it in the background.

        Returns immediately with the new job id. Bad input comes back as an
        ``{"error": ...}`` object rather than an exception.
        """
        try:
            if isinstance(payload, (str, bytes)):
                payload = json.loads(payload)
            if not isinstance(payload, dict):
                raise ValueError("payload must be a JSON object")
            job = self.create_job(session, payload, format_hint or "auto")
        except Exception as e:
            logger.exception("Error creating import job")
            return {"error": f"Failed to create import job: {e}"}

        return {
            "job_id": job.id,
            "status": JobStatus.analyzing.value,
            "message": "Import job created and processing started.",
        }

    def create_job(
        self, session: Session, payload: Dict[str, Any], format_hint: str = "auto"
    ) -> ImportJob:
        job = ImportJob(owner_id=session.user_id, source_payload=payload, format_hint=format_hint)
        self.registry.add(job)
        logger.info("Import job {} created for user {}", job.id, session.user_id)
        try:
            future = self.executor.submit(self._run_guarded, job, session)
        except RuntimeError as e:
            # executor already shut down; don't leave the job stuck in analyzing
            job.fail(f"Could not start import job: {e}")
            raise
        self._futures[job.id] = future
        # fires immediately if the job already finished
        future.add_done_callback(lambda _f, job_id=job.id: self._futures.pop(job_id, None))
        return job

    def in_flight(self) -> List[str]:
        """Ids of jobs whose worker has not finished yet."""
        return list(self._futures)

    # ----- background work -----

    def _run_guarded(self, job: ImportJob, session: Session) -> None:
        try:
            self.run_job(job, session)
        except Exception as e:
            logger.exception("Error processing import job {}", job.id)
            if not job.is_terminal:
                job.fail(str(e) or e.__class__.__name__)

    def run_job(self, job: ImportJob, session: Session) -> None:
        references = parse_dependencies(job.source_payload, job.format_hint)
        job.begin_resolving(references)
        logger.info("Import job {}: found {} model dependencies", job.id, len(references))

        resolver = self.resolver_factory(session)
        processed = 0
        for record in list(job.dependencies):
            try:
                result = resolver.evaluate(record)
                job.apply_result(record, result)
            except Exception as e:
                logger.exception("Failed to resolve dependency {}", record.reference.raw_reference)
                job.fail_dependency(record, str(e) or e.__class__.__name__)
            processed += 1
            job.record_progress(processed)

        status = job.complete()
        resolved = sum(1 for d in job.dependencies if d.status is DependencyStatus.resolved)
        logger.info(
            "Import job {}: {} - {}/{} dependencies resolved",
            job.id,
            status.value,
            resolved,
            len(job.dependencies),
        )

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        """Block until the job's worker has finished (used by tools and tests)."""
        future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    # ----- reads -----

    def authorize(self, session: Session, job_id: str) -> ImportJob:
        job = self.registry.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if not session.can_read(job.owner_id):
            raise PermissionDenied(job_id, session.user_id)
        return job

    def get_job_status(self, session: Session, job_id: str) -> Dict[str, Any]:
        try:
            job = self.authorize(session, job_id)
        except JobNotFound:
            return {"error": JOB_NOT_FOUND}
        except PermissionDenied:
            return {"error": PERMISSION_DENIED}
        return job.to_json()


async def stream_job(
    registry: JobRegistry,
    job_id: str,
    poll_interval: float = 0.5,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Yield the job's snapshot now, again whenever it changes, and once more
    after it reaches a terminal status.
    """
    job = registry.get(job_id)
    if job is None:
        yield {"error": JOB_NOT_FOUND}
        return

    seen, snapshot = job.snapshot()
    yield snapshot

    while JobStatus(snapshot["status"]) not in TERMINAL_JOB_STATUSES:
        await sleep(poll_interval)
        revision, snapshot = job.snapshot()
        if revision != seen:
            seen = revision
            yield snapshot

    _, final = job.snapshot()
    yield final

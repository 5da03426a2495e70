from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List
from uuid import uuid4

from adgen.models.campaigns import utcnow
from adgen.models.jobs import Job, JobKind, JobStatus
from adgen.services.errors import NotFound
from adgen.services.orchestrator import GenerationOrchestrator, RunClaim


logger = logging.getLogger(__name__)


class JobRunner:
    """
    Runs orchestrator work off the request thread.

    Submitting claims the campaign's single-flight slot before anything is
    queued, so a second submit for a busy campaign fails right away with
    `GenerationInProgress`. The claim is released by the run itself.
    """

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        max_workers: int = 2,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="adgen-job"
        )
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}
        self._futures: Dict[str, Future] = {}

    def submit_generation(self, campaign_id: str) -> Job:
        return self._submit(JobKind.GENERATE_ADS, campaign_id, self._orchestrator.generate)

    def submit_background_regeneration(self, campaign_id: str) -> Job:
        return self._submit(
            JobKind.REGENERATE_BACKGROUND, campaign_id, self._orchestrator.regenerate_background
        )

    def _submit(self, kind: JobKind, campaign_id: str, target: Callable[..., object]) -> Job:
        claim = self._orchestrator.runs.acquire(campaign_id)
        job = Job(id=str(uuid4()), kind=kind, campaign_id=campaign_id)
        try:
            future = self._executor.submit(self._run, job, target, claim)
        except RuntimeError:
            claim.release()
            raise
        with self._lock:
            self._jobs[job.id] = job
            self._futures[job.id] = future
        logger.info("Queued %s job %s for campaign %s", kind.value, job.id, campaign_id)
        return job

    def _set_status(self, job: Job, status: JobStatus, error: str | None = None) -> None:
        with self._lock:
            job.status = status
            job.error = error
            job.updated_at = utcnow()

    def _run(self, job: Job, target: Callable[..., object], claim: RunClaim) -> None:
        self._set_status(job, JobStatus.RUNNING)
        logger.info("Starting %s job %s for campaign %s", job.kind.value, job.id, job.campaign_id)
        try:
            target(job.campaign_id, claim=claim)
        except Exception as exc:
            logger.exception("%s job %s for campaign %s failed", job.kind.value, job.id, job.campaign_id)
            self._set_status(job, JobStatus.FAILED, str(exc))
        else:
            self._set_status(job, JobStatus.COMPLETED)
            logger.info("Finished %s job %s for campaign %s", job.kind.value, job.id, job.campaign_id)
        finally:
            claim.release()

    def get_job(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFound("Job", job_id)
        return job

    def list_jobs(self, campaign_id: str | None = None) -> List[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        if campaign_id is not None:
            jobs = [job for job in jobs if job.campaign_id == campaign_id]
        return sorted(jobs, key=lambda job: job.created_at)

    def wait(self, job_id: str, timeout: float | None = None) -> Job:
        """Block until the job has finished. Mostly useful in tests and scripts."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            raise NotFound("Job", job_id)
        future.result(timeout=timeout)
        return self.get_job(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

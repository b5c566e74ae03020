"""Infrastructure layer for transformation job persistence."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Protocol

from pagepersona.core.errors import InvalidTransition, JobNotFound, StaleOwner
from pagepersona.domain import Job, JobStage, JobStatus, utcnow

logger = logging.getLogger(__name__)


class JobRepository(Protocol):
    """Persistence contract for job lifecycle records."""

    def create(self, job_id: str, fingerprint: str, kind: str, attempt: int = 1) -> Job: ...

    def get(self, job_id: str) -> Job | None: ...

    def latest_for(self, fingerprint: str) -> Job | None: ...

    def next_attempt(self, fingerprint: str) -> int: ...

    def start(self, job_id: str, owner: str, stage: JobStage) -> Job: ...

    def update_progress(self, job_id: str, owner: str, stage: JobStage, progress: int) -> Job: ...

    def complete(self, job_id: str, owner: str, result: dict[str, Any]) -> Job: ...

    def fail(self, job_id: str, owner: str | None, error: dict[str, str]) -> Job: ...

    def supersede(self, job_id: str, error: dict[str, str]) -> Job | None: ...

    def prune(self) -> int: ...

    def count(self) -> int: ...

    def reset(self) -> None: ...


class InMemoryJobRepository:
    """Thread-safe in-memory job table for single-instance deployments.

    Every write refreshes the job's retention deadline; jobs past it are
    pruned lazily and behave as if they never existed.
    """

    def __init__(self, retention_seconds: int = 3600, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._retention = timedelta(seconds=retention_seconds)
        self._clock = clock
        self._jobs: dict[str, Job] = {}
        self._latest: dict[str, str] = {}
        self._attempts: dict[str, int] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _touch(self, job: Job, now: datetime) -> None:
        job.updated_at = now
        job.expires_at = now + self._retention

    def _live(self, job_id: str, now: datetime) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        if job.expires_at is not None and job.expires_at <= now:
            self._drop(job)
            return None
        return job

    def _drop(self, job: Job) -> None:
        self._jobs.pop(job.job_id, None)
        if self._latest.get(job.fingerprint) == job.job_id:
            del self._latest[job.fingerprint]

    def _require(self, job_id: str, now: datetime) -> Job:
        job = self._live(job_id, now)
        if job is None:
            raise JobNotFound(f"job {job_id} not found")
        return job

    @staticmethod
    def _check_owner(job: Job, owner: str | None) -> None:
        if job.owner is not None and job.owner != owner:
            raise StaleOwner(f"job {job.job_id} is owned by another worker")

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._live(job_id, self._clock())
            return replace(job) if job else None

    def latest_for(self, fingerprint: str) -> Job | None:
        with self._lock:
            job_id = self._latest.get(fingerprint)
            if job_id is None:
                return None
            job = self._live(job_id, self._clock())
            return replace(job) if job else None

    def next_attempt(self, fingerprint: str) -> int:
        """Attempt numbers keep counting after older jobs are pruned."""
        with self._lock:
            return self._attempts.get(fingerprint, 0) + 1

    def count(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ------------------------------------------------------------------
    # lifecycle transitions
    # ------------------------------------------------------------------
    def create(self, job_id: str, fingerprint: str, kind: str, attempt: int = 1) -> Job:
        now = self._clock()
        with self._lock:
            existing = self._live(job_id, now)
            if existing is not None:
                return replace(existing)
            job = Job(job_id=job_id, fingerprint=fingerprint, kind=kind, attempt=attempt, created_at=now)
            self._touch(job, now)
            self._jobs[job_id] = job
            self._latest[fingerprint] = job_id
            self._attempts[fingerprint] = max(attempt, self._attempts.get(fingerprint, 0))
        logger.info("Job created %s (attempt %d)", job_id, attempt)
        return replace(job)

    def start(self, job_id: str, owner: str, stage: JobStage) -> Job:
        now = self._clock()
        with self._lock:
            job = self._require(job_id, now)
            self._check_owner(job, owner)
            if job.status is not JobStatus.QUEUED:
                raise InvalidTransition(f"cannot start job {job_id} from {job.status.value}")
            job.status = JobStatus.RUNNING
            job.owner = owner
            job.stage = stage
            job.progress = 0
            self._touch(job, now)
            return replace(job)

    def update_progress(self, job_id: str, owner: str, stage: JobStage, progress: int) -> Job:
        now = self._clock()
        with self._lock:
            job = self._require(job_id, now)
            self._check_owner(job, owner)
            if job.status is not JobStatus.RUNNING:
                raise InvalidTransition(f"cannot update job {job_id} in {job.status.value}")
            if job.stage is not None and stage.rank < job.stage.rank:
                raise InvalidTransition(f"stage {stage.value} precedes {job.stage.value}")
            job.stage = stage
            job.progress = max(job.progress, min(100, max(0, int(progress))))
            self._touch(job, now)
            logger.info("Job %s stage=%s progress=%d", job_id, stage.value, job.progress)
            return replace(job)

    def complete(self, job_id: str, owner: str, result: dict[str, Any]) -> Job:
        now = self._clock()
        with self._lock:
            job = self._require(job_id, now)
            self._check_owner(job, owner)
            if job.status is not JobStatus.RUNNING:
                raise InvalidTransition(f"cannot complete job {job_id} from {job.status.value}")
            job.status = JobStatus.DONE
            job.stage = JobStage.SAVE
            job.progress = 100
            job.result = result
            self._touch(job, now)
        logger.info("Job %s completed", job_id)
        return replace(job)

    def fail(self, job_id: str, owner: str | None, error: dict[str, str]) -> Job:
        now = self._clock()
        with self._lock:
            job = self._require(job_id, now)
            self._check_owner(job, owner)
            if job.status.is_terminal:
                raise InvalidTransition(f"job {job_id} already {job.status.value}")
            job.status = JobStatus.ERROR
            job.error = dict(error)
            self._touch(job, now)
        logger.warning("Job %s failed at stage %s: %s", job_id, job.stage.value if job.stage else "-", error.get("kind"))
        return replace(job)

    def supersede(self, job_id: str, error: dict[str, str]) -> Job | None:
        """Close out a job whose worker lost its lease."""

        now = self._clock()
        with self._lock:
            job = self._live(job_id, now)
            if job is None or job.status.is_terminal:
                return None
            job.status = JobStatus.ERROR
            job.error = dict(error)
            job.owner = None
            self._touch(job, now)
        logger.warning("Job %s superseded after lease expiry", job_id)
        return replace(job)

    # ------------------------------------------------------------------
    # maintenance
    # ------------------------------------------------------------------
    def prune(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [job for job in self._jobs.values() if job.expires_at is not None and job.expires_at <= now]
            for job in expired:
                self._drop(job)
        if expired:
            logger.info("Pruned %d expired jobs", len(expired))
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()
            self._latest.clear()
            self._attempts.clear()

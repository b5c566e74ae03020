"""Application service for transformation admission and polling."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from pagepersona.core.cleaner import CleanedText
from pagepersona.core.errors import InvalidRequest, JobNotFound, LockUnavailable, StageTimeout
from pagepersona.core.fingerprint import fingerprint, job_id_for
from pagepersona.core.personas import get_persona, list_personas
from pagepersona.core.prompts import PromptComponents
from pagepersona.core.schema import JobView, SubmitResponse
from pagepersona.core.settings import Settings
from pagepersona.core.urls import ensure_public_url
from pagepersona.domain import Job, JobStatus, utcnow
from pagepersona.infrastructure import (
    CompletionResult,
    InMemoryJobRepository,
    InMemoryLockCoordinator,
    InMemoryResultCache,
    InMemoryUsageGate,
    JobRepository,
    LockCoordinator,
    ResultCache,
    ScrapedContent,
    UsageGate,
)
from pagepersona.workers.pipeline import JobScheduler, PipelineRequest, build_pipeline_worker

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 100_000


@dataclass(slots=True)
class SubmitOutcome:
    status: str
    job_id: str | None = None
    stage: str | None = None
    progress: int | None = None
    data: dict[str, Any] | None = None
    cached: bool = False

    @classmethod
    def from_job(cls, job: Job) -> "SubmitOutcome":
        return cls(
            status=job.status.value,
            job_id=job.job_id,
            stage=job.stage.value if job.stage else None,
            progress=job.progress,
            data=job.result if job.status is JobStatus.DONE else None,
        )

    @property
    def http_status(self) -> int:
        return 200 if self.status == JobStatus.DONE.value else 202

    def to_dict(self) -> dict[str, Any]:
        response = SubmitResponse(
            status=self.status,
            job_id=self.job_id,
            stage=self.stage,
            progress=self.progress,
            data=self.data,
            cached=self.cached,
        )
        return response.model_dump(by_alias=True, exclude_none=True)


class TransformService:
    """Coordinates fingerprinting, caching, single-flight admission and polling."""

    def __init__(
        self,
        jobs: JobRepository,
        locks: LockCoordinator,
        cache: ResultCache,
        scheduler: JobScheduler,
        usage: UsageGate,
    ) -> None:
        self._jobs = jobs
        self._locks = locks
        self._cache = cache
        self._scheduler = scheduler
        self._usage = usage

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        scrape: Callable[[str], ScrapedContent] | None = None,
        clean: Callable[[str], CleanedText] | None = None,
        complete: Callable[[PromptComponents], CompletionResult] | None = None,
        usage: UsageGate | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "TransformService":
        cache = InMemoryResultCache(
            settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
            clock=clock,
        )
        locks = InMemoryLockCoordinator(settings.lock_ttl_seconds, clock=clock)
        jobs = InMemoryJobRepository(settings.job_ttl_seconds, clock=clock)
        worker = build_pipeline_worker(
            settings,
            jobs=jobs,
            locks=locks,
            cache=cache,
            scrape=scrape,
            clean=clean,
            complete=complete,
        )
        scheduler = JobScheduler(worker, settings.max_concurrent_jobs)
        return cls(jobs, locks, cache, scheduler, usage or InMemoryUsageGate(clock=clock))

    @property
    def scheduler(self) -> JobScheduler:
        return self._scheduler

    @property
    def usage(self) -> UsageGate:
        return self._usage

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------
    @staticmethod
    def _require_persona(persona: str) -> str:
        found = get_persona(persona)
        if found is None:
            raise InvalidRequest(f"Unknown persona: {persona}")
        return found.id

    def _acquire(self, fp: str, owner: str) -> None:
        if self._locks.try_acquire(fp, owner) is None:
            raise LockUnavailable(f"Job lock busy for {fp[:12]}")

    # ------------------------------------------------------------------
    # admission
    # ------------------------------------------------------------------
    async def submit_url(
        self,
        url: str,
        persona: str,
        *,
        user_id: str | None = None,
        membership: str | None = None,
    ) -> SubmitOutcome:
        persona_id = self._require_persona(persona)
        normalized = ensure_public_url(url)
        request = PipelineRequest(kind="url", content=normalized, persona=persona_id, user_id=user_id)
        return await self._submit(request, membership)

    async def submit_text(
        self,
        text: str,
        persona: str,
        *,
        user_id: str | None = None,
        membership: str | None = None,
    ) -> SubmitOutcome:
        persona_id = self._require_persona(persona)
        body = (text or "").strip()
        if not body:
            raise InvalidRequest("Text content is required")
        if len(body) > MAX_TEXT_LENGTH:
            raise InvalidRequest(f"Text exceeds the maximum length of {MAX_TEXT_LENGTH} characters")
        request = PipelineRequest(kind="text", content=body, persona=persona_id, user_id=user_id)
        return await self._submit(request, membership)

    async def _submit(self, request: PipelineRequest, membership: str | None) -> SubmitOutcome:
        self._jobs.prune()
        fp = fingerprint(request.kind, request.content, request.persona)

        cached = self._cache.get(fp)
        if cached is not None:
            logger.info("Cache hit for %s", fp[:12])
            return SubmitOutcome(status=JobStatus.DONE.value, data=cached, cached=True)

        latest = self._jobs.latest_for(fp)
        stale: Job | None = None
        if latest is not None:
            if latest.status is JobStatus.DONE:
                return SubmitOutcome.from_job(latest)
            if not latest.status.is_terminal:
                if self._locks.is_held(fp) or self._scheduler.is_waiting(latest.job_id):
                    logger.info("Job %s already in flight", latest.job_id)
                    return SubmitOutcome.from_job(latest)
                stale = latest

        self._usage.check_and_reserve(request.user_id, membership)

        attempt = self._jobs.next_attempt(fp)
        job = self._jobs.create(job_id_for(fp, attempt), fp, request.kind, attempt)

        owner = uuid4().hex
        try:
            self._acquire(fp, owner)
        except LockUnavailable as exc:
            logger.info("%s, returning %s", exc.message, job.job_id)
            return SubmitOutcome.from_job(job)

        if stale is not None:
            logger.warning("Lease for job %s lapsed, handing over to %s", stale.job_id, job.job_id)
            self._jobs.supersede(stale.job_id, StageTimeout("Worker lease expired; job restarted").to_dict())

        try:
            self._scheduler.schedule(job, request, owner)
        except RuntimeError as exc:
            self._locks.release(fp, owner)
            self._jobs.fail(job.job_id, owner, StageTimeout(f"Could not schedule job: {exc}").to_dict())
            raise
        return SubmitOutcome.from_job(job)

    # ------------------------------------------------------------------
    # polling and administration
    # ------------------------------------------------------------------
    def poll(self, job_id: str) -> dict[str, Any]:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        return JobView.model_validate(job.snapshot()).model_dump(by_alias=True, exclude_none=True)

    def cache_stats(self) -> dict[str, Any]:
        return {
            "cache": self._cache.stats(),
            "jobs": self._jobs.count(),
            "inFlight": self._scheduler.pending,
        }

    def health(self) -> dict[str, Any]:
        return {"jobs": self._jobs.count(), "inFlight": self._scheduler.pending}

    def clear_cache(self) -> dict[str, Any]:
        return {"cleared": self._cache.clear()}

    def list_personas(self) -> list[dict[str, str]]:
        return [persona.summary() for persona in list_personas()]

    def reset(self) -> None:
        self._jobs.reset()
        self._locks.reset()
        self._cache.reset()
        self._usage.reset()


_service: TransformService | None = None


def get_transform_service() -> TransformService:
    """Return the singleton transform service for the process."""

    global _service
    if _service is None:
        _service = TransformService.from_settings(Settings.from_env())
    return _service


def configure_transform_service(service: TransformService) -> None:
    """Install the transform service used by the HTTP routes."""

    global _service
    _service = service


def reset_transform_state() -> None:
    """Reset the in-memory stores (used in tests)."""

    get_transform_service().reset()

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeVar

from pagepersona.core.cleaner import CleanedText, clean_text_for_llm
from pagepersona.core.errors import (
    InvalidRequest,
    InvalidTransition,
    JobNotFound,
    StageTimeout,
    StaleOwner,
    TransformError,
    TransformFailed,
    UpstreamFetchFailed,
)
from pagepersona.core.personas import Persona, get_persona
from pagepersona.core.prompts import PROMPT_WARN_LENGTH, PromptComponents, build_prompt
from pagepersona.core.sanitizer import sanitize_result
from pagepersona.core.schema import OriginalContent, PersonaSummary, TokenUsage, TransformationResult
from pagepersona.core.settings import Settings
from pagepersona.domain import Job, JobStage
from pagepersona.infrastructure import (
    CompletionResult,
    JobRepository,
    LockCoordinator,
    OpenAIChatClient,
    ResultCache,
    ScrapedContent,
    WebScraper,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEXT_INPUT_LABEL = "Direct Text Input"

_STAGE_FAILURES: dict[JobStage, type[TransformError]] = {
    JobStage.SCRAPE: UpstreamFetchFailed,
    JobStage.CLEAN: InvalidRequest,
    JobStage.LLM: TransformFailed,
    JobStage.SAVE: TransformFailed,
}


@dataclass
class PipelineRequest:
    kind: str
    content: str
    persona: str
    user_id: str | None = None


@dataclass(frozen=True)
class StageTimeouts:
    scrape: float = 15.0
    clean: float = 5.0
    transform: float = 60.0


class LeaseLost(RuntimeError):
    """The worker's lease lapsed and another worker may own the fingerprint."""


def classify_error(exc: BaseException, stage: JobStage) -> TransformError:
    """Map an exception raised inside ``stage`` onto the error taxonomy."""

    if isinstance(exc, TransformError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return StageTimeout(f"{stage.value} stage timed out")
    failure = _STAGE_FAILURES[stage]
    return failure(str(exc) or f"{stage.value} stage failed")


class PipelineWorker:
    """Runs scrape, clean, llm and save for one job, off the request path."""

    def __init__(
        self,
        jobs: JobRepository,
        locks: LockCoordinator,
        cache: ResultCache,
        *,
        scrape: Callable[[str], ScrapedContent],
        clean: Callable[[str], CleanedText],
        complete: Callable[[PromptComponents], CompletionResult],
        timeouts: StageTimeouts | None = None,
        cache_ttl: int | None = None,
    ) -> None:
        self._jobs = jobs
        self._locks = locks
        self._cache = cache
        self._scrape = scrape
        self._clean = clean
        self._complete = complete
        self._timeouts = timeouts or StageTimeouts()
        self._cache_ttl = cache_ttl

    async def _call(self, fn: Callable[..., T], timeout: float, *args: Any) -> T:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)

    def _advance(self, job: Job, owner: str, stage: JobStage, progress: int) -> None:
        if not self._locks.owns(job.fingerprint, owner):
            raise LeaseLost(job.job_id)
        self._jobs.update_progress(job.job_id, owner, stage, progress)

    @staticmethod
    def _build_result(
        persona: Persona,
        scraped: ScrapedContent | None,
        cleaned: CleanedText,
        completion: CompletionResult,
    ) -> dict[str, Any]:
        if scraped is not None:
            title, url = scraped.title, scraped.url
        else:
            title, url = TEXT_INPUT_LABEL, TEXT_INPUT_LABEL
        result = TransformationResult(
            original_content=OriginalContent(
                title=title,
                content=cleaned.text,
                url=url,
                word_count=cleaned.word_count,
            ),
            transformed_content=completion.content,
            persona=PersonaSummary(**persona.summary()),
            usage=TokenUsage(**completion.usage) if completion.usage else None,
        )
        return sanitize_result(result).model_dump(by_alias=True, exclude_none=True)

    async def run(self, job: Job, request: PipelineRequest, owner: str) -> Job | None:
        """Execute ``job`` while holding the lease identified by ``owner``.

        Returns the final job record, or ``None`` when the lease was lost and
        the result discarded.
        """

        stage = JobStage.SCRAPE if request.kind == "url" else JobStage.CLEAN
        timeouts = self._timeouts
        try:
            if self._locks.renew(job.fingerprint, owner) is None:
                raise LeaseLost(job.job_id)
            self._jobs.start(job.job_id, owner, stage)
            logger.info("Job %s started at stage %s", job.job_id, stage.value)
            persona = get_persona(request.persona)
            if persona is None:
                raise InvalidRequest(f"Unknown persona: {request.persona}")

            scraped: ScrapedContent | None = None
            raw = request.content
            if request.kind == "url":
                scraped = await self._call(self._scrape, timeouts.scrape, request.content)
                raw = scraped.content

            stage = JobStage.CLEAN
            self._advance(job, owner, stage, 25)
            cleaned = await self._call(self._clean, timeouts.clean, raw)

            stage = JobStage.LLM
            self._advance(job, owner, stage, 50)
            prompt = build_prompt(
                persona,
                cleaned.text,
                title=scraped.title if scraped else None,
                word_count=cleaned.word_count,
                from_webpage=scraped is not None,
            )
            if prompt.total_length > PROMPT_WARN_LENGTH:
                logger.warning("Job %s prompt is large: %d chars", job.job_id, prompt.total_length)
            completion = await self._call(self._complete, timeouts.transform, prompt)

            stage = JobStage.SAVE
            self._advance(job, owner, stage, 90)
            result = self._build_result(persona, scraped, cleaned, completion)

            if not self._locks.owns(job.fingerprint, owner):
                raise LeaseLost(job.job_id)
            self._cache.put(job.fingerprint, result, self._cache_ttl)
            return self._jobs.complete(job.job_id, owner, result)
        except (LeaseLost, StaleOwner, InvalidTransition) as exc:
            logger.warning("Job %s lost its lease at stage %s, discarding result (%s)", job.job_id, stage.value, exc)
            self._close_out(job, owner, StageTimeout("Lease expired before the job finished"))
            return None
        except Exception as exc:
            error = classify_error(exc, stage)
            logger.warning("Job %s failed at stage %s: %s: %s", job.job_id, stage.value, error.kind, error.message)
            return self._close_out(job, owner, error)
        finally:
            self._locks.release(job.fingerprint, owner)

    def _close_out(self, job: Job, owner: str, error: TransformError) -> Job | None:
        try:
            return self._jobs.fail(job.job_id, owner, error.to_dict())
        except (StaleOwner, InvalidTransition, JobNotFound):
            return None


class JobScheduler:
    """Dispatches worker runs as tasks detached from the request."""

    def __init__(self, worker: PipelineWorker, max_concurrent: int = 4) -> None:
        self._worker = worker
        self._max_concurrent = max(1, max_concurrent)
        self._semaphore: asyncio.Semaphore | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[Job | None]] = set()
        self._waiting: set[str] = set()

    @property
    def worker(self) -> PipelineWorker:
        return self._worker

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def is_waiting(self, job_id: str) -> bool:
        """True while ``job_id`` is scheduled but has not started running."""
        return job_id in self._waiting

    def _gate(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
            self._loop = loop
        return self._semaphore

    async def _guarded(self, job: Job, request: PipelineRequest, owner: str) -> Job | None:
        try:
            async with self._gate():
                self._waiting.discard(job.job_id)
                return await self._worker.run(job, request, owner)
        finally:
            self._waiting.discard(job.job_id)

    def _forget(self, task: asyncio.Task[Job | None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Pipeline task crashed", exc_info=task.exception())

    def schedule(self, job: Job, request: PipelineRequest, owner: str) -> asyncio.Task[Job | None]:
        """Start ``job`` in the background. Requires a running event loop."""

        self._gate()
        task = asyncio.get_running_loop().create_task(
            self._guarded(job, request, owner), name=f"transform-{job.job_id}"
        )
        self._tasks.add(task)
        self._waiting.add(job.job_id)
        task.add_done_callback(self._forget)
        logger.info("Job %s scheduled (%d in flight)", job.job_id, len(self._tasks))
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every scheduled run to finish."""

        tasks = [task for task in self._tasks if not task.done()]
        if not tasks:
            return
        await asyncio.wait(tasks, timeout=timeout)


def build_pipeline_worker(
    settings: Settings,
    *,
    jobs: JobRepository,
    locks: LockCoordinator,
    cache: ResultCache,
    scrape: Callable[[str], ScrapedContent] | None = None,
    clean: Callable[[str], CleanedText] | None = None,
    complete: Callable[[PromptComponents], CompletionResult] | None = None,
) -> PipelineWorker:
    """Wire collaborators from ``settings``; explicit callables take precedence."""

    if scrape is None:
        scrape = WebScraper(
            timeout=settings.scrape_timeout_seconds,
            max_content_length=settings.max_content_length,
        ).scrape
    if clean is None:
        clean = partial(clean_text_for_llm, max_chars=settings.clean_max_chars)
    if complete is None:
        complete = OpenAIChatClient(
            settings.openai_api_key,
            model=settings.openai_model,
            api_base=settings.openai_api_base,
            timeout=settings.transform_timeout_seconds,
        ).complete
    return PipelineWorker(
        jobs,
        locks,
        cache,
        scrape=scrape,
        clean=clean,
        complete=complete,
        timeouts=StageTimeouts(
            scrape=settings.scrape_timeout_seconds,
            clean=settings.clean_timeout_seconds,
            transform=settings.transform_timeout_seconds,
        ),
        cache_ttl=settings.cache_ttl_seconds,
    )

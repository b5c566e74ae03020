"""Domain entities for transformation jobs."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


class JobStage(str, Enum):
    SCRAPE = "scrape"
    CLEAN = "clean"
    LLM = "llm"
    SAVE = "save"

    @property
    def rank(self) -> int:
        return _STAGE_RANK[self]


_STATUS_RANK = {JobStatus.QUEUED: 0, JobStatus.RUNNING: 1, JobStatus.DONE: 2, JobStatus.ERROR: 2}
_STAGE_RANK = {JobStage.SCRAPE: 0, JobStage.CLEAN: 1, JobStage.LLM: 2, JobStage.SAVE: 3}


@dataclass(slots=True)
class Job:
    """Lifecycle record for one attempt at computing a fingerprint."""

    job_id: str
    fingerprint: str
    kind: str
    attempt: int = 1
    status: JobStatus = JobStatus.QUEUED
    stage: JobStage | None = None
    progress: int = 0
    result: dict[str, Any] | None = None
    error: dict[str, str] | None = None
    owner: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    expires_at: datetime | None = None

    def snapshot(self) -> dict[str, Any]:
        """Client-facing view. Ownership stays internal."""

        payload: dict[str, Any] = {
            "jobId": self.job_id,
            "status": self.status.value,
            "stage": self.stage.value if self.stage else None,
            "progress": self.progress,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if self.status is JobStatus.DONE and self.result is not None:
            payload["data"] = self.result
        if self.status is JobStatus.ERROR and self.error is not None:
            payload["error"] = dict(self.error)
        return payload


@dataclass(slots=True)
class Lease:
    fingerprint: str
    owner: str
    acquired_at: datetime
    expires_at: datetime

    def is_live(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) < self.expires_at


@dataclass(slots=True)
class CacheEntry:
    fingerprint: str
    result: dict[str, Any]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

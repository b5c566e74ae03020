"""Domain layer definitions."""

from .jobs import CacheEntry, Job, JobStage, JobStatus, Lease, utcnow

__all__ = [
    "CacheEntry",
    "Job",
    "JobStage",
    "JobStatus",
    "Lease",
    "utcnow",
]

"""Error taxonomy shared by the admission layer and the pipeline."""
from __future__ import annotations

from typing import Any


class TransformError(RuntimeError):
    """Base class for classified transformation failures."""

    kind = "TransformError"
    retryable = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class InvalidRequest(TransformError):
    """Raised for inputs that cannot be fingerprinted or processed."""

    kind = "InvalidRequest"


class UpstreamFetchFailed(TransformError):
    kind = "UpstreamFetchFailed"
    retryable = True


class TransformFailed(TransformError):
    kind = "TransformFailed"
    retryable = True


class StageTimeout(TransformError):
    kind = "Timeout"
    retryable = True


class LockUnavailable(TransformError):
    """Another worker holds the lease. Callers treat this as queued."""

    kind = "LockUnavailable"


class JobNotFound(TransformError):
    kind = "NotFound"


class QuotaExceeded(TransformError):
    kind = "QuotaExceeded"

    def __init__(self, message: str = "", *, usage: int = 0, limit: int = 0, membership: str = "free") -> None:
        super().__init__(message or "You've hit your monthly limit. Upgrade to continue.")
        self.usage = usage
        self.limit = limit
        self.membership = membership

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"currentUsage": self.usage, "usageLimit": self.limit, "membership": self.membership})
        return payload


class InvalidTransition(RuntimeError):
    """Raised when a job update would move the state machine backwards."""


class StaleOwner(RuntimeError):
    """Raised when a worker writes to a job it no longer owns."""


__all__ = [
    "TransformError",
    "InvalidRequest",
    "UpstreamFetchFailed",
    "TransformFailed",
    "StageTimeout",
    "LockUnavailable",
    "JobNotFound",
    "QuotaExceeded",
    "InvalidTransition",
    "StaleOwner",
]

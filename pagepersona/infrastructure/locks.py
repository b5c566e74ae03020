"""Lease-based locks granting one worker per fingerprint."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from pagepersona.domain import Lease, utcnow

logger = logging.getLogger(__name__)


class LockCoordinator(Protocol):
    """Compare-and-set lock table contract.

    A networked key-value store with atomic set-if-absent and expiry can
    implement the same contract for multi-instance deployments.
    """

    def try_acquire(self, fingerprint: str, owner: str) -> Lease | None: ...

    def release(self, fingerprint: str, owner: str) -> bool: ...

    def is_held(self, fingerprint: str) -> bool: ...

    def renew(self, fingerprint: str, owner: str) -> Lease | None: ...

    def owns(self, fingerprint: str, owner: str) -> bool: ...

    def reset(self) -> None: ...


class InMemoryLockCoordinator:
    def __init__(self, lease_seconds: int = 300, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._lease = timedelta(seconds=lease_seconds)
        self._clock = clock
        self._leases: dict[str, Lease] = {}
        self._mutex = threading.Lock()

    def _live_lease(self, fingerprint: str, now: datetime) -> Lease | None:
        lease = self._leases.get(fingerprint)
        if lease is None:
            return None
        if not lease.is_live(now):
            del self._leases[fingerprint]
            logger.warning("Lease for %s held by %s expired", fingerprint[:12], lease.owner)
            return None
        return lease

    def try_acquire(self, fingerprint: str, owner: str) -> Lease | None:
        now = self._clock()
        with self._mutex:
            if self._live_lease(fingerprint, now) is not None:
                logger.info("Job lock already held for %s", fingerprint[:12])
                return None
            lease = Lease(fingerprint=fingerprint, owner=owner, acquired_at=now, expires_at=now + self._lease)
            self._leases[fingerprint] = lease
        logger.info("Job lock acquired for %s by %s", fingerprint[:12], owner)
        return lease

    def renew(self, fingerprint: str, owner: str) -> Lease | None:
        """Restart the lease term for ``owner``.

        A lapsed lease is reclaimed as long as nobody else took it over.
        """

        now = self._clock()
        with self._mutex:
            current = self._leases.get(fingerprint)
            if current is not None and current.owner != owner and current.is_live(now):
                return None
            acquired_at = current.acquired_at if current is not None and current.owner == owner else now
            lease = Lease(fingerprint=fingerprint, owner=owner, acquired_at=acquired_at, expires_at=now + self._lease)
            self._leases[fingerprint] = lease
        return lease

    def release(self, fingerprint: str, owner: str) -> bool:
        with self._mutex:
            lease = self._leases.get(fingerprint)
            if lease is None or lease.owner != owner:
                return False
            del self._leases[fingerprint]
        logger.info("Job lock released for %s by %s", fingerprint[:12], owner)
        return True

    def is_held(self, fingerprint: str) -> bool:
        now = self._clock()
        with self._mutex:
            return self._live_lease(fingerprint, now) is not None

    def owns(self, fingerprint: str, owner: str) -> bool:
        now = self._clock()
        with self._mutex:
            lease = self._live_lease(fingerprint, now)
            return lease is not None and lease.owner == owner

    def reset(self) -> None:
        with self._mutex:
            self._leases.clear()

from __future__ import annotations

import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pagepersona.core.errors import InvalidTransition, StaleOwner
from pagepersona.domain import JobStage, JobStatus
from pagepersona.infrastructure import InMemoryJobRepository, InMemoryLockCoordinator, InMemoryResultCache


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# result cache
# ---------------------------------------------------------------------------


def test_cache_hit_and_ttl_expiry(clock):
    cache = InMemoryResultCache(60, clock=clock)
    cache.put("fp-1", {"transformedContent": "hi"})
    assert cache.get("fp-1") == {"transformedContent": "hi"}

    clock.advance(61)
    assert cache.get("fp-1") is None

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["keys"] == 0


def test_cache_per_entry_ttl_override(clock):
    cache = InMemoryResultCache(60, clock=clock)
    cache.put("short", {"v": 1}, ttl=5)
    cache.put("long", {"v": 2})
    clock.advance(10)
    assert cache.get("short") is None
    assert cache.get("long") == {"v": 2}


def test_cache_bound_evicts_entry_closest_to_expiry(clock):
    cache = InMemoryResultCache(100, max_entries=2, clock=clock)
    cache.put("a", {"v": "a"}, ttl=10)
    cache.put("b", {"v": "b"}, ttl=50)
    cache.put("c", {"v": "c"}, ttl=50)
    assert cache.get("a") is None
    assert cache.get("b") == {"v": "b"}
    assert cache.get("c") == {"v": "c"}
    assert cache.stats()["evictions"] == 1


def test_cache_clear_reports_removed(clock):
    cache = InMemoryResultCache(clock=clock)
    cache.put("a", {})
    cache.put("b", {})
    assert cache.clear() == 2
    assert cache.stats()["keys"] == 0


# ---------------------------------------------------------------------------
# lock coordinator
# ---------------------------------------------------------------------------


def test_lock_is_exclusive_until_released(clock):
    locks = InMemoryLockCoordinator(30, clock=clock)
    assert locks.try_acquire("fp", "owner-a") is not None
    assert locks.try_acquire("fp", "owner-b") is None
    assert locks.owns("fp", "owner-a")

    assert locks.release("fp", "owner-b") is False
    assert locks.is_held("fp")
    assert locks.release("fp", "owner-a") is True
    assert not locks.is_held("fp")
    assert locks.try_acquire("fp", "owner-b") is not None


def test_expired_lease_can_be_reacquired(clock):
    locks = InMemoryLockCoordinator(30, clock=clock)
    locks.try_acquire("fp", "owner-a")
    clock.advance(31)

    assert not locks.is_held("fp")
    assert locks.try_acquire("fp", "owner-b") is not None
    assert not locks.owns("fp", "owner-a")
    assert locks.release("fp", "owner-a") is False
    assert locks.owns("fp", "owner-b")


def test_renew_restarts_the_lease_term(clock):
    locks = InMemoryLockCoordinator(30, clock=clock)
    locks.try_acquire("fp", "owner-a")
    clock.advance(20)
    assert locks.renew("fp", "owner-a") is not None
    clock.advance(20)
    assert locks.owns("fp", "owner-a")


def test_renew_reclaims_a_lapsed_lease_nobody_took(clock):
    locks = InMemoryLockCoordinator(30, clock=clock)
    locks.try_acquire("fp", "owner-a")
    clock.advance(31)
    assert locks.renew("fp", "owner-a") is not None
    assert locks.owns("fp", "owner-a")


def test_renew_refuses_a_lease_taken_over_by_another_owner(clock):
    locks = InMemoryLockCoordinator(30, clock=clock)
    locks.try_acquire("fp", "owner-a")
    clock.advance(31)
    locks.try_acquire("fp", "owner-b")
    assert locks.renew("fp", "owner-a") is None
    assert locks.owns("fp", "owner-b")


def test_concurrent_acquire_has_one_winner(clock):
    locks = InMemoryLockCoordinator(30, clock=clock)
    winners: list[str] = []
    barrier = threading.Barrier(8)

    def contend(owner: str) -> None:
        barrier.wait()
        if locks.try_acquire("fp", owner) is not None:
            winners.append(owner)

    threads = [threading.Thread(target=contend, args=(f"owner-{i}",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1


# ---------------------------------------------------------------------------
# job repository
# ---------------------------------------------------------------------------


def test_job_lifecycle_runs_forward(clock):
    jobs = InMemoryJobRepository(600, clock=clock)
    job = jobs.create("job-1", "fp", "url")
    assert job.status is JobStatus.QUEUED
    assert job.progress == 0

    jobs.start("job-1", "owner", JobStage.SCRAPE)
    jobs.update_progress("job-1", "owner", JobStage.CLEAN, 25)
    jobs.update_progress("job-1", "owner", JobStage.LLM, 50)
    done = jobs.complete("job-1", "owner", {"transformedContent": "ok"})

    assert done.status is JobStatus.DONE
    assert done.progress == 100
    assert done.stage is JobStage.SAVE
    assert jobs.get("job-1").result == {"transformedContent": "ok"}


def test_job_create_is_idempotent(clock):
    jobs = InMemoryJobRepository(clock=clock)
    first = jobs.create("job-1", "fp", "text")
    jobs.start("job-1", "owner", JobStage.CLEAN)
    again = jobs.create("job-1", "fp", "text")
    assert again.created_at == first.created_at
    assert again.status is JobStatus.RUNNING
    assert jobs.count() == 1


def test_job_progress_never_moves_backwards(clock):
    jobs = InMemoryJobRepository(clock=clock)
    jobs.create("job-1", "fp", "url")
    jobs.start("job-1", "owner", JobStage.SCRAPE)
    jobs.update_progress("job-1", "owner", JobStage.LLM, 50)

    with pytest.raises(InvalidTransition):
        jobs.update_progress("job-1", "owner", JobStage.CLEAN, 60)

    updated = jobs.update_progress("job-1", "owner", JobStage.LLM, 10)
    assert updated.progress == 50


def test_terminal_jobs_reject_updates(clock):
    jobs = InMemoryJobRepository(clock=clock)
    jobs.create("job-1", "fp", "url")
    jobs.start("job-1", "owner", JobStage.SCRAPE)
    jobs.fail("job-1", "owner", {"kind": "UpstreamFetchFailed", "message": "404"})

    with pytest.raises(InvalidTransition):
        jobs.complete("job-1", "owner", {})
    with pytest.raises(InvalidTransition):
        jobs.fail("job-1", "owner", {"kind": "Timeout", "message": "late"})
    assert jobs.get("job-1").error == {"kind": "UpstreamFetchFailed", "message": "404"}


def test_stale_owner_writes_are_rejected(clock):
    jobs = InMemoryJobRepository(clock=clock)
    jobs.create("job-1", "fp", "url")
    jobs.start("job-1", "owner-a", JobStage.SCRAPE)
    with pytest.raises(StaleOwner):
        jobs.update_progress("job-1", "owner-b", JobStage.CLEAN, 25)


def test_supersede_closes_out_lapsed_job(clock):
    jobs = InMemoryJobRepository(clock=clock)
    jobs.create("job-1", "fp", "url")
    jobs.start("job-1", "owner-a", JobStage.SCRAPE)

    superseded = jobs.supersede("job-1", {"kind": "Timeout", "message": "lease expired"})
    assert superseded.status is JobStatus.ERROR
    assert superseded.owner is None
    assert jobs.supersede("job-1", {"kind": "Timeout", "message": "again"}) is None

    with pytest.raises(InvalidTransition):
        jobs.complete("job-1", "owner-a", {"transformedContent": "late"})


def test_latest_for_tracks_attempts(clock):
    jobs = InMemoryJobRepository(clock=clock)
    assert jobs.next_attempt("fp") == 1
    jobs.create("job-1", "fp", "url", attempt=1)
    assert jobs.next_attempt("fp") == 2
    jobs.create("job-2", "fp", "url", attempt=2)
    assert jobs.latest_for("fp").job_id == "job-2"


def test_expired_jobs_are_pruned(clock):
    jobs = InMemoryJobRepository(60, clock=clock)
    jobs.create("job-1", "fp", "url")
    clock.advance(30)
    jobs.create("job-2", "fp-2", "url")
    clock.advance(31)

    assert jobs.get("job-1") is None
    assert jobs.latest_for("fp") is None
    assert jobs.prune() == 0
    assert jobs.count() == 1


def test_snapshot_never_exposes_owner(clock):
    jobs = InMemoryJobRepository(clock=clock)
    jobs.create("job-1", "fp", "url")
    running = jobs.start("job-1", "secret-owner", JobStage.SCRAPE)
    snapshot = running.snapshot()
    assert "owner" not in snapshot
    assert "secret-owner" not in str(snapshot)
    assert snapshot["jobId"] == "job-1"
    assert snapshot["status"] == "running"


def test_attempt_numbers_survive_pruning(clock):
    jobs = InMemoryJobRepository(60, clock=clock)
    jobs.create("job-1", "fp", "text", attempt=1)
    clock.advance(61)
    assert jobs.prune() == 1
    assert jobs.latest_for("fp") is None

    assert jobs.next_attempt("fp") == 2
    jobs.reset()
    assert jobs.next_attempt("fp") == 1

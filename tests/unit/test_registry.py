"""Unit tests for the per-run job registry and run context."""
import pytest
from concurrent.futures import Future
from pathlib import Path
from mediamirror.domain.errors import DuplicateJobError
from mediamirror.domain.models import JobOutcome, JobStatus, MirrorJob, SkipReason, SourceEntry
from mediamirror.pipeline.context import RunContext
from mediamirror.pipeline.registry import JobRegistry


def make_job(name: str) -> MirrorJob:
    return MirrorJob(source=SourceEntry(path=Path("/src") / name), destination=Path("/dst") / f"{name}.avi")


def test_register_and_snapshot():
    registry = JobRegistry()
    job = make_job("a.mkv")
    future = Future()

    registry.register(job, future)

    assert job.source_path in registry
    assert len(registry) == 1
    assert registry.snapshot()[0].future is future
    assert registry.outstanding()[0].job == job


def test_duplicate_outstanding_registration_rejected():
    registry = JobRegistry()
    job = make_job("a.mkv")
    registry.register(job, Future())

    with pytest.raises(DuplicateJobError):
        registry.register(job, Future())


def test_reregistration_allowed_after_completion():
    registry = JobRegistry()
    job = make_job("a.mkv")
    first = Future()
    registry.register(job, first)
    first.set_result(JobOutcome.succeeded())

    second = Future()
    registry.register(job, second)

    assert registry.snapshot()[0].future is second


def test_discard_ignores_stale_future():
    registry = JobRegistry()
    job = make_job("a.mkv")
    first = Future()
    registry.register(job, first)
    first.set_result(JobOutcome.succeeded())
    second = Future()
    registry.register(job, second)

    registry.discard(job, first)
    assert job.source_path in registry

    registry.discard(job, second)
    assert job.source_path not in registry


def test_outstanding_excludes_done():
    registry = JobRegistry()
    done, running = Future(), Future()
    done.set_result(JobOutcome.succeeded())
    registry.register(make_job("a.mkv"), done)
    registry.register(make_job("b.mkv"), running)

    assert [e.job.source_path.name for e in registry.outstanding()] == ["b.mkv"]


def test_run_context_counts_and_failures():
    context = RunContext(total_jobs=3)
    a, b, c = make_job("a.mkv"), make_job("b.mkv"), make_job("c.mkv")

    assert context.record(a, JobOutcome.succeeded()) == 1
    assert context.record(b, JobOutcome.failed("Encoder exited with code 1")) == 2
    assert context.record(c, JobOutcome.skipped(SkipReason.UNSTABLE_FILE)) == 3

    assert context.processed == 3
    assert context.count(JobStatus.SUCCEEDED) == 1
    assert context.count(JobStatus.SKIPPED) == 1
    assert context.failed_destinations() == [b.destination]
    assert context.failure_messages() == ["b.mkv: Encoder exited with code 1"]
    assert context.outcome_for(c.source_path).skip_reason is SkipReason.UNSTABLE_FILE

"""Bounded-concurrency execution for mirroring jobs.

One ``ThreadPoolExecutor`` provides the overall worker ceiling. A job first waits
out its stability window as a light task on the executor; only then does it go
through an encode sub-pool that never lets more than ``encode_threads``
conversions run at once. Queued conversions wait in the sub-pool rather than on
executor threads, so light tasks (stability waits, reconciliation passes) always
find a free worker.

The pool also owns the run's scheduled tasks: the watchdog deadline (a one-shot
timer) and the periodic reconciler (fixed delay). ``shutdown`` cancels both.
"""

import threading
import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Deque, List, Optional, Tuple, Union
from mediamirror.domain.events import JobCompleted, JobFailed, JobSkipped
from mediamirror.domain.models import JobOutcome, JobStatus, MirrorJob
from mediamirror.infrastructure.event_bus import EventBus
from mediamirror.pipeline.context import RunContext
from mediamirror.pipeline.job_runner import JobRunner

_Item = Tuple[Future, Callable[..., Any], tuple, dict]


class SubPool:
    """Limits concurrency of a group of tasks running on a shared executor."""

    def __init__(self, executor: ThreadPoolExecutor, max_concurrency: int):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._executor = executor
        self.max_concurrency = max_concurrency
        self._lock = threading.Lock()
        self._queue: Deque[_Item] = deque()
        self._running = 0
        self._shutdown = False

    @property
    def running(self) -> int:
        with self._lock:
            return self._running

    @property
    def queued(self) -> int:
        with self._lock:
            return len(self._queue)

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        future: Future = Future()
        self.enqueue(future, fn, *args, **kwargs)
        return future

    def enqueue(self, future: Future, fn: Callable[..., Any], *args, **kwargs) -> None:
        """Queues fn to complete a caller-created future."""
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new tasks after shutdown")
            self._queue.append((future, fn, args, kwargs))
        self._dispatch()

    def _dispatch(self) -> None:
        while True:
            with self._lock:
                if self._running >= self.max_concurrency or not self._queue:
                    return
                item = self._queue.popleft()
                self._running += 1
            future = item[0]
            if not future.set_running_or_notify_cancel():
                with self._lock:
                    self._running -= 1
                continue
            try:
                self._executor.submit(self._run, item)
            except RuntimeError as e:
                with self._lock:
                    self._running -= 1
                future.set_exception(e)

    def _run(self, item: _Item) -> None:
        future, fn, args, kwargs = item
        try:
            result = fn(*args, **kwargs)
        except BaseException as e:
            future.set_exception(e)
        else:
            future.set_result(result)
        finally:
            with self._lock:
                self._running -= 1
            self._dispatch()

    def shutdown(self) -> int:
        """Stops accepting work and cancels everything still queued."""
        with self._lock:
            self._shutdown = True
            pending = list(self._queue)
            self._queue.clear()
        for future, _, _, _ in pending:
            future.cancel()
        return len(pending)


class ScheduledTask:
    """Runs fn once after a delay on its own timer thread."""

    def __init__(self, fn: Callable[[], Any], delay: float, name: str = "scheduled"):
        self._fn = fn
        self.delay = delay
        self.fired = False
        self._timer = threading.Timer(max(0.0, delay), self._run)
        self._timer.name = name
        self._timer.daemon = True

    def start(self) -> "ScheduledTask":
        self._timer.start()
        return self

    def _run(self) -> None:
        self.fired = True
        self._fn()

    def cancel(self) -> None:
        self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._timer.finished.is_set() and not self.fired


class FixedDelayTask:
    """Runs fn on the executor repeatedly; each run starts ``delay`` after the previous one ended."""

    def __init__(
        self,
        fn: Callable[[], Any],
        initial_delay: float,
        delay: float,
        executor: ThreadPoolExecutor,
        name: str = "recurring",
    ):
        self._fn = fn
        self.initial_delay = initial_delay
        self.delay = delay
        self._executor = executor
        self._stop = threading.Event()
        self.runs = 0
        self.logger = logging.getLogger(__name__)
        self._thread = threading.Thread(target=self._loop, name=name, daemon=True)

    def start(self) -> "FixedDelayTask":
        self._thread.start()
        return self

    def _loop(self) -> None:
        wait = self.initial_delay
        while not self._stop.wait(wait):
            try:
                future = self._executor.submit(self._fn)
            except RuntimeError:
                return  # executor already shut down
            try:
                future.result()
            except Exception as e:
                self.logger.error(f"Recurring task {self._thread.name} failed: {e}")
            self.runs += 1
            wait = self.delay

    def cancel(self) -> None:
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()


class WorkerPool:
    """Runs admitted jobs with an overall worker ceiling and a smaller encode ceiling.

    Args:
        threads: Total executor workers.
        encode_threads: Maximum jobs running at once (must not exceed threads).
        context: Per-run state; the registry and outcome counters live here.
        job_runner: Executes a single job and returns its JobOutcome.
        event_bus: Optional bus for JobCompleted/JobSkipped/JobFailed events.
    """

    def __init__(
        self,
        threads: int,
        encode_threads: int,
        context: RunContext,
        job_runner: JobRunner,
        event_bus: Optional[EventBus] = None,
    ):
        if encode_threads > threads:
            raise ValueError("encode_threads must be <= threads")
        self.context = context
        self.job_runner = job_runner
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)
        self.executor = ThreadPoolExecutor(max_workers=threads, thread_name_prefix="mirror-worker")
        self.encode_pool = SubPool(self.executor, encode_threads)
        self._scheduled: List[Union[ScheduledTask, FixedDelayTask]] = []
        self._lock = threading.Lock()
        self._shutdown = False

    def submit(self, job: MirrorJob) -> "Future[JobOutcome]":
        """Registers the job and starts its stability wait as a light task.

        Only a job that passes the gate is queued on the encode sub-pool, so
        stability waits never occupy encode slots.
        """
        future: "Future[JobOutcome]" = Future()
        self.context.registry.register(job, future)
        try:
            gate_task = self.executor.submit(self._gate_job, job, future)
        except RuntimeError:
            self.context.registry.discard(job, future)
            raise
        future.add_done_callback(lambda f, job=job: self.context.registry.discard(job, f))
        # executor shutdown drops the gate task; the job's handle must not stay pending
        gate_task.add_done_callback(lambda t, future=future: t.cancelled() and future.cancel())
        return future

    def submit_task(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """Runs a light task directly on the executor, outside the encode ceiling."""
        return self.executor.submit(fn, *args, **kwargs)

    def schedule(self, fn: Callable[[], Any], delay: float, name: str = "scheduled") -> ScheduledTask:
        task = ScheduledTask(fn, delay, name=name)
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new tasks after shutdown")
            self._scheduled.append(task)
        return task.start()

    def schedule_with_fixed_delay(
        self,
        fn: Callable[[], Any],
        initial_delay: float,
        delay: float,
        name: str = "recurring",
    ) -> FixedDelayTask:
        task = FixedDelayTask(fn, initial_delay, delay, self.executor, name=name)
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new tasks after shutdown")
            self._scheduled.append(task)
        return task.start()

    def _gate_job(self, job: MirrorJob, future: "Future[JobOutcome]") -> None:
        try:
            outcome = self.job_runner.await_stable(job)
        except Exception as e:
            self.logger.error(f"Exception processing file: {job.source_path}: {e!r}")
            outcome = JobOutcome.failed(f"Unexpected error: {e}")
        if outcome is None:
            try:
                self.encode_pool.enqueue(future, self._run_job, job)
            except RuntimeError:
                future.cancel()
            return
        if future.set_running_or_notify_cancel():
            self._record(job, outcome)
            future.set_result(outcome)

    def _run_job(self, job: MirrorJob) -> JobOutcome:
        # outcome is recorded before the future resolves, so a drained run has every count
        try:
            outcome = self.job_runner.convert(job)
        except Exception as e:
            self.logger.error(f"Exception processing file: {job.source_path}: {e!r}")
            outcome = JobOutcome.failed(f"Unexpected error: {e}")
        self._record(job, outcome)
        return outcome

    def _record(self, job: MirrorJob, outcome: JobOutcome) -> None:
        processed = self.context.record(job, outcome)
        total = self.context.total_jobs
        percent = (processed / total) * 100 if total else 100.0
        self.logger.info(
            f"Estimated % done: {percent:.2f}% - ( {processed} out of {total} )"
        )

        if self.event_bus is None:
            return
        if outcome.status is JobStatus.SUCCEEDED:
            event_cls = JobCompleted
        elif outcome.status is JobStatus.SKIPPED:
            event_cls = JobSkipped
        else:
            event_cls = JobFailed
        self.event_bus.publish(event_cls(job=job, outcome=outcome, processed=processed, total=total))

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._shutdown = True
            scheduled = list(self._scheduled)
        for task in scheduled:
            task.cancel()
        cancelled = self.encode_pool.shutdown()
        if cancelled:
            self.logger.info(f"Cancelled {cancelled} queued job(s) at shutdown")
        self.executor.shutdown(wait=wait, cancel_futures=True)

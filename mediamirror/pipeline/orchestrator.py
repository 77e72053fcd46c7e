"""Pipeline orchestrator for one mirroring run.

Coordinates directory scanning, job admission, parallel conversion, the global
watchdog and reconciliation of the destination against the source.

Run states:
    SCANNING -> ADMITTING -> RUNNING (jobs > 0) | IDLE (no jobs)
             -> DRAINING -> RECONCILING -> DONE

Key responsibilities:
- Snapshot both directory listings once at the start of the run
- Admit jobs for sources whose converted counterpart is missing
- Submit jobs to the WorkerPool (encode sub-pool inside a larger worker pool)
- Arm the Watchdog and schedule the periodic Reconciler against the pool
- Drain: wait for every job, logging progress while waiting
- Final reconciliation, then shut the pool down (cancelling the watchdog)
"""

import logging
import concurrent.futures
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional
from mediamirror.config.models import AppConfig
from mediamirror.converters.base import ConverterStrategy
from mediamirror.domain.errors import ListingError, AdmissionError, WatchdogOverrun
from mediamirror.domain.events import AdmissionFinished, RunFinished
from mediamirror.domain.models import JobOutcome, JobStatus, RunSummary
from mediamirror.infrastructure.clock import Clock, SystemClock
from mediamirror.infrastructure.event_bus import EventBus
from mediamirror.infrastructure.file_scanner import DirectoryScanner
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.infrastructure.process import ProcessTracker
from mediamirror.pipeline.admission import JobAdmission, prepare_directories
from mediamirror.pipeline.context import RunContext
from mediamirror.pipeline.job_runner import JobRunner
from mediamirror.pipeline.reconciler import Reconciler
from mediamirror.pipeline.stability import StabilityGate
from mediamirror.pipeline.watchdog import Watchdog, terminate_process
from mediamirror.pipeline.worker_pool import WorkerPool

INTERRUPT_GRACE_S = 10.0


class RunState(str, Enum):
    SCANNING = "SCANNING"
    ADMITTING = "ADMITTING"
    RUNNING = "RUNNING"
    IDLE = "IDLE"
    DRAINING = "DRAINING"
    RECONCILING = "RECONCILING"
    DONE = "DONE"


class Orchestrator:
    """Mirrors one source directory into one destination directory.

    Args:
        config: AppConfig; only ``general`` is read here.
        converter: The converter backend chosen for this run.
        event_bus: EventBus for admission/job/reconcile/run events.
        scanner: DirectoryScanner used for every listing.
        fs: LocalFilesystem used for existence checks, copies and deletes.
        clock: Clock shared by the scanner timestamps and the stability gate.
        process_tracker: Live encoder processes, signalled on watchdog overrun
            and on Ctrl+C.
        on_overrun: Called with the WatchdogOverrun after the sweep; terminates
            the process by default.
        protected_paths: Destination paths the reconciler must never delete.
        interrupt_grace_s: How long Ctrl+C waits for signalled encoders to exit.
    """

    def __init__(
        self,
        config: AppConfig,
        converter: ConverterStrategy,
        event_bus: Optional[EventBus] = None,
        scanner: Optional[DirectoryScanner] = None,
        fs: Optional[LocalFilesystem] = None,
        clock: Optional[Clock] = None,
        process_tracker: Optional[ProcessTracker] = None,
        on_overrun: Callable[[WatchdogOverrun], None] = terminate_process,
        protected_paths: Iterable[Path] = (),
        interrupt_grace_s: float = INTERRUPT_GRACE_S,
    ):
        self.config = config
        self.converter = converter
        self.event_bus = event_bus or EventBus()
        self.clock = clock or SystemClock()
        self.scanner = scanner or DirectoryScanner(clock=self.clock)
        self.fs = fs or LocalFilesystem()
        self.process_tracker = process_tracker
        self.on_overrun = on_overrun
        self.protected_paths = list(protected_paths)
        self.interrupt_grace_s = interrupt_grace_s
        self.state = RunState.DONE
        self.context: Optional[RunContext] = None
        self.watchdog: Optional[Watchdog] = None
        self.logger = logging.getLogger(__name__)

    def _set_state(self, state: RunState) -> None:
        self.state = state
        if self.config.general.debug:
            self.logger.debug(f"RUN_STATE: {state.value}")

    def run(self, source_dir: Path, dest_dir: Path) -> RunSummary:
        """Runs the full lifecycle and returns the end-of-run summary.

        Raises AdmissionError before any job starts when a directory
        precondition fails.
        """
        general = self.config.general
        source_dir = Path(source_dir).absolute()
        dest_dir = Path(dest_dir).absolute()
        started_at = self.clock.monotonic()

        self._set_state(RunState.SCANNING)
        prepare_directories(source_dir, dest_dir, self.fs)
        try:
            # single snapshot of both listings; admission never re-scans
            source_listing = self.scanner.list_directory(source_dir)
            orig_dest_listing = self.scanner.list_directory(dest_dir)
        except ListingError as e:
            raise AdmissionError(str(e)) from e

        self._set_state(RunState.ADMITTING)
        admission = JobAdmission(self.converter.produced_extension())
        admitted = admission.admit(source_listing, orig_dest_listing, dest_dir)
        self.event_bus.publish(AdmissionFinished(
            jobs=len(admitted.jobs),
            already_converted=admitted.already_converted,
            unreadable=admitted.unreadable,
        ))

        context = RunContext(total_jobs=len(admitted.jobs), started_at=started_at)
        self.context = context
        gate = StabilityGate(window_s=general.stability_window_s, clock=self.clock, fs=self.fs)
        job_runner = JobRunner(
            self.converter,
            gate,
            event_bus=self.event_bus,
            fs=self.fs,
            stability_retries=general.stability_retries,
            debug=general.debug,
        )
        pool = WorkerPool(
            threads=general.threads,
            encode_threads=general.encode_threads,
            context=context,
            job_runner=job_runner,
            event_bus=self.event_bus,
        )
        self.watchdog = Watchdog(
            context,
            general.max_run_time_s,
            fs=self.fs,
            event_bus=self.event_bus,
            process_tracker=self.process_tracker if general.kill_encoders_on_overrun else None,
            on_overrun=self.on_overrun,
        )
        reconciler = Reconciler(
            source_dir,
            dest_dir,
            self.converter.produced_extension(),
            scanner=self.scanner,
            fs=self.fs,
            event_bus=self.event_bus,
            protected=self.protected_paths,
            retained=admitted.valid_sources,
        )

        deleted = []
        interrupted = False
        try:
            handles = {job.source_path: pool.submit(job) for job in admitted.jobs}
            self._set_state(RunState.RUNNING if handles else RunState.IDLE)

            self.watchdog.arm(pool, self.clock.monotonic())
            reconcile_task = pool.schedule_with_fixed_delay(
                lambda: deleted.extend(
                    reconciler.reconcile(stale=context.failed_destinations()).deleted
                ),
                general.reconcile_interval_s,
                general.reconcile_interval_s,
                name="mirror-reconciler",
            )

            self._set_state(RunState.DRAINING)
            self._drain(handles)
            reconcile_task.cancel()

            self._set_state(RunState.RECONCILING)
            final = reconciler.reconcile(stale=context.failed_destinations(), final=True)
            deleted.extend(final.deleted)
        except KeyboardInterrupt:
            interrupted = True
            self._interrupt(pool, context)
            raise
        finally:
            self.watchdog.cancel()
            pool.shutdown(wait=not interrupted)
            self._set_state(RunState.DONE)

        summary = RunSummary(
            source_dir=source_dir,
            dest_dir=dest_dir,
            jobs_total=len(admitted.jobs),
            succeeded=context.count(JobStatus.SUCCEEDED),
            skipped=context.count(JobStatus.SKIPPED),
            already_converted=admitted.already_converted,
            unreadable=admitted.unreadable,
            failures=context.failure_messages(),
            deleted=deleted,
            elapsed_seconds=self.clock.monotonic() - started_at,
        )
        self.logger.info(
            f"Run finished: jobs={summary.jobs_total}, succeeded={summary.succeeded}, "
            f"skipped={summary.skipped}, failed={summary.failed}, deleted={len(summary.deleted)}"
        )
        self.event_bus.publish(RunFinished(summary=summary))
        return summary

    def _drain(self, handles: Dict[Path, "concurrent.futures.Future[JobOutcome]"]) -> None:
        """Waits for all handles, logging how many are left while waiting."""
        pending = dict(handles)
        interval = self.config.general.progress_interval_s
        while pending:
            done, _ = concurrent.futures.wait(
                list(pending.values()),
                timeout=interval,
                return_when=concurrent.futures.FIRST_COMPLETED,
            )
            if not done:
                self.logger.info(f"Waiting on {len(pending)} conversions to finish")
                continue
            for source_path, future in list(pending.items()):
                if future not in done:
                    continue
                del pending[source_path]
                if future.cancelled():
                    continue
                exc = future.exception()
                if exc is not None:
                    self.logger.error(f"Exception processing file: {source_path}: {exc!r}")
                    continue

    def _interrupt(self, pool: WorkerPool, context: RunContext) -> None:
        """Ctrl+C: drop queued jobs, signal active encoders, wait a bounded time.

        Encoders run in their own session and never see the terminal's SIGINT,
        so they are signalled through the tracker.
        """
        self.logger.info("Ctrl+C detected - cancelling queued jobs and interrupting active conversions...")
        pool.encode_pool.shutdown()
        cancelled = sum(1 for entry in context.registry.outstanding() if entry.future.cancel())
        if cancelled:
            self.logger.info(f"Cancelled {cancelled} job(s) not yet converting")
        if self.process_tracker is not None:
            self.process_tracker.terminate_all()

        running = [entry.future for entry in context.registry.outstanding()]
        if running:
            self.logger.info(
                f"Waiting for {len(running)} active conversion(s) to stop (max {self.interrupt_grace_s:.0f}s)..."
            )
            _, still_running = concurrent.futures.wait(running, timeout=self.interrupt_grace_s)
            if still_running:
                self.logger.warning(f"{len(still_running)} conversion(s) still running at shutdown")
        self.logger.info("Shutdown complete")

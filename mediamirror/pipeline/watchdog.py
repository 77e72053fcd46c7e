"""Global run deadline.

A run that exceeds ``max_run_time_s`` is assumed to be stuck on an encoder. The
watchdog sweeps the job registry once, removes the half-written destination of
every job that is still running, and then ends the process with a non-zero
exit code. It never waits on a job.
"""

import os
import logging
import threading
from enum import Enum
from typing import Callable, List, Optional
from pathlib import Path
from mediamirror.domain.errors import FilesystemError, WatchdogOverrun
from mediamirror.domain.events import WatchdogTriggered
from mediamirror.infrastructure.event_bus import EventBus
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.infrastructure.process import ProcessTracker
from mediamirror.pipeline.context import RunContext

EXIT_WATCHDOG_OVERRUN = 3


class WatchdogState(str, Enum):
    IDLE = "IDLE"
    ARMED = "ARMED"
    SWEEPING = "SWEEPING"
    TERMINATED = "TERMINATED"
    CANCELLED = "CANCELLED"


def terminate_process(error: WatchdogOverrun) -> None:
    logging.getLogger(__name__).critical(f"{error}; exiting with code {EXIT_WATCHDOG_OVERRUN}")
    logging.shutdown()
    os._exit(EXIT_WATCHDOG_OVERRUN)


class Watchdog:
    def __init__(
        self,
        context: RunContext,
        max_run_time_s: float,
        fs: Optional[LocalFilesystem] = None,
        event_bus: Optional[EventBus] = None,
        process_tracker: Optional[ProcessTracker] = None,
        on_overrun: Callable[[WatchdogOverrun], None] = terminate_process,
    ):
        self.context = context
        self.max_run_time_s = max_run_time_s
        self.fs = fs or LocalFilesystem()
        self.event_bus = event_bus
        self.process_tracker = process_tracker
        self.on_overrun = on_overrun
        self.state = WatchdogState.IDLE
        self._lock = threading.Lock()
        self._task = None
        self.logger = logging.getLogger(__name__)

    def arm(self, pool, now: float) -> None:
        """Schedules the deadline on the pool, relative to the run's start time."""
        elapsed = now - self.context.started_at
        delay = max(0.0, self.max_run_time_s - elapsed)
        with self._lock:
            if self.state is not WatchdogState.IDLE:
                raise RuntimeError(f"Watchdog cannot be armed from state {self.state.value}")
            self.state = WatchdogState.ARMED
        self._task = pool.schedule(self.fire, delay, name="mirror-watchdog")
        self.logger.info(f"Watchdog armed: deadline in {delay:.0f}s")

    def cancel(self) -> bool:
        with self._lock:
            if self.state is not WatchdogState.ARMED:
                return False
            self.state = WatchdogState.CANCELLED
        if self._task is not None:
            self._task.cancel()
        return True

    def fire(self) -> Optional[WatchdogOverrun]:
        with self._lock:
            if self.state is not WatchdogState.ARMED:
                return None
            self.state = WatchdogState.SWEEPING
        error = self.sweep()
        with self._lock:
            self.state = WatchdogState.TERMINATED
        self.on_overrun(error)
        return error

    def sweep(self) -> WatchdogOverrun:
        """Deletes destinations of incomplete jobs. Completed jobs are left alone."""
        overrun: List[Path] = []
        running = []
        for entry in self.context.registry.snapshot():
            if entry.future.done():
                continue
            overrun.append(entry.job.source_path)
            running.append(entry)

        if running and self.process_tracker is not None:
            signalled = self.process_tracker.terminate_all()
            self.logger.warning(f"Watchdog signalled {signalled} encoder process group(s)")

        deleted: List[Path] = []
        for entry in running:
            new_file = entry.job.destination
            try:
                if self.fs.delete(new_file):
                    deleted.append(new_file)
                    self.logger.error(f"Deleted in progress file: {new_file}")
                else:
                    self.logger.error(f"Job overran without output: {entry.job.source_path}")
            except FilesystemError as e:
                self.logger.error(f"Could not delete in progress file: {new_file} ({e})")

        if self.event_bus is not None:
            self.event_bus.publish(WatchdogTriggered(overrun=overrun, deleted=deleted))
        return WatchdogOverrun(overrun, deleted, self.max_run_time_s)

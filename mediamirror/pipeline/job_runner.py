import time
import logging
from typing import Optional
from mediamirror.converters.base import ConverterStrategy
from mediamirror.domain.errors import EncodeFailure, FilesystemError
from mediamirror.domain.events import JobStarted
from mediamirror.domain.models import ActionKind, JobOutcome, MirrorJob, SkipReason
from mediamirror.infrastructure.event_bus import EventBus
from mediamirror.infrastructure.filesystem import LocalFilesystem
from mediamirror.pipeline.stability import StabilityGate


class JobRunner:
    """Executes one job: stability gate, then the converter.

    The two phases can run separately: ``await_stable`` is a light task that
    only sleeps, ``convert`` is the heavy part the encode ceiling applies to.
    Expected failures are turned into a JobOutcome; only programming errors
    escape as exceptions through the job's future.
    """

    def __init__(
        self,
        converter: ConverterStrategy,
        gate: StabilityGate,
        event_bus: Optional[EventBus] = None,
        fs: Optional[LocalFilesystem] = None,
        stability_retries: int = 0,
        debug: bool = False,
    ):
        self.converter = converter
        self.gate = gate
        self.event_bus = event_bus
        self.fs = fs or LocalFilesystem()
        self.stability_retries = stability_retries
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def run(self, job: MirrorJob) -> JobOutcome:
        outcome = self.await_stable(job)
        if outcome is not None:
            return outcome
        return self.convert(job)

    def await_stable(self, job: MirrorJob) -> Optional[JobOutcome]:
        """Waits out the stability window; returns a skip outcome for a file still growing."""
        source = job.source_path
        if self.event_bus is not None:
            self.event_bus.publish(JobStarted(job=job))

        # verify file is not still growing before continuing
        reading = self.gate.wait_until_stable(
            source, job.source.size_bytes, job.source.captured_at, retries=self.stability_retries
        )
        if not reading.stable:
            self.logger.info(f"Skipping unstable file (will retry next run): {source}")
            return JobOutcome.skipped(SkipReason.UNSTABLE_FILE)
        return None

    def convert(self, job: MirrorJob) -> JobOutcome:
        source = job.source_path
        if self.fs.exists(job.destination):
            self.logger.info(f"Destination appeared since admission, skipping: {job.destination}")
            return JobOutcome.skipped(SkipReason.ALREADY_CONVERTED)

        start_time = time.monotonic()
        try:
            action = self.converter.decide(source)
            if action.kind is ActionKind.COPY:
                self.logger.info(f"Copying file to: {job.destination}")
            else:
                self.logger.info(f"{action.description} {source.name} to: {job.destination}")
            if self.debug:
                self.logger.debug(f"JOB_START: {source.name} action={action.kind.value} flags={action.flags}")

            self.converter.perform(action, source, job.destination)
        except EncodeFailure as e:
            elapsed = time.monotonic() - start_time
            self.logger.error(f"Encode failed for {source}: {e}")
            if e.output_tail:
                self.logger.debug(f"ENCODER_OUTPUT: {source.name}\n{e.output_tail}")
            return JobOutcome.failed(str(e), duration_seconds=elapsed)
        except FilesystemError as e:
            elapsed = time.monotonic() - start_time
            self.logger.error(f"I/O failure processing {source}: {e}")
            return JobOutcome.failed(str(e), duration_seconds=elapsed)

        elapsed = time.monotonic() - start_time
        if self.debug:
            self.logger.debug(f"JOB_END: {source.name} status=succeeded elapsed={elapsed:.2f}s")
        return JobOutcome.succeeded(duration_seconds=elapsed)
